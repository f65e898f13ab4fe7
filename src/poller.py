"""
Convergence polling for patched resources.
"""

import logging
import threading
import time
from typing import Callable, Optional

from errors import ConvergenceTimeout, RunDeadlineExceeded, UpgradeCancelled
from kinds import ResourceKind
from models import VersionedResource

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 10


class RunContext:
    """Cancellation flag and optional deadline shared by one orchestration run."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cancel = cancel_event or threading.Event()
        self._clock = clock
        self.deadline = clock() + timeout if timeout and timeout > 0 else None

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def now(self) -> float:
        return self._clock()

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(self.deadline - self._clock(), 0.0)

    def check(self) -> None:
        """
        Raise if the run must stop.

        Raises:
            UpgradeCancelled: If cancel() was called
            RunDeadlineExceeded: If the run deadline has passed
        """
        if self.cancelled:
            raise UpgradeCancelled("upgrade run cancelled")
        if self.deadline is not None and self._clock() >= self.deadline:
            raise RunDeadlineExceeded("upgrade run deadline exceeded")

    def sleep(self, seconds: float) -> None:
        """Wait up to ``seconds``, waking early if the run is cancelled."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._cancel.wait(seconds)
        self.check()


class ConvergencePoller:
    """Waits until a resource reports its desired version as current."""

    def __init__(
        self,
        accessor,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_wait: Optional[float] = None,
    ):
        """
        Args:
            accessor: Resource accessor used to re-read the resource
            interval: Seconds between reads
            max_wait: Maximum seconds to wait per resource; None or <= 0 waits
                without a bound
        """
        self.accessor = accessor
        self.interval = interval
        self.max_wait = max_wait if max_wait and max_wait > 0 else None

    def wait(
        self,
        kind: ResourceKind,
        name: str,
        namespace: str,
        desired: str,
        context: Optional[RunContext] = None,
    ) -> VersionedResource:
        """
        Block until ``status.current`` of the resource equals ``desired``.

        A non-empty status message is logged as a warning and does not stop
        polling. Read failures propagate immediately.

        Returns:
            The converged resource

        Raises:
            ConvergenceTimeout: If max_wait elapses first
            RunDeadlineExceeded: If the run deadline passes while waiting
            UpgradeCancelled: If the run is cancelled while waiting
        """
        context = context or RunContext()
        start = context.now()

        resource = VersionedResource.from_object(
            self.accessor.get_resource(kind, name, namespace)
        )
        while not resource.is_converged(desired):
            logger.info(
                f"Verifying the reconciliation of version for {kind.name} {name} "
                f"(current={resource.current_version or 'unset'}, desired={desired})"
            )
            if resource.status_message:
                logger.warning(
                    f"{kind.name} {name} failed to reconcile: "
                    f"{resource.status_reason or 'unknown reason'}: {resource.status_message}"
                )

            elapsed = context.now() - start
            if self.max_wait is not None and elapsed >= self.max_wait:
                raise ConvergenceTimeout(
                    f"{kind.name} {name} did not reach version {desired} "
                    f"within {self.max_wait:.0f}s (current={resource.current_version or 'unset'})"
                )

            wait_for = self.interval
            if self.max_wait is not None:
                wait_for = min(wait_for, self.max_wait - elapsed)
            context.sleep(wait_for)

            resource = VersionedResource.from_object(
                self.accessor.get_resource(kind, name, namespace)
            )

        logger.info(f"{kind.name} {name} reconciled to version {desired}")
        return resource
