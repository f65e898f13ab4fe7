"""
Exception hierarchy for the cStor pool upgrader.

Every error an orchestration run can surface derives from UpgradeError, so
callers can tell upgrade failures apart from programming errors.
"""

from typing import List, Optional


class UpgradeError(RuntimeError):
    """Base exception for all upgrade-related errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(UpgradeError):
    """Raised when configuration or collaborator wiring is invalid."""


class PreconditionFailure(UpgradeError):
    """Raised when a pre-upgrade check fails. Nothing has been mutated."""

    def __init__(self, message: str, checks: Optional[List] = None):
        super().__init__(message)
        self.checks = checks or []


class SerializationError(UpgradeError):
    """Raised when a resource representation cannot be encoded."""


class ApplyFailure(UpgradeError):
    """Raised when the control plane rejects a patch."""


class ChildUpgradeFailure(UpgradeError):
    """Raised when a child resource could not be upgraded in this run."""

    def __init__(
        self,
        child_name: str,
        retries: int,
        exhausted: bool,
        child_error: Optional[BaseException] = None,
    ):
        if exhausted:
            message = (
                f"upgrade of {child_name} failed permanently "
                f"after {retries} attempt(s)"
            )
        else:
            message = f"upgrade of {child_name} failed (attempt {retries})"
        if child_error is not None:
            message = f"{message}: {child_error}"
        super().__init__(message)
        self.child_name = child_name
        self.retries = retries
        self.exhausted = exhausted
        self.child_error = child_error


class ConvergenceTimeout(UpgradeError):
    """Raised when a resource does not reach its desired version in time."""


class RunDeadlineExceeded(ConvergenceTimeout):
    """Raised when the deadline of the whole run has passed."""


class UpgradeCancelled(UpgradeError):
    """Raised at a suspension point after the run was cancelled."""


class TaskStoreFailure(UpgradeError):
    """Raised when an upgrade task record cannot be read or written."""


class ApiError(UpgradeError):
    """Raised when the Kubernetes API answers with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(ApiError):
    """Raised when the requested object does not exist (HTTP 404)."""


class ConflictError(ApiError):
    """Raised when a write conflicts with the stored object (HTTP 409)."""
