"""
Dependency-ordered upgrade of versioned resources.

A parent resource is only moved to the target version after every child it
owns has been upgraded and has converged. Children are found at run time by
label selector and upgraded one at a time by nested upgraders of the same
class, so a child with children of its own recurses identically.
"""

import json
import logging
import time
from typing import List, Optional, Sequence

from config import UpgraderConfig
from errors import (
    ApiError,
    ApplyFailure,
    ChildUpgradeFailure,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    PreconditionFailure,
    RunDeadlineExceeded,
    TaskStoreFailure,
    UpgradeCancelled,
)
from kinds import COMPONENT_LABEL, VERSION_LABEL, ResourceKind
from models import (
    CheckStatus,
    PreCheckResult,
    ResourcePatch,
    UpgradePhase,
    UpgradeResult,
    UpgradeTask,
    VersionedResource,
)
from patch_data import apply_merge_patch, compute_delta
from poller import ConvergencePoller, RunContext
from prechecks import DEFAULT_PRECHECKS, PreCheck, run_pre_checks
from tasks import TaskTracker

logger = logging.getLogger(__name__)

# Kubernetes default for Job.spec.backoffLimit
DEFAULT_BACKOFF_LIMIT = 6


class DependencyUpgrader:
    """Upgrades one resource of a given kind, children first."""

    def __init__(
        self,
        kind: ResourceKind,
        accessor,
        tasks: TaskTracker,
        config: UpgraderConfig,
        poller: Optional[ConvergencePoller] = None,
        context: Optional[RunContext] = None,
        results: Optional[List[UpgradeResult]] = None,
        prechecks: Sequence[PreCheck] = DEFAULT_PRECHECKS,
    ):
        """
        Initialize the upgrader.

        Args:
            kind: Kind of the resources this upgrader handles
            accessor: Resource accessor (get, list, patch)
            tasks: Tracker for per-child upgrade task records
            config: Run configuration
            poller: Convergence poller; built from config when omitted
            context: Cancellation and deadline for the whole run
            results: Shared list collecting one result per resource processed
            prechecks: Resource checks run before any mutation

        Raises:
            ConfigurationError: If a collaborator is missing or config is invalid
        """
        missing = [
            label
            for label, value in (
                ("kind", kind),
                ("accessor", accessor),
                ("tasks", tasks),
                ("config", config),
            )
            if value is None
        ]
        if missing:
            raise ConfigurationError(
                f"DependencyUpgrader requires: {', '.join(missing)}"
            )
        config.validate()

        self.kind = kind
        self.accessor = accessor
        self.tasks = tasks
        self.config = config
        self.poller = poller or ConvergencePoller(
            accessor,
            interval=config.poll_interval,
            max_wait=config.convergence_timeout,
        )
        self.context = context or RunContext()
        self.results = results if results is not None else []
        self.prechecks = tuple(prechecks)

    def upgrade(
        self, name: str, namespace: str, from_version: str, to_version: str
    ) -> UpgradeResult:
        """
        Upgrade a resource and everything it owns.

        Args:
            name: Resource name
            namespace: Resource namespace
            from_version: Version the resource is expected to be on
            to_version: Version to move it to

        Returns:
            UpgradeResult with status success, up_to_date or dry_run

        Raises:
            UpgradeError: Any pre-check, child, apply or convergence failure
        """
        request = ResourcePatch(
            target_name=name,
            target_namespace=namespace,
            from_version=from_version,
            to_version=to_version,
        )
        return self.upgrade_request(request)

    def upgrade_request(self, request: ResourcePatch) -> UpgradeResult:
        """Run the upgrade state machine for one request."""
        start = time.time()
        logger.info(
            f"Upgrading {self.kind.name} {request.target_name} "
            f"from {request.from_version} to {request.to_version}"
        )
        try:
            self.context.check()
            resource = self._pre_upgrade(request)
            self._init(request, resource)

            children = self._discover_children(request)
            if children:
                self._upgrade_children(request, children)

            if self.config.dry_run:
                self._preview(request, resource)
                status = "dry_run"
            else:
                patched = self._apply(request)
                self.poller.wait(
                    self.kind,
                    request.target_name,
                    request.target_namespace,
                    request.to_version,
                    self.context,
                )
                status = "success" if patched else "up_to_date"
        except Exception as e:
            self._record(request, "failed", start, error=str(e))
            raise

        logger.info(f"✓ {self.kind.name} {request.target_name}: {status}")
        return self._record(request, status, start)

    def _pre_upgrade(self, request: ResourcePatch) -> VersionedResource:
        """
        Verify the owning operator and the resource state. Read-only.

        Raises:
            PreconditionFailure: If any check fails
        """
        operator_check = self._check_operator(request)
        logger.info(
            f"  [{request.target_name}] {operator_check.check_name}: "
            f"{operator_check.status.value} - {operator_check.message}"
        )
        if operator_check.failed:
            raise PreconditionFailure(operator_check.message, [operator_check])

        resource = VersionedResource.from_object(
            self.accessor.get_resource(
                self.kind, request.target_name, request.target_namespace
            )
        )
        passed, checks = run_pre_checks(self.prechecks, resource, request)
        if not passed:
            raise PreconditionFailure(
                f"pre-checks failed for {self.kind.name} {request.target_name}: "
                f"{checks[-1].message}",
                [operator_check] + checks,
            )
        return resource

    def _check_operator(self, request: ResourcePatch) -> PreCheckResult:
        """Pre-check: every pod of the owning operator runs the target version."""
        operator = self.kind.operator
        if not operator:
            return PreCheckResult(
                check_name="operator_version",
                status=CheckStatus.PASSED,
                message=f"{self.kind.name} has no owning operator",
            )

        try:
            pods = self.accessor.list_pods(
                request.target_namespace, f"{COMPONENT_LABEL}={operator}"
            )
        except ApiError as e:
            return PreCheckResult(
                check_name="operator_version",
                status=CheckStatus.FAILED,
                message=f"Cannot list {operator} pods: {e}",
                details={"error": str(e), "reason": "api_error"},
            )

        if not pods:
            return PreCheckResult(
                check_name="operator_version",
                status=CheckStatus.FAILED,
                message=f"operator pod missing for {operator}",
                details={"reason": "operator_missing"},
            )

        for pod in pods:
            labels = (pod.get("metadata") or {}).get("labels") or {}
            version = labels.get(VERSION_LABEL, "")
            if version != request.to_version:
                return PreCheckResult(
                    check_name="operator_version",
                    status=CheckStatus.FAILED,
                    message=(
                        f"{operator} is in {version or 'unknown'} version, "
                        f"please upgrade it to {request.to_version} version"
                    ),
                    details={"version": version, "reason": "operator_not_upgraded"},
                )

        return PreCheckResult(
            check_name="operator_version",
            status=CheckStatus.PASSED,
            message=f"{operator} is in {request.to_version} version",
        )

    def _init(self, request: ResourcePatch, resource: VersionedResource) -> None:
        """Compute the delta that moves the resource to the target version."""
        request.computed_delta = compute_delta(
            resource.raw, lambda obj: self.kind.transform(obj, request.to_version)
        )
        if request.has_changes:
            logger.debug(
                f"Patch for {self.kind.name} {request.target_name}: "
                f"{request.computed_delta.decode('utf-8')}"
            )

    def _discover_children(self, request: ResourcePatch) -> List[str]:
        """List the names of the children owned by this resource."""
        child_kind = self.kind.child_kind
        if child_kind is None:
            return []

        items = self.accessor.list_resources(
            child_kind,
            request.target_namespace,
            self.kind.child_selector(request.target_name),
        )
        names = [(item.get("metadata") or {}).get("name", "") for item in items]
        logger.info(
            f"Found {len(names)} {child_kind.plural} owned by "
            f"{self.kind.name} {request.target_name}"
        )
        return names

    def _upgrade_children(self, request: ResourcePatch, children: List[str]) -> None:
        """Upgrade children one at a time, in listing order."""
        child_kind = self.kind.child_kind
        backoff_limit = None
        if not self.config.dry_run:
            backoff_limit = self._backoff_limit(request.target_namespace)

        for child_name in children:
            self.context.check()
            child_upgrader = DependencyUpgrader(
                child_kind,
                self.accessor,
                self.tasks,
                self.config,
                poller=self.poller,
                context=self.context,
                results=self.results,
                prechecks=self.prechecks,
            )
            child_request = request.for_child(child_name)
            task = self._load_unexhausted_task(child_kind, child_name)
            if self.config.dry_run:
                child_upgrader.upgrade_request(child_request)
                continue
            self._upgrade_child(child_upgrader, child_request, task, backoff_limit)

    def _load_unexhausted_task(
        self, child_kind: ResourceKind, child_name: str
    ) -> Optional[UpgradeTask]:
        """
        Read the child's task record. Read-only, also used in dry-run.

        Raises:
            ChildUpgradeFailure: If the child already failed permanently
        """
        task = self._load_task(child_kind.task_name(child_name))
        if task is not None and task.phase is UpgradePhase.ERROR:
            logger.error(
                f"Upgrade of {child_kind.name} {child_name} already failed "
                f"{task.retries} time(s), giving up: {task.reason or 'no reason recorded'}"
            )
            raise ChildUpgradeFailure(child_name, task.retries, exhausted=True)
        return task

    def _upgrade_child(
        self,
        child_upgrader: "DependencyUpgrader",
        child_request: ResourcePatch,
        task: Optional[UpgradeTask],
        backoff_limit: int,
    ) -> None:
        """
        Upgrade one child and record the outcome in its task.

        Cancellation and the run deadline stop the run without counting an
        attempt against the child.

        Raises:
            ChildUpgradeFailure: If the child failed
        """
        child_kind = child_upgrader.kind
        child_name = child_request.target_name

        self.context.check()
        try:
            result = child_upgrader.upgrade_request(child_request)
        except (UpgradeCancelled, RunDeadlineExceeded):
            raise
        except Exception as e:
            if task is None:
                task = self.tasks.new_task(child_kind, child_name, child_request)
            task.record_failure(backoff_limit, reason=str(e))
            logger.error(
                f"Upgrade of {child_kind.name} {child_name} failed "
                f"(attempt {task.retries}/{backoff_limit}): {e}"
            )
            self._save_task(task)
            raise ChildUpgradeFailure(
                child_name,
                task.retries,
                exhausted=task.phase is UpgradePhase.ERROR,
                child_error=e,
            ) from e

        if (
            task is not None
            and task.phase is UpgradePhase.SUCCESS
            and result.status == "up_to_date"
        ):
            return
        if task is None:
            task = self.tasks.new_task(child_kind, child_name, child_request)
        task.record_success()
        self._save_task(task)

    def _load_task(self, task_name: str) -> Optional[UpgradeTask]:
        """Fetch a task record; None if it does not exist or cannot be read."""
        try:
            return self.tasks.get_or_fail(task_name)
        except NotFoundError:
            return None
        except TaskStoreFailure as e:
            self._task_store_error(e)
            return None

    def _save_task(self, task: UpgradeTask) -> None:
        try:
            self.tasks.update(task)
        except (TaskStoreFailure, ConflictError) as e:
            self._task_store_error(e)

    def _task_store_error(self, error: Exception) -> None:
        """Abort when running as an upgrade Job, otherwise carry on."""
        if self.config.is_upgrade_task_job:
            raise error
        logger.warning(f"Ignoring upgrade task bookkeeping error: {error}")

    def _backoff_limit(self, namespace: str) -> int:
        """
        Resolve the retry ceiling for this parent run.

        Order: explicit config value, backoffLimit of the Job owning this
        pod, Kubernetes default.
        """
        if self.config.backoff_limit is not None:
            return self.config.backoff_limit

        if self.config.pod_name:
            try:
                pod = self.accessor.get_pod(self.config.pod_name, namespace)
                job_name = pod["metadata"]["labels"]["job-name"]
                job = self.accessor.get_job(job_name, namespace)
                limit = int(job["spec"]["backoffLimit"])
                logger.debug(f"Backoff limit {limit} read from job {job_name}")
                return limit
            except (ApiError, KeyError, TypeError, ValueError) as e:
                self._task_store_error(
                    TaskStoreFailure(f"cannot read backoff limit: {e}")
                )

        return DEFAULT_BACKOFF_LIMIT

    def _apply(self, request: ResourcePatch) -> bool:
        """
        Send the computed delta, if there is one.

        Returns:
            True if a patch was sent

        Raises:
            ApplyFailure: If the control plane rejects the patch
        """
        if not request.has_changes:
            logger.info(
                f"{self.kind.name} {request.target_name} already in "
                f"{request.to_version} version"
            )
            return False

        try:
            self.accessor.patch_resource(
                self.kind,
                request.target_name,
                request.target_namespace,
                request.computed_delta,
            )
        except ApiError as e:
            raise ApplyFailure(
                f"failed to patch {self.kind.name} {request.target_name}: {e}"
            ) from e
        logger.info(f"{self.kind.name} {request.target_name} patched")
        return True

    def _preview(self, request: ResourcePatch, resource: VersionedResource) -> None:
        if not request.has_changes:
            logger.info(
                f"DRY RUN: {self.kind.name} {request.target_name} already in "
                f"{request.to_version} version"
            )
            return
        preview = VersionedResource.from_object(
            apply_merge_patch(resource.raw, json.loads(request.computed_delta))
        )
        logger.info(
            f"DRY RUN: Would patch {self.kind.name} {request.target_name} "
            f"desired version {resource.desired_version or 'unset'} -> {preview.desired_version}"
        )

    def _record(
        self,
        request: ResourcePatch,
        status: str,
        start: float,
        error: Optional[str] = None,
    ) -> UpgradeResult:
        end = time.time()
        result = UpgradeResult(
            resource_name=request.target_name,
            kind=self.kind.name,
            namespace=request.target_namespace,
            status=status,
            start_time=start,
            end_time=end,
            duration_seconds=end - start,
            target_version=request.to_version,
            error_message=error,
        )
        self.results.append(result)
        return result
