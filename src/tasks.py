"""
Upgrade task bookkeeping.

Each child resource that an orchestration run reached a decision about has
one UpgradeTask record. The record is the system of record for how many
attempts remain, so retries are counted across runs rather than in-process.
"""

import logging

from errors import ApiError, ConflictError, NotFoundError, TaskStoreFailure
from kinds import UPGRADE_TASK, ResourceKind
from models import ResourcePatch, UpgradeTask

logger = logging.getLogger(__name__)


class TaskTracker:
    """Reads and writes UpgradeTask records in one namespace."""

    def __init__(self, accessor, namespace: str):
        self.accessor = accessor
        self.namespace = namespace

    def get_or_fail(self, task_name: str) -> UpgradeTask:
        """
        Fetch an existing task record.

        Args:
            task_name: Derived task name, e.g. upgrade-cstor-cspi-<name>

        Returns:
            UpgradeTask as stored

        Raises:
            NotFoundError: If no record exists yet
            TaskStoreFailure: If the record cannot be read
        """
        try:
            obj = self.accessor.get_resource(UPGRADE_TASK, task_name, self.namespace)
        except NotFoundError:
            raise
        except ApiError as e:
            raise TaskStoreFailure(f"cannot read upgrade task {task_name}: {e}") from e
        return UpgradeTask.from_object(obj)

    def update(self, task: UpgradeTask) -> UpgradeTask:
        """
        Persist a task record, creating it on first write.

        Writes are last-writer-wins against the stored resourceVersion; a
        stale or duplicate write surfaces as ConflictError.

        Raises:
            ConflictError: If the write conflicts with the stored record
            TaskStoreFailure: If the record cannot be written
        """
        body = task.to_object()
        try:
            if task.is_new:
                stored = self.accessor.create_resource(UPGRADE_TASK, self.namespace, body)
                logger.debug(f"Created upgrade task {task.name}")
            else:
                stored = self.accessor.replace_resource(
                    UPGRADE_TASK, task.name, self.namespace, body
                )
                logger.debug(f"Updated upgrade task {task.name}")
        except ConflictError:
            raise
        except ApiError as e:
            raise TaskStoreFailure(f"cannot write upgrade task {task.name}: {e}") from e

        task.raw = stored
        return task

    def new_task(
        self, kind: ResourceKind, resource_name: str, request: ResourcePatch
    ) -> UpgradeTask:
        """Build an unsaved record for a resource that has none yet."""
        return UpgradeTask(
            name=kind.task_name(resource_name),
            namespace=self.namespace,
            spec=kind.task_spec(resource_name, request.from_version, request.to_version),
        )
