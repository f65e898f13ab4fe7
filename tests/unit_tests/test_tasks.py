"""
Unit tests for TaskTracker.
"""

import unittest
from unittest.mock import MagicMock

from errors import ApiError, ConflictError, NotFoundError, TaskStoreFailure
from kinds import CSPI, UPGRADE_TASK
from models import ResourcePatch, UpgradePhase
from tasks import TaskTracker


class TestTaskTracker(unittest.TestCase):
    """Test task record reads and writes."""

    def setUp(self):
        self.accessor = MagicMock()
        self.tracker = TaskTracker(self.accessor, "openebs")
        self.request = ResourcePatch("cspc-a", "openebs", "2.0.0", "2.1.0")

    def test_get_or_fail_returns_task(self):
        """Test a stored record is decoded."""
        self.accessor.get_resource.return_value = {
            "metadata": {"name": "upgrade-cstor-cspi-a", "resourceVersion": "3"},
            "status": {"phase": "Success", "retries": 1},
        }

        task = self.tracker.get_or_fail("upgrade-cstor-cspi-a")

        self.accessor.get_resource.assert_called_once_with(
            UPGRADE_TASK, "upgrade-cstor-cspi-a", "openebs"
        )
        self.assertEqual(task.phase, UpgradePhase.SUCCESS)
        self.assertEqual(task.retries, 1)
        self.assertFalse(task.is_new)

    def test_get_or_fail_not_found_passes_through(self):
        """Test a missing record is reported as NotFoundError."""
        self.accessor.get_resource.side_effect = NotFoundError("gone", status_code=404)

        with self.assertRaises(NotFoundError):
            self.tracker.get_or_fail("upgrade-cstor-cspi-a")

    def test_get_or_fail_api_error(self):
        """Test other read errors become TaskStoreFailure."""
        self.accessor.get_resource.side_effect = ApiError("forbidden", status_code=403)

        with self.assertRaises(TaskStoreFailure) as ctx:
            self.tracker.get_or_fail("upgrade-cstor-cspi-a")

        self.assertIn("forbidden", str(ctx.exception))

    def test_new_task(self):
        """Test an unsaved record carries the derived name and spec."""
        task = self.tracker.new_task(CSPI, "cspi-a", self.request)

        self.assertEqual(task.name, "upgrade-cstor-cspi-cspi-a")
        self.assertEqual(task.namespace, "openebs")
        self.assertEqual(task.phase, UpgradePhase.PENDING)
        self.assertEqual(
            task.spec,
            {
                "fromVersion": "2.0.0",
                "toVersion": "2.1.0",
                "cstorPoolInstance": {"cspiName": "cspi-a"},
            },
        )
        self.assertTrue(task.is_new)

    def test_update_creates_new_task(self):
        """Test the first write creates the record and keeps what was stored."""
        stored = {"metadata": {"name": "upgrade-cstor-cspi-cspi-a", "resourceVersion": "1"}}
        self.accessor.create_resource.return_value = stored
        task = self.tracker.new_task(CSPI, "cspi-a", self.request)
        task.record_success()

        self.tracker.update(task)

        args = self.accessor.create_resource.call_args[0]
        self.assertEqual(args[0], UPGRADE_TASK)
        self.assertEqual(args[1], "openebs")
        self.assertEqual(args[2]["status"]["phase"], "Success")
        self.accessor.replace_resource.assert_not_called()
        self.assertIs(task.raw, stored)
        self.assertFalse(task.is_new)

    def test_update_replaces_stored_task(self):
        """Test later writes replace the record."""
        self.accessor.get_resource.return_value = {
            "metadata": {"name": "upgrade-cstor-cspi-a", "resourceVersion": "3"},
            "status": {"phase": "InProgress", "retries": 1},
        }
        task = self.tracker.get_or_fail("upgrade-cstor-cspi-a")
        task.record_failure(3)

        self.tracker.update(task)

        name = self.accessor.replace_resource.call_args[0][1]
        body = self.accessor.replace_resource.call_args[0][3]
        self.assertEqual(name, "upgrade-cstor-cspi-a")
        self.assertEqual(body["metadata"]["resourceVersion"], "3")
        self.assertEqual(body["status"]["retries"], 2)
        self.accessor.create_resource.assert_not_called()

    def test_update_conflict_passes_through(self):
        """Test a conflicting write is reported as ConflictError."""
        self.accessor.create_resource.side_effect = ConflictError(
            "exists", status_code=409
        )
        task = self.tracker.new_task(CSPI, "cspi-a", self.request)

        with self.assertRaises(ConflictError):
            self.tracker.update(task)

    def test_update_api_error(self):
        """Test other write errors become TaskStoreFailure."""
        self.accessor.create_resource.side_effect = ApiError("boom", status_code=500)
        task = self.tracker.new_task(CSPI, "cspi-a", self.request)

        with self.assertRaises(TaskStoreFailure):
            self.tracker.update(task)
        self.assertTrue(task.is_new)


if __name__ == "__main__":
    unittest.main()
