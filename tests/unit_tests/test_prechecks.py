"""
Unit tests for generic pre-upgrade checks.
"""

import unittest

from models import CheckStatus, PreCheckResult, ResourcePatch, VersionedResource
from prechecks import (
    DEFAULT_PRECHECKS,
    check_current_version,
    check_no_upgrade_in_flight,
    check_resource_name,
    run_pre_checks,
)

REQUEST = ResourcePatch("cspc-a", "openebs", "2.0.0", "2.1.0")


def make_resource(name="cspc-a", desired="2.0.0", current="2.0.0"):
    return VersionedResource(
        name=name, namespace="openebs", desired_version=desired, current_version=current
    )


class TestPreChecks(unittest.TestCase):
    """Test individual pre-checks."""

    def test_resource_name(self):
        """Test a resource without a name fails."""
        self.assertEqual(
            check_resource_name(make_resource(), REQUEST).status, CheckStatus.PASSED
        )
        self.assertTrue(check_resource_name(make_resource(name=""), REQUEST).failed)

    def test_current_version(self):
        """Test only the source and target versions are accepted."""
        cases = [
            ("2.0.0", CheckStatus.PASSED),
            ("2.1.0", CheckStatus.PASSED),
            ("1.12.0", CheckStatus.FAILED),
            ("", CheckStatus.FAILED),
        ]
        for current, expected in cases:
            with self.subTest(current=current):
                result = check_current_version(make_resource(current=current), REQUEST)
                self.assertEqual(result.status, expected)

    def test_current_version_failure_reason(self):
        """Test the failure names the unexpected version."""
        result = check_current_version(make_resource(current="1.12.0"), REQUEST)

        self.assertEqual(result.details["reason"], "unexpected_version")
        self.assertIn("1.12.0", result.message)

    def test_upgrade_in_flight(self):
        """Test a desired version other than source or target fails."""
        cases = [
            ("2.0.0", CheckStatus.PASSED),
            ("2.1.0", CheckStatus.PASSED),
            ("", CheckStatus.WARNING),
            ("3.0.0", CheckStatus.FAILED),
        ]
        for desired, expected in cases:
            with self.subTest(desired=desired):
                result = check_no_upgrade_in_flight(make_resource(desired=desired), REQUEST)
                self.assertEqual(result.status, expected)


class TestRunPreChecks(unittest.TestCase):
    """Test running a sequence of checks."""

    def test_all_pass(self):
        """Test a healthy resource passes every default check."""
        passed, results = run_pre_checks(DEFAULT_PRECHECKS, make_resource(), REQUEST)

        self.assertTrue(passed)
        self.assertEqual(len(results), len(DEFAULT_PRECHECKS))

    def test_warning_does_not_fail(self):
        """Test warnings are reported but do not block."""
        passed, results = run_pre_checks(
            DEFAULT_PRECHECKS, make_resource(desired=""), REQUEST
        )

        self.assertTrue(passed)
        self.assertEqual(results[-1].status, CheckStatus.WARNING)

    def test_stops_at_first_failure(self):
        """Test checks after a failure are not run."""
        calls = []

        def failing(resource, request):
            calls.append("failing")
            return PreCheckResult("failing", CheckStatus.FAILED, "nope")

        def never(resource, request):
            calls.append("never")
            return PreCheckResult("never", CheckStatus.PASSED, "ok")

        with self.assertLogs("prechecks", level="INFO"):
            passed, results = run_pre_checks((failing, never), make_resource(), REQUEST)

        self.assertFalse(passed)
        self.assertEqual(calls, ["failing"])
        self.assertEqual([r.check_name for r in results], ["failing"])


if __name__ == "__main__":
    unittest.main()
