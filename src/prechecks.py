"""
Generic pre-upgrade checks for versioned resources.

Each check inspects the resource as read before any mutation and returns a
PreCheckResult. Resource-type specific validation is layered on top of these
by the caller.
"""

import logging
from typing import Callable, List, Sequence, Tuple

from models import CheckStatus, PreCheckResult, ResourcePatch, VersionedResource

logger = logging.getLogger(__name__)

PreCheck = Callable[[VersionedResource, ResourcePatch], PreCheckResult]


def check_resource_name(
    resource: VersionedResource, request: ResourcePatch
) -> PreCheckResult:
    """Pre-check: the object read back carries a name."""
    if not resource.name:
        return PreCheckResult(
            check_name="resource_name",
            status=CheckStatus.FAILED,
            message="Resource has no name",
            details={"reason": "missing_name"},
        )
    return PreCheckResult(
        check_name="resource_name",
        status=CheckStatus.PASSED,
        message=f"Resource {resource.name} found",
    )


def check_current_version(
    resource: VersionedResource, request: ResourcePatch
) -> PreCheckResult:
    """
    Pre-check: the reconciled version is the source or the target version.

    Anything else means the resource is on a version this run does not know
    how to move forward.
    """
    current = resource.current_version
    details = {
        "current_version": current,
        "from_version": request.from_version,
        "to_version": request.to_version,
    }
    if current == request.to_version:
        return PreCheckResult(
            check_name="current_version",
            status=CheckStatus.PASSED,
            message=f"Already reconciled to {current}",
            details=details,
        )
    if current == request.from_version:
        return PreCheckResult(
            check_name="current_version",
            status=CheckStatus.PASSED,
            message=f"Current version {current} can be upgraded",
            details=details,
        )
    details["reason"] = "unexpected_version"
    return PreCheckResult(
        check_name="current_version",
        status=CheckStatus.FAILED,
        message=(
            f"Current version {current or 'unset'} is neither "
            f"{request.from_version} nor {request.to_version}"
        ),
        details=details,
    )


def check_no_upgrade_in_flight(
    resource: VersionedResource, request: ResourcePatch
) -> PreCheckResult:
    """Pre-check: the desired version is not set to some third version."""
    desired = resource.desired_version
    if desired in (request.from_version, request.to_version):
        return PreCheckResult(
            check_name="upgrade_in_flight",
            status=CheckStatus.PASSED,
            message=f"Desired version is {desired}",
            details={"desired_version": desired},
        )
    if not desired:
        return PreCheckResult(
            check_name="upgrade_in_flight",
            status=CheckStatus.WARNING,
            message="Desired version is not set",
            details={"desired_version": desired},
        )
    return PreCheckResult(
        check_name="upgrade_in_flight",
        status=CheckStatus.FAILED,
        message=f"Another upgrade to {desired} is already in flight",
        details={"desired_version": desired, "reason": "operation_in_progress"},
    )


DEFAULT_PRECHECKS: Tuple[PreCheck, ...] = (
    check_resource_name,
    check_current_version,
    check_no_upgrade_in_flight,
)


def run_pre_checks(
    checks: Sequence[PreCheck],
    resource: VersionedResource,
    request: ResourcePatch,
) -> Tuple[bool, List[PreCheckResult]]:
    """
    Run checks in order, stopping at the first failure.

    Returns:
        Tuple of (passed, list of PreCheckResult)
        passed=True only if no check failed; warnings are ok
    """
    results: List[PreCheckResult] = []
    for check in checks:
        result = check(resource, request)
        results.append(result)
        logger.info(
            f"  [{request.target_name}] {result.check_name}: {result.status.value} - {result.message}"
        )
        if result.failed:
            return False, results
    return True, results
