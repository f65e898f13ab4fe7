"""Console entry point for the cStor pool upgrader CLI."""

from __future__ import annotations

import argparse
import os
from typing import List

from config import DEFAULT_API_SERVER, UpgraderConfig
from errors import ConfigurationError
from kinds import KINDS
from log_utils import setup_logging
from runner import UpgradeRunner


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description=(
            "Upgrade cStor pool clusters and the pool instances they own.\n\n"
            "Pool instances are upgraded first, one at a time; the pool cluster "
            "is only moved to the new version once every instance has converged."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  # Check what would change\n"
            "  cstor-upgrade --namespace openebs --from-version 2.0.0 "
            "--to-version 2.1.0 --dry-run cspc-a\n\n"
            "  # Upgrade two pool clusters as an upgrade Job\n"
            "  cstor-upgrade --namespace openebs --from-version 2.0.0 "
            "--to-version 2.1.0 --upgrade-task-job cspc-a cspc-b\n\n"
            "  # Inside an upgrade Job configured through its environment\n"
            "  cstor-upgrade --from-env\n"
        ),
    )

    target = parser.add_argument_group(
        "target", "required unless --from-env is given"
    )
    target.add_argument(
        "--namespace",
        metavar="NAMESPACE",
        help="Namespace of the OpenEBS control plane and pool resources",
    )
    target.add_argument("--from-version", help="Version the resources are on")
    target.add_argument("--to-version", help="Version to upgrade the resources to")
    parser.add_argument(
        "names", nargs="*", metavar="NAME", help="Resources to upgrade"
    )

    mode = parser.add_argument_group("operation mode")
    mode.add_argument(
        "--from-env",
        action="store_true",
        help=(
            "Read the whole configuration from the upgrade Job's environment "
            "(OPENEBS_NAMESPACE, FROM_VERSION, TO_VERSION, RESOURCE_NAMES, ...)"
        ),
    )
    mode.add_argument(
        "--kind",
        default="cspc",
        choices=sorted(KINDS),
        help="Kind of the named resources (default: cspc)",
    )
    mode.add_argument(
        "--dry-run",
        action="store_true",
        help="Run pre-checks and compute patches without changing anything",
    )
    mode.add_argument(
        "--upgrade-task-job",
        action="store_true",
        help="Running as an upgrade Job: upgrade task errors abort the run",
    )

    retries = parser.add_argument_group("retries and timeouts")
    retries.add_argument(
        "--backoff-limit",
        type=int,
        default=None,
        metavar="N",
        help=(
            "Failed attempts tolerated per pool instance across runs "
            "(default: read from the owning Job, else 6)"
        ),
    )
    retries.add_argument(
        "--pod-name",
        default=os.environ.get("POD_NAME"),
        help="Name of the pod running this upgrade, used to find its Job",
    )
    retries.add_argument(
        "--poll-interval",
        type=int,
        default=10,
        metavar="SECONDS",
        help="Time between convergence checks (default: 10)",
    )
    retries.add_argument(
        "--convergence-timeout",
        type=int,
        default=1800,
        metavar="SECONDS",
        help="Maximum wait per resource for convergence, 0 waits forever (default: 1800)",
    )
    retries.add_argument(
        "--request-timeout",
        type=int,
        default=60,
        metavar="SECONDS",
        help="Timeout of a single API request (default: 60)",
    )

    api = parser.add_argument_group("control plane")
    api.add_argument(
        "--api-server",
        default=os.environ.get("KUBERNETES_API_SERVER", DEFAULT_API_SERVER),
        help=f"Kubernetes API server URL (default: {DEFAULT_API_SERVER})",
    )
    api.add_argument("--ca-cert", help="CA bundle for the API server certificate")
    api.add_argument(
        "--token-file",
        help="Bearer token file to use instead of Google application default credentials",
    )

    output = parser.add_argument_group("logging and output")
    output.add_argument("--report-file", help="Write a JSON report to this path")
    output.add_argument(
        "--log-file",
        default="cstor-upgrade.log",
        help="Log file path, empty for stdout only (default: cstor-upgrade.log)",
    )
    output.add_argument("--verbose", action="store_true")
    return parser


def main(argv: List[str] | None = None) -> int:
    """CLI main for console_scripts entry point."""
    parser = build_parser()
    args = parser.parse_args(args=argv)

    try:
        if args.from_env:
            config = UpgraderConfig.from_env()
        else:
            config = UpgraderConfig.from_args(args)
    except ConfigurationError as e:
        parser.error(str(e))

    setup_logging(
        verbose=config.verbose or args.verbose, log_file=args.log_file or None
    )

    try:
        runner = UpgradeRunner(config)
    except ConfigurationError as e:
        parser.error(str(e))

    stats = runner.run()
    return 1 if stats.get("failed", 0) > 0 else 0
