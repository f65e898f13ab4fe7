"""
Run driver: one orchestration per named parent resource, plus the report.
"""

import json
import logging
import time
from datetime import datetime
from typing import Dict, List, Optional

from clients import KubeRestClient
from config import UpgraderConfig
from errors import (
    ConfigurationError,
    RunDeadlineExceeded,
    UpgradeCancelled,
    UpgradeError,
)
from kinds import get_kind
from models import UpgradeResult
from poller import RunContext
from tasks import TaskTracker
from upgrader import DependencyUpgrader

logger = logging.getLogger(__name__)


class UpgradeRunner:
    """Upgrades every configured resource of one kind, one after another."""

    def __init__(
        self,
        config: UpgraderConfig,
        accessor=None,
        tasks: Optional[TaskTracker] = None,
        context: Optional[RunContext] = None,
    ):
        """
        Set up the runner.

        Args:
            config: Run configuration
            accessor: Resource accessor; a KubeRestClient is built when omitted
            tasks: Task tracker; built on the accessor when omitted
            context: Cancellation and deadline shared by all runs

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        config.validate()
        if not config.resource_names:
            raise ConfigurationError("at least one resource name is required")

        self.config = config
        self.kind = get_kind(config.resource_kind)
        self.accessor = accessor or KubeRestClient(
            api_server=config.api_server,
            ca_cert=config.ca_cert,
            timeout_s=config.request_timeout,
            token_file=config.token_file,
        )
        self.tasks = tasks or TaskTracker(self.accessor, config.namespace)
        self.context = context or RunContext()

        self.stats = {
            "total": 0,
            "upgraded": 0,
            "up_to_date": 0,
            "dry_run": 0,
            "failed": 0,
        }

        # Timing and results tracking
        self.run_start_time: Optional[float] = None
        self.run_end_time: Optional[float] = None
        self.results: List[UpgradeResult] = []

    def run(self) -> Dict:
        """
        Execute the upgrade of every configured resource.

        A failed resource does not stop the next one; cancellation or the run
        deadline does.

        Returns:
            Statistics dictionary
        """
        self.run_start_time = time.time()

        logger.info("=" * 70)
        logger.info(f"cStor {self.kind.name.upper()} Upgrade")
        logger.info("=" * 70)
        logger.info(f"Namespace: {self.config.namespace}")
        logger.info(f"Resources: {', '.join(self.config.resource_names)}")
        logger.info(f"From version: {self.config.from_version}")
        logger.info(f"To version: {self.config.to_version}")
        logger.info(f"Dry run: {self.config.dry_run}")
        logger.info(f"Upgrade task job: {self.config.is_upgrade_task_job}")
        logger.info(f"Poll interval: {self.config.poll_interval}s")
        logger.info(f"Convergence timeout: {self.config.convergence_timeout}s")
        logger.info(f"Start time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        logger.info("=" * 70)

        upgrader = DependencyUpgrader(
            self.kind,
            self.accessor,
            self.tasks,
            self.config,
            context=self.context,
            results=self.results,
        )

        for name in self.config.resource_names:
            self.stats["total"] += 1
            try:
                result = upgrader.upgrade(
                    name,
                    self.config.namespace,
                    self.config.from_version,
                    self.config.to_version,
                )
            except (UpgradeCancelled, RunDeadlineExceeded) as e:
                logger.error(f"Upgrade of {self.kind.name} {name} stopped: {e}")
                self.stats["failed"] += 1
                break
            except UpgradeError as e:
                logger.error(f"Upgrade of {self.kind.name} {name} FAILED: {e}")
                self.stats["failed"] += 1
                continue

            if result.status == "success":
                self.stats["upgraded"] += 1
            else:
                self.stats[result.status] += 1

        self.run_end_time = time.time()
        self._print_report()

        return self.stats

    def _format_duration(self, seconds: float) -> str:
        """Format duration in human-readable format."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            mins = int(seconds // 60)
            secs = seconds % 60
            return f"{mins}m {secs:.0f}s"
        else:
            hours = int(seconds // 3600)
            mins = int((seconds % 3600) // 60)
            secs = seconds % 60
            return f"{hours}h {mins}m {secs:.0f}s"

    def _print_report(self):
        """Print timing and status report for every resource processed."""
        total_duration = self.run_end_time - self.run_start_time

        logger.info("")
        logger.info("=" * 70)
        logger.info("UPGRADE REPORT")
        logger.info("=" * 70)
        logger.info(f"Total duration:  {self._format_duration(total_duration)}")

        logger.info("")
        logger.info("STATISTICS")
        logger.info("-" * 40)
        for k, v in self.stats.items():
            logger.info(f"{k:20s}: {v}")

        if self.results:
            logger.info("")
            logger.info("RESOURCES")
            logger.info("-" * 40)
            logger.info(
                f"{'Kind':<6} {'Name':<40} {'Status':<12} {'Duration':<10} {'Error'}"
            )
            logger.info("-" * 70)
            for r in self.results:
                duration_str = (
                    self._format_duration(r.duration_seconds)
                    if r.duration_seconds is not None
                    else "N/A"
                )
                error = (
                    (r.error_message[:60] + "...")
                    if r.error_message and len(r.error_message) > 60
                    else (r.error_message or "")
                )
                logger.info(
                    f"{r.kind:<6} {r.resource_name:<40} {r.status:<12} {duration_str:<10} {error}"
                )

        logger.info("")
        logger.info("=" * 70)

        if self.config.report_file:
            self._export_results_json(self.config.report_file)

    def _export_results_json(self, filename: str):
        """Export results to a JSON file for further processing."""
        report = {
            "namespace": self.config.namespace,
            "kind": self.kind.name,
            "from_version": self.config.from_version,
            "to_version": self.config.to_version,
            "dry_run": self.config.dry_run,
            "start_time": datetime.fromtimestamp(self.run_start_time).isoformat(),
            "end_time": datetime.fromtimestamp(self.run_end_time).isoformat(),
            "total_duration_seconds": self.run_end_time - self.run_start_time,
            "statistics": self.stats,
            "results": [
                {
                    "kind": r.kind,
                    "resource_name": r.resource_name,
                    "namespace": r.namespace,
                    "status": r.status,
                    "duration_seconds": r.duration_seconds,
                    "target_version": r.target_version,
                    "error_message": r.error_message,
                }
                for r in self.results
            ],
        }

        with open(filename, "w") as f:
            json.dump(report, f, indent=2)
        logger.info(f"Detailed report exported to: {filename}")
