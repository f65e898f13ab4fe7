"""
cStor Pool Upgrade Tool.
"""

from clients import KubeRestClient
from config import UpgraderConfig
from log_utils import setup_logging
from models import ResourcePatch, UpgradeResult, UpgradeTask, VersionedResource
from poller import ConvergencePoller, RunContext
from runner import UpgradeRunner
from tasks import TaskTracker
from upgrader import DependencyUpgrader

__all__ = [
    "KubeRestClient",
    "UpgraderConfig",
    "setup_logging",
    "ResourcePatch",
    "UpgradeResult",
    "UpgradeTask",
    "VersionedResource",
    "ConvergencePoller",
    "RunContext",
    "UpgradeRunner",
    "TaskTracker",
    "DependencyUpgrader",
]
