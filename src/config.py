"""
Configuration management for the cStor pool upgrader.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from errors import ConfigurationError
from kinds import KINDS

DEFAULT_API_SERVER = "https://kubernetes.default.svc"


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.environ.get(key, "").lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    return default


def _env_int(key: str, default: Optional[int]) -> Optional[int]:
    value = os.environ.get(key, "")
    if value:
        try:
            return int(value)
        except ValueError:
            raise ConfigurationError(f"{key} must be an integer, got '{value}'") from None
    return default


@dataclass
class UpgraderConfig:
    """Configuration for one upgrade invocation."""

    namespace: str
    from_version: str
    to_version: str
    resource_kind: str = "cspc"
    resource_names: List[str] = field(default_factory=list)
    api_server: str = DEFAULT_API_SERVER
    ca_cert: Optional[str] = None
    token_file: Optional[str] = None
    backoff_limit: Optional[int] = None
    pod_name: Optional[str] = None
    is_upgrade_task_job: bool = False
    dry_run: bool = False
    poll_interval: int = 10
    convergence_timeout: int = 1800
    request_timeout: int = 60
    report_file: Optional[str] = None
    verbose: bool = False

    def validate(self) -> None:
        """
        Check that the configuration can drive an upgrade.

        Raises:
            ConfigurationError: On the first invalid field
        """
        if not self.namespace:
            raise ConfigurationError("namespace is required")
        if not self.from_version or not self.to_version:
            raise ConfigurationError("from_version and to_version are required")
        if self.resource_kind.lower() not in KINDS:
            raise ConfigurationError(
                f"unknown resource kind '{self.resource_kind}', "
                f"expected one of: {', '.join(sorted(KINDS))}"
            )
        if self.backoff_limit is not None and self.backoff_limit < 0:
            raise ConfigurationError("backoff_limit must not be negative")
        if self.poll_interval <= 0:
            raise ConfigurationError("poll_interval must be positive")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")

    @classmethod
    def from_args(cls, args) -> "UpgraderConfig":
        """
        Create configuration from command-line arguments.

        Args:
            args: Parsed argparse arguments

        Returns:
            UpgraderConfig instance
        """
        return cls(
            namespace=args.namespace,
            from_version=args.from_version,
            to_version=args.to_version,
            resource_kind=args.kind,
            resource_names=list(args.names),
            api_server=args.api_server,
            ca_cert=args.ca_cert,
            token_file=args.token_file,
            backoff_limit=args.backoff_limit,
            pod_name=args.pod_name,
            is_upgrade_task_job=args.upgrade_task_job,
            dry_run=args.dry_run,
            poll_interval=args.poll_interval,
            convergence_timeout=args.convergence_timeout,
            request_timeout=args.request_timeout,
            report_file=args.report_file,
            verbose=args.verbose,
        )

    @classmethod
    def from_env(cls) -> "UpgraderConfig":
        """
        Create configuration from environment variables, as set on an
        upgrade Job's pod.

        Returns:
            UpgraderConfig instance
        """
        return cls(
            namespace=os.environ.get("OPENEBS_NAMESPACE", ""),
            from_version=os.environ.get("FROM_VERSION", ""),
            to_version=os.environ.get("TO_VERSION", ""),
            resource_kind=os.environ.get("RESOURCE_KIND", "cspc"),
            resource_names=os.environ.get("RESOURCE_NAMES", "").split(),
            api_server=os.environ.get("KUBERNETES_API_SERVER", DEFAULT_API_SERVER),
            ca_cert=os.environ.get("KUBERNETES_CA_CERT") or None,
            token_file=os.environ.get("KUBERNETES_TOKEN_FILE") or None,
            backoff_limit=_env_int("UPGRADE_BACKOFF_LIMIT", None),
            pod_name=os.environ.get("POD_NAME") or None,
            is_upgrade_task_job=_env_bool("UPGRADE_TASK_JOB"),
            dry_run=_env_bool("DRY_RUN"),
            poll_interval=_env_int("POLL_INTERVAL", 10),
            convergence_timeout=_env_int("CONVERGENCE_TIMEOUT", 1800),
            request_timeout=_env_int("REQUEST_TIMEOUT", 60),
            report_file=os.environ.get("REPORT_FILE") or None,
            verbose=_env_bool("VERBOSE"),
        )
