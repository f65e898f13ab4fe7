"""
Data models for the cStor pool upgrader.
"""

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_now() -> datetime:
    """Current time truncated to whole seconds, as Kubernetes stores it."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def format_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime(TIME_FORMAT)


def parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, TIME_FORMAT).replace(tzinfo=timezone.utc)


@dataclass
class VersionedResource:
    """A namespaced resource carrying desired and current version markers."""

    name: str
    namespace: str
    desired_version: str = ""
    current_version: str = ""
    status_message: str = ""
    status_reason: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "VersionedResource":
        """
        Build from a Kubernetes object as returned by the API.

        Args:
            obj: Decoded JSON object with metadata and versionDetails

        Returns:
            VersionedResource instance
        """
        metadata = obj.get("metadata") or {}
        details = obj.get("versionDetails") or {}
        status = details.get("status") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            desired_version=details.get("desired") or "",
            current_version=status.get("current") or "",
            status_message=status.get("message") or "",
            status_reason=status.get("reason") or "",
            labels=dict(metadata.get("labels") or {}),
            raw=obj,
        )

    def is_converged(self, version: str) -> bool:
        return self.current_version == version


@dataclass
class ResourcePatch:
    """One upgrade attempt for one resource. Never persisted."""

    target_name: str
    target_namespace: str
    from_version: str
    to_version: str
    computed_delta: bytes = b""

    def for_child(self, child_name: str) -> "ResourcePatch":
        """Same versions, scoped to a child resource, delta not yet computed."""
        return replace(self, target_name=child_name, computed_delta=b"")

    @property
    def has_changes(self) -> bool:
        return bool(self.computed_delta) and self.computed_delta != b"{}"


class UpgradePhase(Enum):
    """Phases of an upgrade task record."""

    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    SUCCESS = "Success"
    ERROR = "Error"

    @classmethod
    def parse(cls, value: Optional[str]) -> "UpgradePhase":
        for phase in cls:
            if phase.value == value:
                return phase
        return cls.PENDING


@dataclass
class UpgradeTask:
    """Persisted record of one child resource's upgrade attempts."""

    name: str
    namespace: str
    phase: UpgradePhase = UpgradePhase.PENDING
    retries: int = 0
    completed_time: Optional[datetime] = None
    reason: str = ""
    spec: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_new(self) -> bool:
        """True until the record has been stored by the control plane."""
        metadata = self.raw.get("metadata") or {}
        return not metadata.get("resourceVersion")

    def record_failure(
        self, backoff_limit: int, reason: str = "", now: Optional[datetime] = None
    ) -> None:
        """
        Count one failed attempt.

        Retries are clamped to the backoff limit; reaching it moves the task
        to the Error phase and stamps the completion time.

        Args:
            backoff_limit: Maximum number of failed attempts tolerated
            reason: Diagnostic text describing the failure
            now: Override for the completion timestamp

        Raises:
            ValueError: If the task already failed permanently
        """
        if self.phase is UpgradePhase.ERROR:
            raise ValueError(f"task {self.name} already failed permanently")

        limit = max(backoff_limit, 0)
        self.retries = max(self.retries, min(self.retries + 1, limit))
        self.reason = reason

        if self.retries >= limit:
            self.phase = UpgradePhase.ERROR
            self.completed_time = now or utc_now()
        elif self.phase is UpgradePhase.PENDING:
            self.phase = UpgradePhase.IN_PROGRESS

    def record_success(self, now: Optional[datetime] = None) -> None:
        """
        Mark the upgrade as completed.

        Raises:
            ValueError: If the task already failed permanently
        """
        if self.phase is UpgradePhase.ERROR:
            raise ValueError(f"task {self.name} already failed permanently")
        self.phase = UpgradePhase.SUCCESS
        self.completed_time = now or utc_now()
        self.reason = ""

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "UpgradeTask":
        metadata = obj.get("metadata") or {}
        status = obj.get("status") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            phase=UpgradePhase.parse(status.get("phase")),
            retries=int(status.get("retries") or 0),
            completed_time=parse_time(status.get("completedTime")),
            reason=status.get("message") or "",
            spec=dict(obj.get("spec") or {}),
            raw=obj,
        )

    def to_object(self) -> Dict[str, Any]:
        """Render as an UpgradeTask object, keeping fields this model ignores."""
        obj = copy.deepcopy(self.raw)
        obj.setdefault("apiVersion", "openebs.io/v1alpha1")
        obj.setdefault("kind", "UpgradeTask")
        metadata = obj.setdefault("metadata", {})
        metadata["name"] = self.name
        metadata["namespace"] = self.namespace
        if self.spec:
            obj["spec"] = copy.deepcopy(self.spec)

        status = obj.setdefault("status", {})
        status["phase"] = self.phase.value
        status["retries"] = self.retries
        if self.completed_time is not None:
            status["completedTime"] = format_time(self.completed_time)
        if self.reason:
            status["message"] = self.reason
        else:
            status.pop("message", None)
        return obj


class CheckStatus(Enum):
    """Status codes for pre-check validations."""

    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"


class PreCheckResult:
    """Result of a single pre-check validation."""

    def __init__(
        self,
        check_name: str,
        status: CheckStatus,
        message: str,
        details: Optional[Dict] = None,
    ):
        self.check_name = check_name
        self.status = status
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now()

    @property
    def failed(self) -> bool:
        return self.status is CheckStatus.FAILED

    def to_dict(self) -> Dict:
        """Convert to dictionary for logging/reporting."""
        return {
            "check_name": self.check_name,
            "status": self.status.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class UpgradeResult:
    """Result of upgrading one resource."""

    resource_name: str
    kind: str
    namespace: str
    status: str  # "success", "up_to_date", "dry_run", "failed"
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    duration_seconds: Optional[float] = None
    target_version: Optional[str] = None
    error_message: Optional[str] = None
