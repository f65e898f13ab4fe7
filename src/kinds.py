"""
Resource kinds known to the upgrader.

A kind describes where a resource lives in the Kubernetes API, which
operator owns it, how its children are found and how its version marker is
moved forward. The upgrader itself is generic over these descriptors.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from errors import ConfigurationError

COMPONENT_LABEL = "openebs.io/component-name"
VERSION_LABEL = "openebs.io/version"


@dataclass(frozen=True)
class ResourceKind:
    """API location and upgrade wiring of one resource type."""

    name: str
    group: str
    version: str
    plural: str
    operator: str = ""
    child: Optional[str] = None
    child_label: str = ""
    task_prefix: str = ""
    task_spec_key: str = ""
    task_spec_field: str = ""

    @property
    def api_prefix(self) -> str:
        if not self.group:
            return f"api/{self.version}"
        return f"apis/{self.group}/{self.version}"

    def path(self, namespace: str, name: Optional[str] = None) -> str:
        """Collection path, or object path when ``name`` is given."""
        base = f"{self.api_prefix}/namespaces/{namespace}/{self.plural}"
        return f"{base}/{name}" if name else base

    @property
    def child_kind(self) -> Optional["ResourceKind"]:
        return get_kind(self.child) if self.child else None

    def child_selector(self, parent_name: str) -> str:
        """Label selector matching the children owned by ``parent_name``."""
        return f"{self.child_label}={parent_name}"

    def task_name(self, resource_name: str) -> str:
        return f"{self.task_prefix}{resource_name}"

    def task_spec(
        self, resource_name: str, from_version: str, to_version: str
    ) -> Dict[str, Any]:
        spec: Dict[str, Any] = {"fromVersion": from_version, "toVersion": to_version}
        if self.task_spec_key:
            spec[self.task_spec_key] = {self.task_spec_field: resource_name}
        return spec

    def transform(self, obj: Dict[str, Any], to_version: str) -> None:
        """Move the desired version marker of ``obj`` to ``to_version``."""
        details = obj.setdefault("versionDetails", {})
        details["desired"] = to_version


CSPI = ResourceKind(
    name="cspi",
    group="cstor.openebs.io",
    version="v1",
    plural="cstorpoolinstances",
    operator="cspc-operator",
    task_prefix="upgrade-cstor-cspi-",
    task_spec_key="cstorPoolInstance",
    task_spec_field="cspiName",
)

CSPC = ResourceKind(
    name="cspc",
    group="cstor.openebs.io",
    version="v1",
    plural="cstorpoolclusters",
    operator="cspc-operator",
    child="cspi",
    child_label="openebs.io/cstor-pool-cluster",
    task_prefix="upgrade-cstor-cspc-",
    task_spec_key="cstorPoolCluster",
    task_spec_field="cspcName",
)

UPGRADE_TASK = ResourceKind(
    name="upgradetask",
    group="openebs.io",
    version="v1alpha1",
    plural="upgradetasks",
)

POD = ResourceKind(name="pod", group="", version="v1", plural="pods")

JOB = ResourceKind(name="job", group="batch", version="v1", plural="jobs")

KINDS: Dict[str, ResourceKind] = {kind.name: kind for kind in (CSPC, CSPI)}


def get_kind(name: str) -> ResourceKind:
    """
    Look up an upgradable resource kind by its short name.

    Raises:
        ConfigurationError: If the kind is unknown
    """
    try:
        return KINDS[name.lower()]
    except KeyError:
        raise ConfigurationError(
            f"unknown resource kind '{name}', expected one of: {', '.join(sorted(KINDS))}"
        ) from None
