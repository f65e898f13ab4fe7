"""
In-memory stand-in for the Kubernetes control plane used by upgrader tests.
"""

import copy
import json

from errors import ApiError, ConflictError, NotFoundError
from kinds import COMPONENT_LABEL, VERSION_LABEL
from patch_data import apply_merge_patch


def _matches(labels, selector):
    if not selector:
        return True
    for term in selector.split(","):
        key, _, value = term.partition("=")
        if labels.get(key) != value:
            return False
    return True


class FakeControlPlane:
    """Stores objects per (plural, namespace, name) and reconciles on patch."""

    def __init__(self, namespace="openebs", operator_version="2.1.0"):
        self.namespace = namespace
        self.objects = {}
        self.pods = []
        self.jobs = {}
        self.patches = []
        self.task_writes = []
        self.fail_patch = set()
        self.stalled = {}
        self.task_store_error = None
        self._version = 0
        if operator_version is not None:
            self.add_pod(
                "cspc-operator-abc",
                {COMPONENT_LABEL: "cspc-operator", VERSION_LABEL: operator_version},
            )

    def _next_version(self):
        self._version += 1
        return str(self._version)

    def add_pod(self, name, labels):
        self.pods.append(
            {"metadata": {"name": name, "namespace": self.namespace, "labels": labels}}
        )

    def add_resource(self, kind, name, desired, current, labels=None):
        self.objects[(kind.plural, self.namespace, name)] = {
            "apiVersion": f"{kind.group}/{kind.version}",
            "metadata": {
                "name": name,
                "namespace": self.namespace,
                "labels": labels or {},
                "resourceVersion": self._next_version(),
            },
            "spec": {"pools": [{"nodeSelector": {"kubernetes.io/hostname": name}}]},
            "versionDetails": {
                "autoUpgrade": False,
                "desired": desired,
                "status": {"current": current, "state": "Reconciled"},
            },
        }

    def resource(self, kind, name):
        return self.objects[(kind.plural, self.namespace, name)]

    def patched_names(self, kind):
        return [name for kind_name, name, _ in self.patches if kind_name == kind.name]

    # accessor interface

    def get_resource(self, kind, name, namespace):
        if kind.plural == "upgradetasks" and self.task_store_error:
            raise self.task_store_error
        try:
            return copy.deepcopy(self.objects[(kind.plural, namespace, name)])
        except KeyError:
            raise NotFoundError(f"{kind.name} {name} not found", status_code=404)

    def list_resources(self, kind, namespace, selector=None):
        return [
            copy.deepcopy(obj)
            for (plural, ns, _), obj in self.objects.items()
            if plural == kind.plural
            and ns == namespace
            and _matches(obj["metadata"].get("labels") or {}, selector)
        ]

    def patch_resource(self, kind, name, namespace, delta):
        self.patches.append((kind.name, name, delta))
        if name in self.fail_patch:
            raise ApiError(f"patch {kind.name} {name} rejected", status_code=422)
        key = (kind.plural, namespace, name)
        obj = apply_merge_patch(self.objects[key], json.loads(delta))
        status = obj["versionDetails"]["status"]
        if name in self.stalled:
            status["message"] = self.stalled[name]
            status["reason"] = "ReconcileFailed"
        else:
            status["current"] = obj["versionDetails"]["desired"]
        obj["metadata"]["resourceVersion"] = self._next_version()
        self.objects[key] = obj
        return copy.deepcopy(obj)

    def create_resource(self, kind, namespace, body):
        if self.task_store_error:
            raise self.task_store_error
        key = (kind.plural, namespace, body["metadata"]["name"])
        if key in self.objects:
            raise ConflictError(f"{key[2]} already exists", status_code=409)
        stored = copy.deepcopy(body)
        stored["metadata"]["resourceVersion"] = self._next_version()
        self.objects[key] = stored
        self.task_writes.append(("create", key[2]))
        return copy.deepcopy(stored)

    def replace_resource(self, kind, name, namespace, body):
        if self.task_store_error:
            raise self.task_store_error
        key = (kind.plural, namespace, name)
        if key not in self.objects:
            raise NotFoundError(f"{name} not found", status_code=404)
        stored = copy.deepcopy(body)
        stored["metadata"]["resourceVersion"] = self._next_version()
        self.objects[key] = stored
        self.task_writes.append(("replace", name))
        return copy.deepcopy(stored)

    def list_pods(self, namespace, selector):
        return [
            copy.deepcopy(pod)
            for pod in self.pods
            if _matches(pod["metadata"]["labels"], selector)
        ]

    def get_pod(self, name, namespace):
        for pod in self.pods:
            if pod["metadata"]["name"] == name:
                return copy.deepcopy(pod)
        raise NotFoundError(f"pod {name} not found", status_code=404)

    def get_job(self, name, namespace):
        try:
            return copy.deepcopy(self.jobs[name])
        except KeyError:
            raise NotFoundError(f"job {name} not found", status_code=404)


class FakeClock:
    """Monotonic clock that advances by ``step`` on every read."""

    def __init__(self, step=1.0):
        self.now = 0.0
        self.step = step

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


class ScriptedClock:
    """Clock returning the given readings in order, then the last one forever."""

    def __init__(self, *readings):
        self.readings = list(readings)

    def __call__(self):
        if len(self.readings) > 1:
            return self.readings.pop(0)
        return self.readings[0]
