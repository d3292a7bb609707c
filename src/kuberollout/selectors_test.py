from kuberollout.config import K8sResourceReference
from kuberollout.manifest import Manifest
from kuberollout.selectors import (
    find_config_map_manifests,
    find_manifests,
    find_secret_manifests,
    find_workload_manifests,
)


def _manifest(api_version: str, kind: str, name: str) -> Manifest:
    return Manifest.from_dict({"apiVersion": api_version, "kind": kind, "metadata": {"name": name}})


MANIFESTS = [
    _manifest("apps/v1", "Deployment", "web"),
    _manifest("v1", "ConfigMap", "web-cfg"),
    _manifest("apps/v1", "Deployment", "worker"),
    _manifest("v1", "Secret", "web-secret"),
    _manifest("example.com/v1", "ConfigMap", "not-core"),
    _manifest("apps/v1", "StatefulSet", "db"),
]


def test__find_manifests() -> None:
    assert [m.key.name for m in find_manifests("Deployment", "", MANIFESTS)] == ["web", "worker"]
    assert [m.key.name for m in find_manifests("Deployment", "worker", MANIFESTS)] == ["worker"]
    assert find_manifests("Deployment", "missing", MANIFESTS) == []


def test__find_config_map_and_secret_manifests__only_core_group() -> None:
    assert [m.key.name for m in find_config_map_manifests(MANIFESTS)] == ["web-cfg"]
    assert [m.key.name for m in find_secret_manifests(MANIFESTS)] == ["web-secret"]


def test__find_workload_manifests__defaults_to_all_deployments() -> None:
    assert [m.key.name for m in find_workload_manifests(MANIFESTS, [])] == ["web", "worker"]


def test__find_workload_manifests__by_reference() -> None:
    refs = [K8sResourceReference(name="worker"), K8sResourceReference(kind="StatefulSet", name="db")]
    assert [m.key.name for m in find_workload_manifests(MANIFESTS, refs)] == ["worker", "db"]
