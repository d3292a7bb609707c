"""
Filters over a list of manifests. None of these functions mutate their input and all of them preserve its order.
"""

from kuberollout.config import K8sResourceReference
from kuberollout.manifest import KIND_DEPLOYMENT, Manifest


def find_manifests(kind: str, name: str, manifests: list[Manifest]) -> list[Manifest]:
    """
    Return the manifests of the given kind. An empty *name* matches every manifest of that kind.
    """

    return [m for m in manifests if m.key.kind == kind and (not name or m.key.name == name)]


def find_config_map_manifests(manifests: list[Manifest]) -> list[Manifest]:
    return [m for m in manifests if m.key.is_config_map()]


def find_secret_manifests(manifests: list[Manifest]) -> list[Manifest]:
    return [m for m in manifests if m.key.is_secret()]


def find_workload_manifests(manifests: list[Manifest], refs: list[K8sResourceReference]) -> list[Manifest]:
    """
    Return the workloads referenced by *refs*, or every Deployment if no references are given. References without a
    kind refer to a Deployment.
    """

    if not refs:
        return find_manifests(KIND_DEPLOYMENT, "", manifests)

    workloads: list[Manifest] = []
    for ref in refs:
        workloads.extend(find_manifests(ref.kind or KIND_DEPLOYMENT, ref.name, manifests))
    return workloads
