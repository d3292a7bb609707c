from dataclasses import dataclass

from kuberollout.errors import KubeRolloutError
from kuberollout.manifest import Manifest, ResourceKey
from kuberollout.resources.deployment import Deployment


@dataclass(frozen=True)
class UnsupportedKind:
    """
    Returned by `decode_workload()` for manifests that are not of a supported workload kind.
    """

    key: ResourceKey


@dataclass
class UnsupportedWorkloadKindError(KubeRolloutError):
    key: ResourceKey

    def __str__(self) -> str:
        return f"Unsupported workload kind {self.key.kind} ({self.key.readable()})"


Workload = Deployment
""" The workload kinds that Kuberollout can generate variants of. """


def decode_workload(manifest: Manifest) -> Workload | UnsupportedKind:
    """
    Decode a manifest into the typed view of its workload kind.
    """

    if Deployment.matches(manifest):
        return Deployment.load(manifest)
    return UnsupportedKind(manifest.key)
