import sys
from typing import TextIO

from kuberollout.cluster import ClusterClient
from kuberollout.manifest import Manifest, ResourceKey


class PrintingClusterClient(ClusterClient):
    """
    A dry-run client that prints the manifests it would apply as a YAML stream instead of touching a cluster. Deletions
    are printed as YAML comments.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout

    def apply_manifest(self, manifest: Manifest) -> None:
        print("---", file=self._stream)
        print(manifest.to_yaml(), end="", file=self._stream)

    def delete(self, key: ResourceKey) -> None:
        print(f"# delete {key}", file=self._stream)
