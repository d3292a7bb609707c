"""
This package implements the clients that Kuberollout uses to apply manifests to and delete resources from a Kubernetes
cluster.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from kuberollout.manifest import Manifest, ResourceKey

FIELD_MANAGER = "kuberollout"
""" The field manager name used for server-side apply. """


@dataclass
class ResourceNotFoundError(Exception):
    """
    Raised by `ClusterClient.delete()` if the resource does not exist in the cluster.
    """

    key: ResourceKey

    def __str__(self) -> str:
        return f"Resource not found: {self.key.readable()}"


class ClusterClient(ABC):
    """
    Applies manifests to and deletes resources from a Kubernetes cluster.
    """

    @abstractmethod
    def apply_manifest(self, manifest: Manifest) -> None:
        """
        Create or update the resource described by the manifest.
        """

    @abstractmethod
    def delete(self, key: ResourceKey) -> None:
        """
        Delete the resource with the given key.

        Raises:
            ResourceNotFoundError: If the resource does not exist.
        """
