from typing import Any

from kubernetes.client.api_client import ApiClient
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import NotFoundError
from kubernetes.dynamic.resource import Resource
from loguru import logger

from kuberollout.cluster import FIELD_MANAGER, ClusterClient, ResourceNotFoundError
from kuberollout.manifest import Manifest, ResourceKey


class DynamicClusterClient(ClusterClient):
    """
    Cluster client on top of the Kubernetes API, using the dynamic client of the `kubernetes` package.
    """

    def __init__(self, dynamic: DynamicClient, request_timeout: float | None = None) -> None:
        self._dynamic = dynamic
        self._request_timeout = request_timeout

    @staticmethod
    def from_api_client(client: ApiClient, request_timeout: float | None = None) -> "DynamicClusterClient":
        """
        Create the client from an API client. This performs API discovery and thus requires access to the cluster.
        """

        return DynamicClusterClient(DynamicClient(client), request_timeout)

    def _resource(self, key: ResourceKey) -> Resource:
        return self._dynamic.resources.get(api_version=key.api_version, kind=key.kind)

    def _request_kwargs(self) -> dict[str, Any]:
        if self._request_timeout is None:
            return {}
        return {"_request_timeout": self._request_timeout}

    def _namespace(self, resource: Resource, key: ResourceKey) -> str | None:
        if not resource.namespaced:
            return None
        return key.namespace or "default"

    def apply_manifest(self, manifest: Manifest) -> None:
        resource = self._resource(manifest.key)
        namespace = self._namespace(resource, manifest.key)
        logger.debug("Server-side applying {}", manifest.key)
        self._dynamic.server_side_apply(
            resource,
            body=manifest.body,
            name=manifest.key.name,
            namespace=namespace,
            force_conflicts=True,
            field_manager=FIELD_MANAGER,
            **self._request_kwargs(),
        )

    def delete(self, key: ResourceKey) -> None:
        resource = self._resource(key)
        logger.debug("Deleting {}", key)
        try:
            self._dynamic.delete(
                resource, name=key.name, namespace=self._namespace(resource, key), **self._request_kwargs()
            )
        except NotFoundError as exc:
            raise ResourceNotFoundError(key) from exc
