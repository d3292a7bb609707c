"""
The manifest model that every other part of Kuberollout operates on. A `Manifest` is a Kubernetes resource document
paired with its `ResourceKey`; the two are kept consistent by only changing the name through `Manifest.duplicate()`.
"""

import copy
from dataclasses import dataclass
from typing import Any

import yaml

from kuberollout.errors import KubeRolloutError

KIND_DEPLOYMENT = "Deployment"
KIND_SERVICE = "Service"
KIND_CONFIG_MAP = "ConfigMap"
KIND_SECRET = "Secret"
KIND_NAMESPACE = "Namespace"


class ManifestError(KubeRolloutError):
    """
    Raised when a document is not a valid Kubernetes manifest or a nested field has an unexpected type.
    """


@dataclass(frozen=True)
class ResourceKey:
    """
    Identity of a resource in the cluster.
    """

    api_version: str
    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.api_version}:{self.kind}:{self.namespace}:{self.name}"

    @staticmethod
    def parse(value: str) -> "ResourceKey":
        """
        Parse the compact form returned by `str(key)`. The apiVersion may itself contain a slash but never a colon.
        """

        parts = value.split(":")
        if len(parts) != 4:
            raise ValueError(f"Invalid resource key: {value!r}")
        return ResourceKey(*parts)

    def readable(self) -> str:
        return f'name="{self.name}", kind="{self.kind}", namespace="{self.namespace}", apiVersion="{self.api_version}"'

    @property
    def group(self) -> str:
        return self.api_version.split("/")[0] if "/" in self.api_version else ""

    def is_config_map(self) -> bool:
        return self.kind == KIND_CONFIG_MAP and self.group == ""

    def is_secret(self) -> bool:
        return self.kind == KIND_SECRET and self.group == ""

    def is_deployment(self) -> bool:
        return self.kind == KIND_DEPLOYMENT

    def is_service(self) -> bool:
        return self.kind == KIND_SERVICE and self.group == ""


class Manifest:
    """
    A Kubernetes resource document together with its key. The document may be mutated in place, but its
    `apiVersion`, `kind` and `metadata.name` must only be changed via `duplicate()`.
    """

    def __init__(self, key: ResourceKey, body: dict[str, Any]) -> None:
        self.key = key
        self.body = body

    def __repr__(self) -> str:
        return f"Manifest({self.key})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Manifest):
            return NotImplemented
        return self.key == other.key and self.body == other.body

    @staticmethod
    def from_dict(body: dict[str, Any]) -> "Manifest":
        """
        Create a manifest from a parsed document. The document is not copied.

        Raises:
            ManifestError: If the `apiVersion`, `kind` or `metadata.name` fields are missing.
        """

        if not isinstance(body, dict):
            raise ManifestError(f"Expected a mapping as manifest, got {type(body).__name__}")

        api_version = body.get("apiVersion")
        kind = body.get("kind")
        metadata = body.get("metadata")
        if not api_version or not kind:
            raise ManifestError("Manifest is missing the 'apiVersion' or 'kind' field")
        if not isinstance(metadata, dict) or not metadata.get("name"):
            raise ManifestError(f"Manifest of kind {kind!r} is missing the 'metadata.name' field")

        key = ResourceKey(
            api_version=str(api_version),
            kind=str(kind),
            namespace=str(metadata.get("namespace") or ""),
            name=str(metadata["name"]),
        )
        return Manifest(key, body)

    @property
    def metadata(self) -> dict[str, Any]:
        return self.body.setdefault("metadata", {})

    def duplicate(self, name: str) -> "Manifest":
        """
        Return a deep copy of the manifest with the given name.
        """

        body = copy.deepcopy(self.body)
        body.setdefault("metadata", {})["name"] = name
        return Manifest(
            ResourceKey(self.key.api_version, self.key.kind, self.key.namespace, name),
            body,
        )

    def get_nested_string_map(self, *fields: str) -> dict[str, str]:
        """
        Return a copy of the string map at the given path. An absent path yields an empty map.
        """

        value: Any = self.body
        for field in fields:
            if value is None:
                return {}
            if not isinstance(value, dict):
                raise ManifestError(f"{'.'.join(fields)} of {self.key.readable()} is not accessible")
            value = value.get(field)

        if value is None:
            return {}
        if not isinstance(value, dict) or not all(isinstance(v, str) for v in value.values()):
            raise ManifestError(f"{'.'.join(fields)} of {self.key.readable()} is not a map of strings")
        return dict(value)

    def add_string_map_values(self, values: dict[str, str], *fields: str) -> None:
        """
        Merge the given values into the string map at the given path, creating intermediate maps as needed. Keys
        that are not in *values* are left untouched.
        """

        target = self.body
        for field in fields:
            child = target.get(field)
            if child is None:
                child = target[field] = {}
            elif not isinstance(child, dict):
                raise ManifestError(f"{'.'.join(fields)} of {self.key.readable()} is not a map")
            target = child
        target.update(values)

    def add_labels(self, labels: dict[str, str]) -> None:
        self.add_string_map_values(labels, "metadata", "labels")

    def add_annotations(self, annotations: dict[str, str]) -> None:
        self.add_string_map_values(annotations, "metadata", "annotations")

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.body, sort_keys=False)


def parse_manifests(text: str) -> list[Manifest]:
    """
    Parse a multi-document YAML string into manifests. Empty documents are skipped.
    """

    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as exc:
        raise ManifestError(f"Invalid YAML: {exc}") from exc
    return [Manifest.from_dict(doc) for doc in documents if doc is not None]


def make_suffixed_name(name: str, suffix: str) -> str:
    if suffix:
        return f"{name}-{suffix}"
    return name


def is_cluster_scoped_resource(manifest: Manifest) -> bool:
    """
    Check if a manifest is a cluster scoped resource.
    """

    # HACK: We should probably list the API resources of the cluster instead.
    fqn = manifest.key.kind + "." + (manifest.key.group or manifest.key.api_version)
    return fqn in {
        "APIService.apiregistration.k8s.io",
        "ClusterRole.rbac.authorization.k8s.io",
        "ClusterRoleBinding.rbac.authorization.k8s.io",
        "CustomResourceDefinition.apiextensions.k8s.io",
        "IngressClass.networking.k8s.io",
        "MutatingWebhookConfiguration.admissionregistration.k8s.io",
        "Namespace.v1",
        "PersistentVolume.v1",
        "PriorityClass.scheduling.k8s.io",
        "StorageClass.storage.k8s.io",
        "ValidatingWebhookConfiguration.admissionregistration.k8s.io",
    }


# Resources of these kinds are applied first, in this order. Kinds that are not listed keep their relative order
# and are applied after all listed kinds.
APPLY_ORDER = [
    "Namespace",
    "NetworkPolicy",
    "ResourceQuota",
    "LimitRange",
    "PodSecurityPolicy",
    "PodDisruptionBudget",
    "ServiceAccount",
    "Secret",
    "SecretList",
    "ConfigMap",
    "StorageClass",
    "PersistentVolume",
    "PersistentVolumeClaim",
    "CustomResourceDefinition",
    "ClusterRole",
    "ClusterRoleList",
    "ClusterRoleBinding",
    "ClusterRoleBindingList",
    "Role",
    "RoleList",
    "RoleBinding",
    "RoleBindingList",
    "Service",
    "DaemonSet",
    "Pod",
    "ReplicationController",
    "ReplicaSet",
    "Deployment",
    "HorizontalPodAutoscaler",
    "StatefulSet",
    "Job",
    "CronJob",
    "IngressClass",
    "Ingress",
    "APIService",
]


def sort_for_apply(manifests: list[Manifest]) -> list[Manifest]:
    """
    Order manifests so that dependencies (namespaces, CRDs, ConfigMaps, ...) are applied before the resources that
    depend on them. The sort is stable: manifests of the same kind keep their relative order.
    """

    priority = {kind: idx for idx, kind in enumerate(APPLY_ORDER)}
    return sorted(manifests, key=lambda m: priority.get(m.key.kind, len(APPLY_ORDER)))
