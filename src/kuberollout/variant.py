"""
Generation of variant manifests. A variant (canary or baseline) is a copy of the application's workloads that runs next
to the primary one. The copies are renamed with a suffix, carry the variant label in their pod labels and selectors,
and mount renamed copies of the application's ConfigMaps and Secrets, so that variants never share pods or
configuration with each other.
"""

from collections.abc import Callable
from typing import Any

from kuberollout.annotations import LABEL_VARIANT, Variant
from kuberollout.config import K8sResourceReference, Replicas
from kuberollout.errors import KubeRolloutError
from kuberollout.manifest import KIND_SERVICE, Manifest, make_suffixed_name
from kuberollout.resources.deployment import Deployment
from kuberollout.resources.service import Service
from kuberollout.resources.workload import UnsupportedKind, UnsupportedWorkloadKindError, decode_workload
from kuberollout.selectors import (
    find_config_map_manifests,
    find_manifests,
    find_secret_manifests,
    find_workload_manifests,
)


class VariantError(KubeRolloutError):
    """
    Raised when the manifests of a variant cannot be generated.
    """


ReplicasCalculator = Callable[[int | None], int]
""" Calculates the replicas of a generated workload from the replicas of the original workload (if set). """


def replicas_calculator(replicas: Replicas) -> ReplicasCalculator:
    """
    Create a replicas calculator for a variant. Workloads without a replica count are treated as running one replica.
    """

    def calculate(original: int | None) -> int:
        if original is None:
            return 1
        return replicas.calculate(original, 1)

    return calculate


def duplicate_manifests(manifests: list[Manifest], name_suffix: str) -> list[Manifest]:
    return [m.duplicate(make_suffixed_name(m.key.name, name_suffix)) for m in manifests]


def generate_variant_service_manifests(services: list[Manifest], variant: Variant, name_suffix: str) -> list[Manifest]:
    """
    Generate a Service for the given variant from each of the given Services. The generated Services select only the
    pods of the variant and are never reachable from outside of the cluster.
    """

    result = []
    for manifest in services:
        service = Service.load(manifest)
        service.name = make_suffixed_name(service.name, name_suffix)
        service.make_internal()
        service.selector[LABEL_VARIANT] = variant.value
        result.append(service.dump())
    return result


def generate_variant_workload_manifests(
    workloads: list[Manifest],
    config_maps: list[Manifest],
    secrets: list[Manifest],
    variant: Variant,
    name_suffix: str,
    replicas_calculator: ReplicasCalculator | None = None,
) -> list[Manifest]:
    """
    Generate a copy of each workload for the given variant.

    Args:
        workloads: The workloads to generate variants of.
        config_maps: The ConfigMaps of the application. References to them are rewritten to their suffixed names;
            references to other ConfigMaps are left untouched.
        secrets: The Secrets of the application, handled like *config_maps*.
        variant: The variant to generate.
        name_suffix: Appended to the names of the workloads and of the referenced ConfigMaps and Secrets.
        replicas_calculator: If set, used to derive the replicas of each generated workload.
    Raises:
        UnsupportedWorkloadKindError: If one of the workloads is not of a supported kind.
    """

    config_map_names = {m.key.name for m in config_maps}
    secret_names = {m.key.name for m in secrets}

    def rename(ref: dict[str, Any] | None, field: str, names: set[str]) -> None:
        if ref is not None and ref.get(field) in names:
            ref[field] = make_suffixed_name(ref[field], name_suffix)

    def update_config_refs(deployment: Deployment) -> None:
        for volume in deployment.volumes():
            rename(volume.get("configMap"), "name", config_map_names)
            rename(volume.get("secret"), "secretName", secret_names)
            for source in (volume.get("projected") or {}).get("sources") or []:
                rename(source.get("configMap"), "name", config_map_names)
                rename(source.get("secret"), "name", secret_names)

        for container in deployment.containers():
            for env_from in container.get("envFrom") or []:
                rename(env_from.get("configMapRef"), "name", config_map_names)
                rename(env_from.get("secretRef"), "name", secret_names)
            for env in container.get("env") or []:
                value_from = env.get("valueFrom") or {}
                rename(value_from.get("configMapKeyRef"), "name", config_map_names)
                rename(value_from.get("secretKeyRef"), "name", secret_names)

    result = []
    for manifest in workloads:
        match decode_workload(manifest):
            case Deployment() as deployment:
                deployment.name = make_suffixed_name(deployment.name, name_suffix)
                if replicas_calculator is not None:
                    deployment.replicas = replicas_calculator(deployment.replicas)
                deployment.match_labels[LABEL_VARIANT] = variant.value
                deployment.template_labels[LABEL_VARIANT] = variant.value
                update_config_refs(deployment)
                result.append(deployment.dump())
            case UnsupportedKind(key=key):
                raise UnsupportedWorkloadKindError(key)

    return result


def generate_variant_manifests(
    manifests: list[Manifest],
    *,
    workload_refs: list[K8sResourceReference],
    service_ref: K8sResourceReference,
    variant: Variant,
    name_suffix: str,
    replicas: Replicas,
    create_service: bool = False,
) -> list[Manifest]:
    """
    Generate the complete set of manifests for a variant from the manifests of the application: copies of all
    ConfigMaps and Secrets, the variant workloads that mount them and, if *create_service* is set, a variant Service.

    Raises:
        VariantError: If *name_suffix* is empty, if no workloads are found, or if no Service is found while
            *create_service* is set.
    """

    # Without a suffix the variant resources would carry the names of the primary resources.
    if not name_suffix:
        raise VariantError(f"The {variant.value} variant requires a non-empty name suffix")

    workloads = find_workload_manifests(manifests, workload_refs)
    if not workloads:
        raise VariantError(f"Unable to find any workload manifests for {variant.value} variant")

    config_maps = find_config_map_manifests(manifests)
    secrets = find_secret_manifests(manifests)

    result = duplicate_manifests(config_maps, name_suffix) + duplicate_manifests(secrets, name_suffix)
    result += generate_variant_workload_manifests(
        workloads, config_maps, secrets, variant, name_suffix, replicas_calculator(replicas)
    )

    if create_service:
        services = find_manifests(KIND_SERVICE, service_ref.name, manifests)
        if not services:
            raise VariantError(
                f"Unable to find any Service manifest{f' named {service_ref.name!r}' if service_ref.name else ''} "
                f"to generate the {variant.value} Service from"
            )
        result += generate_variant_service_manifests(services, variant, name_suffix)

    return result
