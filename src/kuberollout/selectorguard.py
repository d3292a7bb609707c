"""
Checks and enforces that a workload carries the variant label both in its selector and in its pod template. Traffic
isolation between variants relies on this: a Service that selects `variant=canary` must only ever reach canary pods.
"""

from dataclasses import dataclass

from loguru import logger

from kuberollout.annotations import LABEL_VARIANT, Variant
from kuberollout.errors import KubeRolloutError
from kuberollout.manifest import Manifest, ResourceKey

MATCH_LABELS_FIELDS = ("spec", "selector", "matchLabels")
TEMPLATE_LABELS_FIELDS = ("spec", "template", "metadata", "labels")


@dataclass
class SelectorInvariantError(KubeRolloutError):
    key: ResourceKey
    path: str
    expected: str
    actual: str | None

    def __str__(self) -> str:
        if self.actual is None:
            problem = f"missing {LABEL_VARIANT} key in {self.path}"
        else:
            problem = f"require {self.expected} but got {self.actual} for {LABEL_VARIANT} key in {self.path}"
        return f"Invalid variant selector of {self.key.readable()}: {problem}"


def check_variant_selector_in_workload(manifest: Manifest, variant: Variant) -> None:
    """
    Check that both the selector and the pod template labels of the workload select the given variant.

    Raises:
        SelectorInvariantError: If the variant label is missing or has another value at either path.
    """

    for fields in (MATCH_LABELS_FIELDS, TEMPLATE_LABELS_FIELDS):
        value = manifest.get_nested_string_map(*fields).get(LABEL_VARIANT)
        if value != variant.value:
            raise SelectorInvariantError(manifest.key, ".".join(fields), variant.value, value)


def ensure_variant_selector_in_workload(manifest: Manifest, variant: Variant) -> None:
    """
    Add the variant label to the selector and the pod template labels of the workload. Other labels are preserved.
    A different variant value that is already present is overwritten.
    """

    for fields in (MATCH_LABELS_FIELDS, TEMPLATE_LABELS_FIELDS):
        current = manifest.get_nested_string_map(*fields).get(LABEL_VARIANT)
        if current is not None and current != variant.value:
            logger.warning(
                "Overwriting {} label {}={} with {} in {} of {}",
                LABEL_VARIANT,
                LABEL_VARIANT,
                current,
                variant.value,
                ".".join(fields),
                manifest.key.readable(),
            )
        manifest.add_string_map_values({LABEL_VARIANT: variant.value}, *fields)
