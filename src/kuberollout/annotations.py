from enum import Enum

from kuberollout.manifest import Manifest

LABEL_MANAGED_BY = "kuberollout.io/managed-by"
""" Marks resources as managed by Kuberollout. """

LABEL_AGENT = "kuberollout.io/agent"
""" The ID of the agent that deployed the resource. """

LABEL_APPLICATION = "kuberollout.io/application"
""" The ID of the application the resource belongs to. """

LABEL_VARIANT = "kuberollout.io/variant"
""" The variant of the resource: primary, canary or baseline. """

LABEL_ORIGINAL_API_VERSION = "kuberollout.io/original-api-version"
""" The apiVersion the resource was declared with. """

LABEL_RESOURCE_KEY = "kuberollout.io/resource-key"
""" The resource key of the resource in its compact form. """

LABEL_COMMIT_HASH = "kuberollout.io/commit-hash"
""" The commit the resource was deployed from. """

MANAGED_BY = "kuberollout"


class Variant(str, Enum):
    PRIMARY = "primary"
    CANARY = "canary"
    BASELINE = "baseline"


def add_builtin_annotations(
    manifests: list[Manifest],
    *,
    agent_id: str,
    app_id: str,
    variant: Variant,
    commit_hash: str,
) -> None:
    """
    Stamp Kuberollout's bookkeeping metadata onto every manifest, overwriting existing values. Must be called after the
    manifests were renamed for their variant.
    """

    for manifest in manifests:
        labels = {
            LABEL_MANAGED_BY: MANAGED_BY,
            LABEL_AGENT: agent_id,
            LABEL_APPLICATION: app_id,
            LABEL_VARIANT: variant.value,
        }
        manifest.add_labels(labels)
        manifest.add_annotations(
            {
                **labels,
                LABEL_ORIGINAL_API_VERSION: manifest.key.api_version,
                LABEL_RESOURCE_KEY: str(manifest.key),
                LABEL_COMMIT_HASH: commit_hash,
            }
        )
