from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from kuberollout.resources import TypedResource, nested_map


@dataclass
class Deployment(TypedResource, kind="Deployment"):
    """
    Typed view over an `apps/v1` Deployment.
    """

    @property
    def replicas(self) -> int | None:
        return self.spec.get("replicas")

    @replicas.setter
    def replicas(self, value: int | None) -> None:
        if value is None:
            self.spec.pop("replicas", None)
        else:
            self.spec["replicas"] = value

    @property
    def match_labels(self) -> dict[str, str]:
        """
        The `spec.selector.matchLabels` map. Created when absent; changes are written through.
        """

        return nested_map(self.spec, "selector", "matchLabels")

    @property
    def template_labels(self) -> dict[str, str]:
        """
        The `spec.template.metadata.labels` map. Created when absent; changes are written through.
        """

        return nested_map(self.spec, "template", "metadata", "labels")

    @property
    def pod_spec(self) -> dict[str, Any]:
        return nested_map(self.spec, "template", "spec")

    def volumes(self) -> list[dict[str, Any]]:
        return self.pod_spec.get("volumes") or []

    def containers(self) -> Iterator[dict[str, Any]]:
        """
        Iterate over the containers and init containers of the pod template.
        """

        for key in ("initContainers", "containers"):
            yield from self.pod_spec.get(key) or []
