"""
This package contains typed views over the Kubernetes resources that Kuberollout needs to rewrite. A typed view is a
two-way codec: `load()` takes a deep copy of a manifest and `dump()` turns it back into a manifest. Fields that the
view does not know about are carried over unchanged.
"""

from abc import ABC
import copy
from dataclasses import dataclass
from typing import Any, ClassVar
from typing_extensions import Self

from kuberollout.manifest import Manifest, ManifestError


@dataclass
class TypedResource(ABC):
    """
    Base class for typed views over Kubernetes manifests.
    """

    KIND: ClassVar[str]
    """
    The kind of the resource. If not set, this will default to the class name.
    """

    body: dict[str, Any]
    """
    The document backing the view. Owned exclusively by the view.
    """

    def __init_subclass__(cls, kind: str | None = None) -> None:
        if kind is not None or "KIND" not in vars(cls):
            cls.KIND = kind or cls.__name__

    @classmethod
    def matches(cls, manifest: Manifest) -> bool:
        return manifest.key.kind == cls.KIND

    @classmethod
    def load(cls, manifest: Manifest) -> Self:
        """
        Load the typed view from a manifest. The manifest is not modified by later changes to the view.
        """

        if not cls.matches(manifest):
            raise ManifestError(f"Expected kind {cls.KIND!r}, got {manifest.key.kind!r}")
        spec = manifest.body.get("spec")
        if spec is not None and not isinstance(spec, dict):
            raise ManifestError(f"spec of {manifest.key.readable()} is not a map")
        return cls(copy.deepcopy(manifest.body))

    def dump(self) -> Manifest:
        """
        Dump the view back into a new manifest.
        """

        return Manifest.from_dict(copy.deepcopy(self.body))

    @property
    def name(self) -> str:
        return self.body["metadata"]["name"]

    @name.setter
    def name(self, value: str) -> None:
        self.body.setdefault("metadata", {})["name"] = value

    @property
    def spec(self) -> dict[str, Any]:
        spec = self.body.get("spec")
        if spec is None:
            spec = self.body["spec"] = {}
        return spec


def nested_map(parent: dict[str, Any], *fields: str) -> dict[str, Any]:
    """
    Return the map at the given path below *parent*, creating it (and any intermediate maps) when absent.
    """

    for field in fields:
        child = parent.get(field)
        if child is None:
            child = parent[field] = {}
        elif not isinstance(child, dict):
            raise ManifestError(f"Expected a map at {'.'.join(fields)}, got {type(child).__name__}")
        parent = child
    return parent
