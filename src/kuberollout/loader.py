from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
import textwrap

from loguru import logger

from kuberollout.config import DeploymentConfig, KubernetesDeploymentInput
from kuberollout.errors import KubeRolloutError
from kuberollout.manifest import Manifest, ManifestError, is_cluster_scoped_resource, parse_manifests


@dataclass
class ManifestLoaderError(KubeRolloutError):
    """
    Represents an error that occurred while loading the manifests of an application.
    """

    loader: "ManifestLoader"
    message: str

    def __str__(self) -> str:
        if "\n" in self.message:
            message = "\n\n" + textwrap.indent(self.message, "  ")
        else:
            message = f"{self.message}"
        return f"Error loading manifests from {self.loader}: {message}"


class ManifestLoader(ABC):
    """
    Loads the manifests of an application from a checkout of its repository.
    """

    @abstractmethod
    def load_manifests(self) -> list[Manifest]:
        """
        Load the manifests of the application, in the order they are to be applied.
        """

        raise NotImplementedError


ManifestLoaderFactory = Callable[[Path, KubernetesDeploymentInput], ManifestLoader]
""" Creates the loader for the application in the given directory. """


@dataclass
class DirectoryManifestLoader(ManifestLoader):
    """
    Loads plain manifest files from the application directory.
    """

    app_dir: Path
    """
    The directory of the application within the repository checkout.
    """

    input: KubernetesDeploymentInput
    """
    Lists the manifest files to load (all YAML files of the directory if empty) and the namespace to deploy to.
    """

    config_filename: str = DeploymentConfig.FILENAME
    """
    The name of the deployment configuration file, which is never loaded as a manifest.
    """

    def __str__(self) -> str:
        return f"directory '{self.app_dir}'"

    def _files(self) -> list[Path]:
        if self.input.manifests:
            return [self.app_dir / file for file in self.input.manifests]
        if not self.app_dir.is_dir():
            raise ManifestLoaderError(self, "Application directory does not exist")
        return sorted(
            file
            for file in self.app_dir.iterdir()
            if file.is_file() and file.suffix in (".yaml", ".yml") and file.name != self.config_filename
        )

    def load_manifests(self) -> list[Manifest]:
        files = self._files()
        logger.info("Loading Kubernetes manifests from {} ({} files)", self.app_dir, len(files))

        manifests: list[Manifest] = []
        for file in files:
            logger.trace("Loading manifests from {}", file)
            try:
                text = file.read_text()
            except OSError as exc:
                raise ManifestLoaderError(self, f"Unable to read manifest file '{file}': {exc}")
            try:
                manifests.extend(parse_manifests(text))
            except ManifestError as exc:
                raise ManifestLoaderError(self, f"Manifest file '{file}' is invalid: {exc}")

        if self.input.namespace:
            for idx, manifest in enumerate(manifests):
                if not is_cluster_scoped_resource(manifest) and manifest.key.namespace != self.input.namespace:
                    logger.trace("Injecting namespace '{}' into {}", self.input.namespace, manifest.key)
                    manifest.metadata["namespace"] = self.input.namespace
                    manifests[idx] = Manifest.from_dict(manifest.body)

        return manifests


def default_loader_factory(config_filename: str = DeploymentConfig.FILENAME) -> ManifestLoaderFactory:
    """
    Create a factory for `DirectoryManifestLoader` instances.
    """

    def factory(app_dir: Path, input: KubernetesDeploymentInput) -> ManifestLoader:
        return DirectoryManifestLoader(app_dir, input, config_filename)

    return factory
