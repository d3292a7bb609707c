"""
This package contains the implementations of the Kubernetes pipeline stages. Each stage is a `StageExecutor` that
composes the manifest primitives (loading, variant generation, annotation, apply and delete) through a `StageContext`.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, TypeVar

from loguru import logger

from kuberollout.annotations import Variant, add_builtin_annotations
from kuberollout.cache import AppManifestsCache, Cache
from kuberollout.cluster import ClusterClient
from kuberollout.config import (
    STAGE_K8S_PRIMARY_ROLLOUT,
    STAGE_K8S_SYNC,
    DeploymentConfig,
    K8sPrimaryRolloutStageOptions,
    K8sSyncStageOptions,
    KubernetesDeploymentSpec,
)
from kuberollout.errors import NoRunningRevisionError
from kuberollout.loader import ManifestLoaderFactory, default_loader_factory
from kuberollout.logpersister import LogPersister
from kuberollout.manifest import Manifest, ResourceKey, sort_for_apply
from kuberollout.reconciler import DeleteResult, apply_manifests, delete_resources
from kuberollout.stopsignal import StageStatus, StopSignal

T = TypeVar("T")


@dataclass
class DeploymentInfo:
    """
    The deployment that a stage is executed for. Owned by the outer system and never modified by Kuberollout.
    """

    application_id: str
    application_name: str
    commit_hash: str
    """ The commit that is being deployed. """

    running_commit_hash: str = ""
    """ The commit that is currently deployed. Empty if the application was never deployed successfully. """

    git_path: str = "."
    """ The directory of the application, relative to the repository root. """


@dataclass(kw_only=True)
class StageInput:
    stage_name: str
    stage_status: StageStatus = StageStatus.NOT_STARTED_YET
    """ The status recorded for the stage before this execution. """

    stage_index: int | None = None
    """ The position of the stage in the pipeline, used to pick its options if a stage appears more than once. """

    deployment: DeploymentInfo
    config: DeploymentConfig
    agent_id: str = ""

    repo_dir: Path
    """ The checkout of the commit that is being deployed. """

    running_repo_dir: Path | None = None
    """ The checkout of the running commit. Required by stages that need the running manifests. """

    cache: Cache[list[Manifest]]
    """ The process-wide manifests cache. """

    cluster: ClusterClient
    log: LogPersister
    loader_factory: ManifestLoaderFactory = field(default_factory=default_loader_factory)


class StageContext:
    """
    Gives stage executors access to the manifests of the deployment and to the cluster.
    """

    def __init__(self, input: StageInput, spec: KubernetesDeploymentSpec, stop: StopSignal) -> None:
        self.input = input
        self.spec = spec
        self.stop = stop
        self.log = input.log
        self._cache = AppManifestsCache(input.deployment.application_id, input.cache)

    @property
    def deployment(self) -> DeploymentInfo:
        return self.input.deployment

    def stage_options(self, options_type: type[T], stage_name: str | None = None) -> T:
        """
        Return the options of the current stage, or of the first stage with the given name in the pipeline.
        """

        if stage_name is None or stage_name == self.input.stage_name:
            index = self.input.stage_index
            if index is not None and 0 <= index < len(self.spec.pipeline.stages):
                return self.spec.stage_options(self.input.stage_name, options_type, index=index)
            return self.spec.stage_options(self.input.stage_name, options_type)
        return self.spec.stage_options(stage_name, options_type)

    def add_variant_label_to_selector(self) -> bool:
        """
        Whether the primary workloads select their pods by the variant label. The primary rollout stage decides if it
        is part of the pipeline, otherwise the sync stage does.
        """

        if self.spec.has_stage(STAGE_K8S_PRIMARY_ROLLOUT):
            options = self.stage_options(K8sPrimaryRolloutStageOptions, STAGE_K8S_PRIMARY_ROLLOUT)
            return options.addVariantLabelToSelector
        return self.stage_options(K8sSyncStageOptions, STAGE_K8S_SYNC).addVariantLabelToSelector

    def load_manifests(self) -> list[Manifest]:
        """
        Load the manifests of the commit that is being deployed.
        """

        commit = self.deployment.commit_hash
        if (manifests := self._cache.get(commit)) is not None:
            return manifests

        app_dir = self.input.repo_dir / self.deployment.git_path
        manifests = self.input.loader_factory(app_dir, self.spec.input).load_manifests()
        self._cache.put(commit, manifests)
        return manifests

    def load_running_manifests(self) -> list[Manifest]:
        """
        Load the manifests of the running commit.

        Raises:
            NoRunningRevisionError: If there is no running commit.
        """

        commit = self.deployment.running_commit_hash
        if not commit:
            raise NoRunningRevisionError()
        if (manifests := self._cache.get(commit)) is not None:
            return manifests

        if self.input.running_repo_dir is None:
            raise NoRunningRevisionError()
        app_dir = self.input.running_repo_dir / self.deployment.git_path
        manifests = self.input.loader_factory(app_dir, self.spec.input).load_manifests()
        self._cache.put(commit, manifests)
        return manifests

    def annotate(self, manifests: list[Manifest], variant: Variant, commit_hash: str) -> None:
        add_builtin_annotations(
            manifests,
            agent_id=self.input.agent_id,
            app_id=self.deployment.application_id,
            variant=variant,
            commit_hash=commit_hash,
        )

    def apply(self, manifests: list[Manifest]) -> None:
        """
        Apply the manifests in dependency order.
        """

        apply_manifests(
            self.input.cluster,
            sort_for_apply(manifests),
            self.log,
            stop=self.stop,
            namespace=self.spec.input.namespace,
        )

    def delete(self, keys: list[ResourceKey]) -> DeleteResult:
        return delete_resources(self.input.cluster, keys, self.log, stop=self.stop)

    def prune(self, applied: list[Manifest]) -> None:
        """
        Delete the resources of the running commit that are not part of the *applied* manifests.
        """

        if not self.deployment.running_commit_hash:
            self.log.info("There is no running commit, no resources to prune")
            return

        keys = {m.key for m in applied}
        removed = [m.key for m in self.load_running_manifests() if m.key not in keys]
        logger.debug("Pruning {} resources no longer declared at commit {}", len(removed), self.deployment.commit_hash)
        self.delete(removed).check()


class StageExecutor(ABC):
    """
    Base class for the implementation of a stage.
    """

    STAGE: ClassVar[str]
    """ The name of the stage implemented by the executor. """

    def __init_subclass__(cls, stage: str, **kwargs):
        cls.STAGE = stage
        super().__init_subclass__(**kwargs)

    @abstractmethod
    def execute(self, ctx: StageContext) -> None:
        """
        Execute the stage. Returning normally means the stage succeeded.

        Raises:
            KubeRolloutError: If the stage failed.
        """

        raise NotImplementedError
