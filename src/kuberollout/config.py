"""
The deployment configuration of a Kubernetes application, stored in an `app.kuberollout.yaml` file next to the
application's manifests.
"""

from dataclasses import dataclass, field
import math
from pathlib import Path
from typing import Annotated, Any, Literal, TypeVar, overload

from databind.core import Alias

from kuberollout.errors import ConfigError

T = TypeVar("T")

KIND_KUBERNETES_APP = "KubernetesApp"

STAGE_K8S_SYNC = "K8S_SYNC"
STAGE_K8S_PRIMARY_ROLLOUT = "K8S_PRIMARY_ROLLOUT"
STAGE_K8S_CANARY_ROLLOUT = "K8S_CANARY_ROLLOUT"
STAGE_K8S_CANARY_CLEAN = "K8S_CANARY_CLEAN"
STAGE_K8S_BASELINE_ROLLOUT = "K8S_BASELINE_ROLLOUT"
STAGE_K8S_BASELINE_CLEAN = "K8S_BASELINE_CLEAN"
STAGE_K8S_TRAFFIC_ROUTING = "K8S_TRAFFIC_ROUTING"
STAGE_ROLLBACK = "ROLLBACK"

TRAFFIC_ROUTING_METHOD_POD_SELECTOR = "podselector"


@dataclass(frozen=True)
class Replicas:
    """
    A replica count given either as an absolute number (`3`) or as a percentage of the original count (`"50%"`).
    """

    number: int
    is_percentage: bool = False

    @staticmethod
    def parse(value: int | str) -> "Replicas":
        if isinstance(value, int):
            return Replicas(value)
        text = value.strip()
        try:
            if text.endswith("%"):
                return Replicas(int(text[:-1]), is_percentage=True)
            return Replicas(int(text))
        except ValueError:
            raise ConfigError(f"Invalid replicas value: {value!r}")

    def calculate(self, total: int, default: int) -> int:
        """
        Calculate the number of replicas relative to *total*. Percentages are rounded up.
        """

        if self.number == 0:
            return default
        if not self.is_percentage:
            return self.number
        return math.ceil(self.number * total / 100)


@dataclass
class K8sResourceReference:
    kind: str = ""
    name: str = ""


@dataclass
class KubernetesDeploymentInput:
    manifests: list[str] = field(default_factory=list)
    """
    The manifest files to load, relative to the application directory. If empty, all YAML files of the application
    directory are loaded.
    """

    namespace: str = ""
    """
    The namespace that namespaced resources are deployed to. If empty, the namespace of the manifests is used.
    """


@dataclass
class TrafficRouting:
    method: str = TRAFFIC_ROUTING_METHOD_POD_SELECTOR


@dataclass
class PipelineStage:
    name: str
    with_: Annotated[dict[str, Any], Alias("with")] = field(default_factory=dict)


@dataclass
class DeploymentPipeline:
    stages: list[PipelineStage] = field(default_factory=list)


@dataclass
class K8sSyncStageOptions:
    addVariantLabelToSelector: bool = False
    """ Add the primary variant label to the selector of all workloads. """

    prune: bool = False
    """ Delete the resources of the running commit that are no longer declared. """


@dataclass
class K8sPrimaryRolloutStageOptions:
    suffix: str = "primary"
    """ Suffix for the names of generated resources, such as the primary Service. """

    createService: bool = False
    """ Generate a Service that selects only the pods of the primary variant. """

    addVariantLabelToSelector: bool = False
    """ Add the primary variant label to the selector of all workloads. """

    prune: bool = False
    """ Delete the resources of the running commit that are no longer declared. """


@dataclass
class K8sCanaryRolloutStageOptions:
    replicas: int | str = 1
    """ How many replicas the canary variant runs, either a number or a percentage of the primary's replicas. """

    suffix: str = "canary"
    createService: bool = False


@dataclass
class K8sCanaryCleanStageOptions:
    pass


@dataclass
class K8sBaselineRolloutStageOptions:
    replicas: int | str = 1
    suffix: str = "baseline"
    createService: bool = False


@dataclass
class K8sBaselineCleanStageOptions:
    pass


@dataclass
class K8sTrafficRoutingStageOptions:
    all: str = ""
    """ The variant that receives all traffic. Shortcut for setting its percentage to 100. """

    primary: int = 0
    canary: int = 0
    baseline: int = 0

    def percentages(self) -> dict[str, int]:
        if self.all:
            return {variant: 100 if variant == self.all else 0 for variant in ("primary", "canary", "baseline")}
        return {"primary": self.primary, "canary": self.canary, "baseline": self.baseline}


@dataclass
class KubernetesDeploymentSpec:
    input: KubernetesDeploymentInput = field(default_factory=KubernetesDeploymentInput)

    workloads: list[K8sResourceReference] = field(default_factory=list)
    """ The workloads that variants are generated for. If empty, all Deployments are used. """

    service: K8sResourceReference = field(default_factory=K8sResourceReference)
    """ The Service that variant Services are generated from and that traffic routing updates. """

    trafficRouting: TrafficRouting = field(default_factory=TrafficRouting)

    pipeline: DeploymentPipeline = field(default_factory=DeploymentPipeline)

    def has_stage(self, name: str) -> bool:
        return any(stage.name == name for stage in self.pipeline.stages)

    def stage_options(self, name: str, options_type: type[T], index: int | None = None) -> T:
        """
        Deserialize the options of a pipeline stage. If *index* is given, the stage at that position is used,
        otherwise the first stage with the given name. Defaults are returned if the stage is not in the pipeline.
        """

        from databind.core import ConversionError
        from databind.json import load as deser

        if index is not None:
            candidates = [self.pipeline.stages[index]] if 0 <= index < len(self.pipeline.stages) else []
        else:
            candidates = self.pipeline.stages
        for stage in candidates:
            if stage.name == name:
                try:
                    return deser(stage.with_, options_type)
                except ConversionError as exc:
                    raise ConfigError(f"Malformed options for stage {name}: {exc}")
        return options_type()


@dataclass
class DeploymentConfig:
    FILENAME = "app.kuberollout.yaml"

    kind: str
    kubernetes: KubernetesDeploymentSpec | None = None
    """ The Kubernetes deployment settings, only set for `KubernetesApp` configurations. """

    @overload
    @staticmethod
    def find_config_file(cwd: Path | None = None, not_found_ok: Literal[False] = False) -> Path: ...

    @overload
    @staticmethod
    def find_config_file(cwd: Path | None = None, not_found_ok: Literal[True] = True) -> Path | None: ...

    @staticmethod
    def find_config_file(cwd: Path | None = None, not_found_ok: bool = False) -> Path | None:
        """
        Find the `app.kuberollout.yaml` in the given *cwd* or any of its parent directories.
        """

        if cwd is None:
            cwd = Path.cwd()

        for directory in [cwd] + list(cwd.parents):
            file = directory / DeploymentConfig.FILENAME
            if file.exists():
                return file

        if not_found_ok:
            return None

        raise ConfigError(f"Could not find '{DeploymentConfig.FILENAME}' in '{cwd}' or any of its parent directories.")

    @staticmethod
    def parse(data: Any, filename: str | None = None) -> "DeploymentConfig":
        """
        Parse the deployment configuration from already loaded YAML data.
        """

        from databind.core import ConversionError
        from databind.json import load as deser

        if not isinstance(data, dict) or not isinstance(data.get("kind"), str):
            raise ConfigError(f"Malformed deployment configuration{f' in {filename!r}' if filename else ''}")

        kind = data["kind"]
        if kind != KIND_KUBERNETES_APP:
            return DeploymentConfig(kind)

        try:
            spec = deser(data.get("spec") or {}, KubernetesDeploymentSpec, filename=filename)
        except ConversionError as exc:
            raise ConfigError(f"Malformed deployment configuration: {exc}")
        return DeploymentConfig(kind, spec)

    @staticmethod
    def load(file: Path) -> "DeploymentConfig":
        """
        Load the deployment configuration from a file.
        """

        from loguru import logger
        from yaml import YAMLError, safe_load

        logger.debug("Loading deployment configuration from '{}'", file)
        try:
            data = safe_load(file.read_text())
        except FileNotFoundError:
            raise ConfigError(f"Deployment configuration '{file}' does not exist")
        except YAMLError as exc:
            raise ConfigError(f"Deployment configuration '{file}' is not valid YAML: {exc}")
        return DeploymentConfig.parse(data, filename=str(file))
