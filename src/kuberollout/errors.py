from dataclasses import dataclass


class KubeRolloutError(Exception):
    """
    Base class for errors that fail a stage. The stage dispatcher reports these to the progress sink and turns them
    into a failed stage status.
    """


class ConfigError(KubeRolloutError):
    """
    Raised when the deployment configuration is missing or malformed.
    """


@dataclass
class UnsupportedStageError(KubeRolloutError):
    stage: str

    def __str__(self) -> str:
        return f"Unsupported stage {self.stage} for kubernetes application"


class NoRunningRevisionError(KubeRolloutError):
    """
    Raised when a stage needs the manifests of the running commit but no prior deployment exists.
    """

    def __str__(self) -> str:
        return "Unable to determine running commit: the application has no successful deployment yet"


class StageStoppedError(KubeRolloutError):
    """
    Raised by the reconciler when the stop signal was observed before the next cluster call.
    """
