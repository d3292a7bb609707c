from dataclasses import dataclass, field

from loguru import logger

from kuberollout.errors import KubeRolloutError, UnsupportedStageError
from kuberollout.stages import StageContext, StageExecutor, StageInput
from kuberollout.stopsignal import StageStatus, StopSignal, determine_stage_status


@dataclass
class DispatchingExecutor:
    """
    Dispatches a stage to the executor registered for its name and turns the outcome into a terminal stage status.
    """

    executors: dict[str, StageExecutor] = field(default_factory=dict)
    """ Collection of executors to dispatch to based on the stage name. """

    @staticmethod
    def default() -> "DispatchingExecutor":
        """
        Create a new DispatchingExecutor with an executor for every Kubernetes stage.
        """

        from kuberollout.stages.baseline import BaselineCleanExecutor, BaselineRolloutExecutor
        from kuberollout.stages.canary import CanaryCleanExecutor, CanaryRolloutExecutor
        from kuberollout.stages.primary import PrimaryRolloutExecutor
        from kuberollout.stages.rollback import RollbackExecutor
        from kuberollout.stages.sync import SyncExecutor
        from kuberollout.stages.trafficrouting import TrafficRoutingExecutor

        executors: list[StageExecutor] = [
            SyncExecutor(),
            PrimaryRolloutExecutor(),
            CanaryRolloutExecutor(),
            CanaryCleanExecutor(),
            BaselineRolloutExecutor(),
            BaselineCleanExecutor(),
            TrafficRoutingExecutor(),
            RollbackExecutor(),
        ]
        return DispatchingExecutor(executors={executor.STAGE: executor for executor in executors})

    def execute(self, input: StageInput, stop: StopSignal) -> StageStatus:
        """
        Execute the stage described by *input*. Never raises; every failure is reported to the stage's log and
        results in a failed status. A stop signal takes precedence over the status computed by the stage.
        """

        spec = input.config.kubernetes
        if spec is None:
            input.log.error("Malformed deployment configuration: missing Kubernetes deployment spec")
            return StageStatus.FAILURE

        executor = self.executors.get(input.stage_name)
        if executor is None:
            input.log.error("{}", UnsupportedStageError(input.stage_name))
            return StageStatus.FAILURE

        logger.info(
            "Start executing kubernetes stage {} of application {} (git path: {})",
            input.stage_name,
            input.deployment.application_id,
            input.deployment.git_path,
        )

        try:
            executor.execute(StageContext(input, spec, stop))
            status = StageStatus.SUCCESS
        except KubeRolloutError as exc:
            input.log.error("{}", exc)
            status = StageStatus.FAILURE
        except Exception as exc:
            logger.opt(exception=exc).error("Unexpected error while executing stage {}", input.stage_name)
            input.log.error("Unexpected error while executing stage {}: {}", input.stage_name, exc)
            status = StageStatus.FAILURE

        final = determine_stage_status(stop.signal(), input.stage_status, status)
        logger.info("Stage {} finished with status {}", input.stage_name, final.value)
        return final
