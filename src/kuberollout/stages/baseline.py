from kuberollout.annotations import Variant
from kuberollout.config import (
    STAGE_K8S_BASELINE_CLEAN,
    STAGE_K8S_BASELINE_ROLLOUT,
    K8sBaselineRolloutStageOptions,
    Replicas,
)
from kuberollout.manifest import Manifest
from kuberollout.stages import StageContext, StageExecutor
from kuberollout.variant import generate_variant_manifests


def generate_baseline_manifests(ctx: StageContext, running_manifests: list[Manifest]) -> list[Manifest]:
    """
    Generate the baseline variant from the manifests of the running commit, using the options of the baseline rollout
    stage. The baseline runs the old version side by side with the canary so that both can be compared fairly.
    """

    options = ctx.stage_options(K8sBaselineRolloutStageOptions, STAGE_K8S_BASELINE_ROLLOUT)
    return generate_variant_manifests(
        running_manifests,
        workload_refs=ctx.spec.workloads,
        service_ref=ctx.spec.service,
        variant=Variant.BASELINE,
        name_suffix=options.suffix,
        replicas=Replicas.parse(options.replicas),
        create_service=options.createService,
    )


class BaselineRolloutExecutor(StageExecutor, stage=STAGE_K8S_BASELINE_ROLLOUT):
    def execute(self, ctx: StageContext) -> None:
        manifests = generate_baseline_manifests(ctx, ctx.load_running_manifests())
        ctx.annotate(manifests, Variant.BASELINE, ctx.deployment.running_commit_hash)
        ctx.apply(manifests)


class BaselineCleanExecutor(StageExecutor, stage=STAGE_K8S_BASELINE_CLEAN):
    def execute(self, ctx: StageContext) -> None:
        manifests = generate_baseline_manifests(ctx, ctx.load_running_manifests())
        ctx.delete([m.key for m in manifests]).check()
