from kuberollout.annotations import Variant
from kuberollout.config import (
    STAGE_K8S_CANARY_CLEAN,
    STAGE_K8S_CANARY_ROLLOUT,
    K8sCanaryRolloutStageOptions,
    Replicas,
)
from kuberollout.manifest import Manifest
from kuberollout.stages import StageContext, StageExecutor
from kuberollout.variant import generate_variant_manifests


def generate_canary_manifests(ctx: StageContext, manifests: list[Manifest]) -> list[Manifest]:
    """
    Generate the canary variant from the given manifests, using the options of the canary rollout stage.
    """

    options = ctx.stage_options(K8sCanaryRolloutStageOptions, STAGE_K8S_CANARY_ROLLOUT)
    return generate_variant_manifests(
        manifests,
        workload_refs=ctx.spec.workloads,
        service_ref=ctx.spec.service,
        variant=Variant.CANARY,
        name_suffix=options.suffix,
        replicas=Replicas.parse(options.replicas),
        create_service=options.createService,
    )


class CanaryRolloutExecutor(StageExecutor, stage=STAGE_K8S_CANARY_ROLLOUT):
    """
    Roll out the workloads of the new commit as the canary variant next to the primary one.
    """

    def execute(self, ctx: StageContext) -> None:
        manifests = generate_canary_manifests(ctx, ctx.load_manifests())
        ctx.annotate(manifests, Variant.CANARY, ctx.deployment.commit_hash)
        ctx.apply(manifests)


class CanaryCleanExecutor(StageExecutor, stage=STAGE_K8S_CANARY_CLEAN):
    """
    Remove the resources created by the canary rollout.
    """

    def execute(self, ctx: StageContext) -> None:
        manifests = generate_canary_manifests(ctx, ctx.load_manifests())
        ctx.delete([m.key for m in manifests]).check()
