from kuberollout.annotations import Variant
from kuberollout.config import STAGE_K8S_SYNC, K8sSyncStageOptions
from kuberollout.selectorguard import ensure_variant_selector_in_workload
from kuberollout.selectors import find_workload_manifests
from kuberollout.stages import StageContext, StageExecutor


class SyncExecutor(StageExecutor, stage=STAGE_K8S_SYNC):
    """
    Apply all manifests of the application as the primary variant.
    """

    def execute(self, ctx: StageContext) -> None:
        options = ctx.stage_options(K8sSyncStageOptions)
        manifests = ctx.load_manifests()

        if options.addVariantLabelToSelector:
            for workload in find_workload_manifests(manifests, ctx.spec.workloads):
                ensure_variant_selector_in_workload(workload, Variant.PRIMARY)

        ctx.annotate(manifests, Variant.PRIMARY, ctx.deployment.commit_hash)
        ctx.apply(manifests)

        if options.prune:
            ctx.prune(manifests)
