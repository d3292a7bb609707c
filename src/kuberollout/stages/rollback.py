from kuberollout.annotations import Variant
from kuberollout.config import STAGE_K8S_BASELINE_ROLLOUT, STAGE_K8S_CANARY_ROLLOUT, STAGE_ROLLBACK
from kuberollout.manifest import ResourceKey
from kuberollout.selectorguard import ensure_variant_selector_in_workload
from kuberollout.selectors import find_workload_manifests
from kuberollout.stages import StageContext, StageExecutor
from kuberollout.stages.baseline import generate_baseline_manifests
from kuberollout.stages.canary import generate_canary_manifests


class RollbackExecutor(StageExecutor, stage=STAGE_ROLLBACK):
    """
    Restore the manifests of the running commit as the primary variant and remove the canary and baseline variants.
    """

    def execute(self, ctx: StageContext) -> None:
        running_manifests = ctx.load_running_manifests()

        # Generating the variants again yields the keys of the resources the rollout stages created. This happens
        # before anything is applied so that invalid variant options leave the cluster untouched.
        keys: list[ResourceKey] = []
        if ctx.spec.has_stage(STAGE_K8S_CANARY_ROLLOUT):
            keys.extend(m.key for m in generate_canary_manifests(ctx, ctx.load_manifests()))
        if ctx.spec.has_stage(STAGE_K8S_BASELINE_ROLLOUT):
            keys.extend(m.key for m in generate_baseline_manifests(ctx, running_manifests))

        if ctx.add_variant_label_to_selector():
            for workload in find_workload_manifests(running_manifests, ctx.spec.workloads):
                ensure_variant_selector_in_workload(workload, Variant.PRIMARY)

        ctx.annotate(running_manifests, Variant.PRIMARY, ctx.deployment.running_commit_hash)
        ctx.apply(running_manifests)
        ctx.delete(keys).check()
