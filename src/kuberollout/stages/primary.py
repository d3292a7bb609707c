from kuberollout.annotations import Variant
from kuberollout.config import (
    STAGE_K8S_PRIMARY_ROLLOUT,
    STAGE_K8S_TRAFFIC_ROUTING,
    TRAFFIC_ROUTING_METHOD_POD_SELECTOR,
    K8sPrimaryRolloutStageOptions,
)
from kuberollout.manifest import KIND_SERVICE
from kuberollout.selectorguard import check_variant_selector_in_workload, ensure_variant_selector_in_workload
from kuberollout.selectors import find_manifests, find_workload_manifests
from kuberollout.stages import StageContext, StageExecutor
from kuberollout.variant import VariantError, generate_variant_service_manifests


class PrimaryRolloutExecutor(StageExecutor, stage=STAGE_K8S_PRIMARY_ROLLOUT):
    """
    Roll out the manifests of the new commit as the primary variant, optionally together with a Service that selects
    only the primary pods.
    """

    def execute(self, ctx: StageContext) -> None:
        options = ctx.stage_options(K8sPrimaryRolloutStageOptions)
        manifests = ctx.load_manifests()

        workloads = find_workload_manifests(manifests, ctx.spec.workloads)
        if options.addVariantLabelToSelector:
            for workload in workloads:
                ensure_variant_selector_in_workload(workload, Variant.PRIMARY)

        # Routing by pod selector points the Service at the variant label, so primary pods must carry it.
        if ctx.spec.trafficRouting.method == TRAFFIC_ROUTING_METHOD_POD_SELECTOR and ctx.spec.has_stage(
            STAGE_K8S_TRAFFIC_ROUTING
        ):
            for workload in workloads:
                check_variant_selector_in_workload(workload, Variant.PRIMARY)

        if options.createService:
            services = find_manifests(KIND_SERVICE, ctx.spec.service.name, manifests)
            if not services:
                raise VariantError("Unable to find any Service manifest to generate the primary Service from")
            manifests = manifests + generate_variant_service_manifests(services[:1], Variant.PRIMARY, options.suffix)

        ctx.annotate(manifests, Variant.PRIMARY, ctx.deployment.commit_hash)
        ctx.apply(manifests)

        if options.prune:
            ctx.prune(manifests)
