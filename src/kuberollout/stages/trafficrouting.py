from kuberollout.annotations import LABEL_VARIANT, Variant
from kuberollout.config import (
    STAGE_K8S_TRAFFIC_ROUTING,
    TRAFFIC_ROUTING_METHOD_POD_SELECTOR,
    K8sTrafficRoutingStageOptions,
)
from kuberollout.errors import ConfigError
from kuberollout.manifest import KIND_SERVICE, Manifest
from kuberollout.selectorguard import check_variant_selector_in_workload, ensure_variant_selector_in_workload
from kuberollout.selectors import find_manifests, find_workload_manifests
from kuberollout.stages import StageContext, StageExecutor
from kuberollout.stages.baseline import generate_baseline_manifests
from kuberollout.stages.canary import generate_canary_manifests
from kuberollout.variant import VariantError


def determine_target_variant(options: K8sTrafficRoutingStageOptions) -> Variant:
    """
    Return the variant that receives all traffic. Routing by pod selector cannot split traffic, so exactly one variant
    must be configured to receive 100%.
    """

    percentages = options.percentages()
    if sum(percentages.values()) != 100 or 100 not in percentages.values():
        raise ConfigError(
            "Traffic routing by pod selector requires one variant to receive 100% of the traffic, got "
            + ", ".join(f"{variant}={percent}%" for variant, percent in percentages.items())
        )
    return Variant(next(variant for variant, percent in percentages.items() if percent == 100))


class TrafficRoutingExecutor(StageExecutor, stage=STAGE_K8S_TRAFFIC_ROUTING):
    """
    Route all traffic of the application's Service to one variant by pointing the Service's selector at the variant
    label. Other routing methods (service meshes, ingress controllers) are implemented by external adapters.
    """

    def _variant_workloads(self, ctx: StageContext, manifests: list[Manifest], variant: Variant) -> list[Manifest]:
        match variant:
            case Variant.PRIMARY:
                workloads = find_workload_manifests(manifests, ctx.spec.workloads)
                if ctx.add_variant_label_to_selector():
                    for workload in workloads:
                        ensure_variant_selector_in_workload(workload, Variant.PRIMARY)
                return workloads
            # The variants are generated again from the current options, which must be consistent with the ones the
            # rollout stages were executed with.
            case Variant.CANARY:
                generated = generate_canary_manifests(ctx, manifests)
            case Variant.BASELINE:
                generated = generate_baseline_manifests(ctx, ctx.load_running_manifests())
        return find_workload_manifests(generated, [])

    def execute(self, ctx: StageContext) -> None:
        method = ctx.spec.trafficRouting.method
        if method != TRAFFIC_ROUTING_METHOD_POD_SELECTOR:
            raise ConfigError(f"Unsupported traffic routing method {method!r}")

        variant = determine_target_variant(ctx.stage_options(K8sTrafficRoutingStageOptions))
        manifests = ctx.load_manifests()

        # The Service must not be switched to a variant whose pods it would not select.
        for workload in self._variant_workloads(ctx, manifests, variant):
            check_variant_selector_in_workload(workload, variant)

        services = find_manifests(KIND_SERVICE, ctx.spec.service.name, manifests)
        if not services:
            raise VariantError("Unable to find any Service manifest to route traffic with")

        service = services[0].duplicate(services[0].key.name)
        service.add_string_map_values({LABEL_VARIANT: variant.value}, "spec", "selector")
        ctx.log.info("Routing all traffic of Service {} to the {} variant", service.key.name, variant.value)

        ctx.annotate([service], Variant.PRIMARY, ctx.deployment.commit_hash)
        ctx.apply([service])
