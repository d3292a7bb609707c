from dataclasses import dataclass

from kuberollout.resources import TypedResource, nested_map

SERVICE_TYPE_CLUSTER_IP = "ClusterIP"

# Spec fields that only make sense for Services reachable from outside the cluster.
EXTERNAL_FIELDS = (
    "externalIPs",
    "loadBalancerIP",
    "loadBalancerSourceRanges",
    "loadBalancerClass",
    "externalTrafficPolicy",
    "healthCheckNodePort",
    "allocateLoadBalancerNodePorts",
)


@dataclass
class Service(TypedResource, kind="Service"):
    """
    Typed view over a `v1` Service.
    """

    @property
    def type(self) -> str:
        return self.spec.get("type") or SERVICE_TYPE_CLUSTER_IP

    @type.setter
    def type(self, value: str) -> None:
        self.spec["type"] = value

    @property
    def selector(self) -> dict[str, str]:
        """
        The `spec.selector` map. Created when absent; changes are written through.
        """

        return nested_map(self.spec, "selector")

    def make_internal(self) -> None:
        """
        Turn the Service into a cluster-internal one by forcing the `ClusterIP` type and removing every field that
        exposes it outside of the cluster.
        """

        self.type = SERVICE_TYPE_CLUSTER_IP
        for field in EXTERNAL_FIELDS:
            self.spec.pop(field, None)
        for port in self.spec.get("ports") or []:
            port.pop("nodePort", None)
