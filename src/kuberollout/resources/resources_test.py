import pytest

from kuberollout.manifest import Manifest, ManifestError
from kuberollout.resources.deployment import Deployment
from kuberollout.resources.service import Service
from kuberollout.resources.workload import UnsupportedKind, UnsupportedWorkloadKindError, decode_workload


def _deployment() -> Manifest:
    return Manifest.from_dict(
        {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": "web"},
            "spec": {
                "replicas": 3,
                "selector": {"matchLabels": {"app": "web"}},
                "template": {
                    "metadata": {"labels": {"app": "web"}},
                    "spec": {
                        "initContainers": [{"name": "init"}],
                        "containers": [{"name": "app"}],
                        "volumes": [{"name": "cfg", "configMap": {"name": "web-cfg"}}],
                    },
                },
                "strategy": {"type": "RollingUpdate"},
            },
        }
    )


def test__Deployment__load_and_dump__preserve_unknown_fields() -> None:
    manifest = _deployment()
    assert Deployment.load(manifest).dump() == manifest


def test__Deployment__load__does_not_share_state_with_manifest() -> None:
    manifest = _deployment()
    deployment = Deployment.load(manifest)
    deployment.replicas = 1
    deployment.match_labels["extra"] = "x"

    assert manifest.body["spec"]["replicas"] == 3
    assert manifest.body["spec"]["selector"]["matchLabels"] == {"app": "web"}


def test__Deployment__load__rejects_other_kinds_and_malformed_spec() -> None:
    with pytest.raises(ManifestError):
        Deployment.load(Manifest.from_dict({"apiVersion": "v1", "kind": "Service", "metadata": {"name": "x"}}))
    with pytest.raises(ManifestError):
        Deployment.load(
            Manifest.from_dict({"apiVersion": "apps/v1", "kind": "Deployment", "metadata": {"name": "x"}, "spec": []})
        )


def test__Deployment__accessors() -> None:
    deployment = Deployment.load(_deployment())

    assert deployment.name == "web"
    assert deployment.replicas == 3
    assert [c["name"] for c in deployment.containers()] == ["init", "app"]
    assert deployment.volumes()[0]["configMap"]["name"] == "web-cfg"

    deployment.replicas = None
    assert "replicas" not in deployment.body["spec"]


def test__Deployment__label_maps_are_created_when_absent() -> None:
    deployment = Deployment.load(
        Manifest.from_dict({"apiVersion": "apps/v1", "kind": "Deployment", "metadata": {"name": "x"}})
    )
    deployment.match_labels["a"] = "b"
    deployment.template_labels["a"] = "b"

    assert deployment.body["spec"]["selector"]["matchLabels"] == {"a": "b"}
    assert deployment.body["spec"]["template"]["metadata"]["labels"] == {"a": "b"}


def test__Service__make_internal() -> None:
    service = Service.load(
        Manifest.from_dict(
            {
                "apiVersion": "v1",
                "kind": "Service",
                "metadata": {"name": "web"},
                "spec": {
                    "type": "LoadBalancer",
                    "externalIPs": ["1.2.3.4"],
                    "loadBalancerIP": "1.2.3.4",
                    "externalTrafficPolicy": "Local",
                    "selector": {"app": "web"},
                    "ports": [{"port": 80, "nodePort": 30080}],
                },
            }
        )
    )
    service.make_internal()

    assert service.body["spec"] == {
        "type": "ClusterIP",
        "selector": {"app": "web"},
        "ports": [{"port": 80}],
    }


def test__decode_workload() -> None:
    assert isinstance(decode_workload(_deployment()), Deployment)

    stateful_set = Manifest.from_dict({"apiVersion": "apps/v1", "kind": "StatefulSet", "metadata": {"name": "db"}})
    result = decode_workload(stateful_set)
    assert result == UnsupportedKind(stateful_set.key)
    assert "StatefulSet" in str(UnsupportedWorkloadKindError(stateful_set.key))
