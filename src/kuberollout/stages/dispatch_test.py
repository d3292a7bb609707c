from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import yaml

from kuberollout import config as config_module
from kuberollout.annotations import LABEL_COMMIT_HASH, LABEL_VARIANT
from kuberollout.cache import LRUCache
from kuberollout.config import DeploymentConfig
from kuberollout.logpersister import MemoryLogPersister
from kuberollout.manifest import Manifest
from kuberollout.stages import DeploymentInfo, StageExecutor, StageInput
from kuberollout.stages.dispatch import DispatchingExecutor
from kuberollout.stopsignal import StageStatus, StopSignal

MANIFESTS = """
apiVersion: apps/v1
kind: Deployment
metadata:
  name: web
spec:
  replicas: 2
  selector:
    matchLabels:
      app: web
  template:
    metadata:
      labels:
        app: web
    spec:
      containers:
        - name: web
          image: web:{version}
      volumes:
        - name: cfg
          configMap:
            name: web-cfg
---
apiVersion: v1
kind: Service
metadata:
  name: web
spec:
  type: LoadBalancer
  externalIPs: [10.0.0.1]
  selector:
    app: web
  ports:
    - port: 80
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: web-cfg
data:
  version: "{version}"
"""


def _config(stages: list[dict[str, Any]], primary_with: dict[str, Any] | None = None) -> DeploymentConfig:
    if primary_with is not None:
        stages = [{"name": "K8S_PRIMARY_ROLLOUT", "with": primary_with}, *stages]
    return DeploymentConfig.parse({"kind": "KubernetesApp", "spec": {"pipeline": {"stages": stages}}})


def _repo(path: Path, version: str, extra: str = "") -> Path:
    path.mkdir()
    (path / "app.yaml").write_text(MANIFESTS.format(version=version) + extra)
    return path


def _input(tmp_path: Path, stage: str, config: DeploymentConfig, **kwargs: Any) -> StageInput:
    options: dict[str, Any] = dict(
        stage_name=stage,
        deployment=DeploymentInfo(
            application_id="app-1",
            application_name="web",
            commit_hash="new",
            running_commit_hash="old",
        ),
        config=config,
        agent_id="agent-1",
        repo_dir=_repo(tmp_path / "new", "v2"),
        running_repo_dir=_repo(tmp_path / "old", "v1"),
        cache=LRUCache(),
        cluster=MagicMock(),
        log=MemoryLogPersister(),
    )
    options.update(kwargs)
    return StageInput(**options)


def _applied(input: StageInput) -> list[Manifest]:
    return [call.args[0] for call in input.cluster.apply_manifest.call_args_list]  # type: ignore[attr-defined]


def _deleted(input: StageInput) -> list[str]:
    return [call.args[0].name for call in input.cluster.delete.call_args_list]  # type: ignore[attr-defined]


def _errors(input: StageInput) -> list[str]:
    assert isinstance(input.log, MemoryLogPersister)
    return input.log.messages("error")


def test__DispatchingExecutor__default__creates_executor_for_every_stage() -> None:
    stages = {value for name, value in vars(config_module).items() if name.startswith("STAGE_")}
    assert len(stages) == 8

    executor = DispatchingExecutor.default()
    assert executor.executors.keys() == stages
    for stage, stage_executor in executor.executors.items():
        assert isinstance(stage_executor, StageExecutor)
        assert stage_executor.STAGE == stage


def test__DispatchingExecutor__execute__missing_kubernetes_spec(tmp_path: Path) -> None:
    input = _input(tmp_path, "K8S_SYNC", DeploymentConfig("TerraformApp"))
    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.FAILURE
    assert _errors(input) == ["Malformed deployment configuration: missing Kubernetes deployment spec"]


def test__DispatchingExecutor__execute__unsupported_stage(tmp_path: Path) -> None:
    input = _input(tmp_path, "ECS_SYNC", _config([]))
    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.FAILURE
    assert _errors(input) == ["Unsupported stage ECS_SYNC for kubernetes application"]


def test__DispatchingExecutor__execute__sync_with_prune(tmp_path: Path) -> None:
    removed = "---\napiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: removed\n"
    input = _input(tmp_path, "K8S_SYNC", _config([{"name": "K8S_SYNC", "with": {"prune": True}}]))
    _repo(tmp_path / "old-with-extra", "v1", removed)
    input.running_repo_dir = tmp_path / "old-with-extra"

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.SUCCESS
    assert [m.key.name for m in _applied(input)] == ["web-cfg", "web", "web"]
    assert [m.key.kind for m in _applied(input)] == ["ConfigMap", "Service", "Deployment"]
    assert all(m.body["metadata"]["labels"][LABEL_VARIANT] == "primary" for m in _applied(input))
    assert _deleted(input) == ["removed"]


def test__DispatchingExecutor__execute__canary_rollout(tmp_path: Path) -> None:
    config = _config([{"name": "K8S_CANARY_ROLLOUT", "with": {"replicas": "50%", "createService": True}}])
    input = _input(tmp_path, "K8S_CANARY_ROLLOUT", config)

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.SUCCESS

    applied = _applied(input)
    assert [(m.key.kind, m.key.name) for m in applied] == [
        ("ConfigMap", "web-cfg-canary"),
        ("Service", "web-canary"),
        ("Deployment", "web-canary"),
    ]
    deployment = applied[2].body
    assert deployment["spec"]["replicas"] == 1
    assert deployment["spec"]["template"]["spec"]["volumes"][0]["configMap"]["name"] == "web-cfg-canary"
    assert deployment["spec"]["template"]["spec"]["containers"][0]["image"] == "web:v2"
    assert deployment["metadata"]["annotations"][LABEL_COMMIT_HASH] == "new"
    assert "externalIPs" not in applied[1].body["spec"]


def test__DispatchingExecutor__execute__canary_clean(tmp_path: Path) -> None:
    config = _config([{"name": "K8S_CANARY_ROLLOUT", "with": {"createService": True}}, {"name": "K8S_CANARY_CLEAN"}])
    input = _input(tmp_path, "K8S_CANARY_CLEAN", config)

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.SUCCESS
    assert _deleted(input) == ["web-cfg-canary", "web-canary", "web-canary"]
    input.cluster.apply_manifest.assert_not_called()  # type: ignore[attr-defined]


def test__DispatchingExecutor__execute__baseline_rollout_uses_running_commit(tmp_path: Path) -> None:
    input = _input(tmp_path, "K8S_BASELINE_ROLLOUT", _config([{"name": "K8S_BASELINE_ROLLOUT"}]))

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.SUCCESS

    deployment = next(m for m in _applied(input) if m.key.kind == "Deployment")
    assert deployment.key.name == "web-baseline"
    assert deployment.body["spec"]["template"]["spec"]["containers"][0]["image"] == "web:v1"
    assert deployment.body["metadata"]["annotations"][LABEL_COMMIT_HASH] == "old"


def test__DispatchingExecutor__execute__primary_rollout_requires_variant_selector(tmp_path: Path) -> None:
    stages = [{"name": "K8S_CANARY_ROLLOUT"}, {"name": "K8S_TRAFFIC_ROUTING", "with": {"all": "canary"}}]

    (tmp_path / "a").mkdir()
    input = _input(tmp_path / "a", "K8S_PRIMARY_ROLLOUT", _config(stages, primary_with={}))
    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.FAILURE
    assert "missing kuberollout.io/variant key in spec.selector.matchLabels" in _errors(input)[0]
    input.cluster.apply_manifest.assert_not_called()  # type: ignore[attr-defined]

    config = _config(stages, primary_with={"addVariantLabelToSelector": True, "createService": True})
    (tmp_path / "b").mkdir()
    input = _input(tmp_path / "b", "K8S_PRIMARY_ROLLOUT", config)
    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.SUCCESS
    assert [m.key.name for m in _applied(input) if m.key.kind == "Service"] == ["web", "web-primary"]


def test__DispatchingExecutor__execute__traffic_routing(tmp_path: Path) -> None:
    stages = [{"name": "K8S_CANARY_ROLLOUT"}, {"name": "K8S_TRAFFIC_ROUTING", "with": {"canary": 100}}]
    input = _input(tmp_path, "K8S_TRAFFIC_ROUTING", _config(stages))

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.SUCCESS

    [service] = _applied(input)
    assert service.key.name == "web"
    assert service.body["spec"]["selector"] == {"app": "web", LABEL_VARIANT: "canary"}
    assert service.body["spec"]["type"] == "LoadBalancer"


def test__DispatchingExecutor__execute__traffic_routing_cannot_split(tmp_path: Path) -> None:
    stages = [{"name": "K8S_TRAFFIC_ROUTING", "with": {"primary": 50, "canary": 50}}]
    input = _input(tmp_path, "K8S_TRAFFIC_ROUTING", _config(stages))

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.FAILURE
    assert "requires one variant to receive 100%" in _errors(input)[0]


def test__DispatchingExecutor__execute__rollback(tmp_path: Path) -> None:
    stages = [{"name": "K8S_CANARY_ROLLOUT"}, {"name": "K8S_BASELINE_ROLLOUT"}, {"name": "ROLLBACK"}]
    input = _input(tmp_path, "ROLLBACK", _config(stages))

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.SUCCESS

    deployment = next(m for m in _applied(input) if m.key.kind == "Deployment")
    assert deployment.key.name == "web"
    assert deployment.body["spec"]["template"]["spec"]["containers"][0]["image"] == "web:v1"
    assert deployment.body["metadata"]["annotations"][LABEL_COMMIT_HASH] == "old"
    assert _deleted(input) == ["web-cfg-canary", "web-canary", "web-cfg-baseline", "web-baseline"]


def test__DispatchingExecutor__execute__rollback_without_running_commit(tmp_path: Path) -> None:
    input = _input(tmp_path, "ROLLBACK", _config([{"name": "ROLLBACK"}]))
    input.deployment.running_commit_hash = ""

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.FAILURE
    assert _errors(input) == ["Unable to determine running commit: the application has no successful deployment yet"]
    input.cluster.apply_manifest.assert_not_called()  # type: ignore[attr-defined]


def test__DispatchingExecutor__execute__cancelled(tmp_path: Path) -> None:
    input = _input(tmp_path, "K8S_SYNC", _config([{"name": "K8S_SYNC"}]))
    stop = StopSignal()
    input.cluster.apply_manifest.side_effect = lambda manifest: stop.cancel()  # type: ignore[attr-defined]

    assert DispatchingExecutor.default().execute(input, stop) == StageStatus.CANCELLED
    assert input.cluster.apply_manifest.call_count == 1  # type: ignore[attr-defined]


def test__DispatchingExecutor__execute__terminated_keeps_original_status(tmp_path: Path) -> None:
    input = _input(tmp_path, "K8S_SYNC", _config([{"name": "K8S_SYNC"}]), stage_status=StageStatus.RUNNING)
    stop = StopSignal()
    stop.terminate()

    assert DispatchingExecutor.default().execute(input, stop) == StageStatus.RUNNING


def test__DispatchingExecutor__execute__unexpected_error(tmp_path: Path) -> None:
    loader_factory = MagicMock()
    loader_factory.return_value.load_manifests.side_effect = RuntimeError("disk on fire")
    input = _input(tmp_path, "K8S_SYNC", _config([{"name": "K8S_SYNC"}]), loader_factory=loader_factory)

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.FAILURE
    assert _errors(input) == ["Unexpected error while executing stage K8S_SYNC: disk on fire"]


def test__DispatchingExecutor__execute__uses_manifests_cache(tmp_path: Path) -> None:
    input = _input(tmp_path, "K8S_SYNC", _config([{"name": "K8S_SYNC"}]))
    manifests = list(yaml.safe_load_all(MANIFESTS.format(version="v2")))
    loader_factory = MagicMock()
    loader_factory.return_value.load_manifests.side_effect = lambda: [Manifest.from_dict(m) for m in manifests]
    input.loader_factory = loader_factory

    executor = DispatchingExecutor.default()
    assert executor.execute(input, StopSignal()) == StageStatus.SUCCESS
    assert executor.execute(input, StopSignal()) == StageStatus.SUCCESS
    assert loader_factory.call_count == 1
    assert len(_applied(input)) == 6


@pytest.mark.parametrize("stage", ["K8S_BASELINE_ROLLOUT", "K8S_BASELINE_CLEAN"])
def test__DispatchingExecutor__execute__baseline_without_running_commit(tmp_path: Path, stage: str) -> None:
    input = _input(tmp_path, stage, _config([{"name": stage}]))
    input.deployment.running_commit_hash = ""
    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.FAILURE


def test__DispatchingExecutor__execute__canary_clean_rejects_empty_suffix(tmp_path: Path) -> None:
    config = _config([{"name": "K8S_CANARY_ROLLOUT", "with": {"suffix": ""}}, {"name": "K8S_CANARY_CLEAN"}])
    input = _input(tmp_path, "K8S_CANARY_CLEAN", config)

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.FAILURE
    assert _errors(input) == ["The canary variant requires a non-empty name suffix"]
    input.cluster.delete.assert_not_called()  # type: ignore[attr-defined]


def test__DispatchingExecutor__execute__rollback_rejects_empty_suffix(tmp_path: Path) -> None:
    stages = [{"name": "K8S_BASELINE_ROLLOUT", "with": {"suffix": ""}}, {"name": "ROLLBACK"}]
    input = _input(tmp_path, "ROLLBACK", _config(stages))

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.FAILURE
    assert _errors(input) == ["The baseline variant requires a non-empty name suffix"]
    input.cluster.apply_manifest.assert_not_called()  # type: ignore[attr-defined]
    input.cluster.delete.assert_not_called()  # type: ignore[attr-defined]


def test__DispatchingExecutor__execute__traffic_routing_to_primary_after_sync(tmp_path: Path) -> None:
    stages = [
        {"name": "K8S_SYNC", "with": {"addVariantLabelToSelector": True}},
        {"name": "K8S_TRAFFIC_ROUTING", "with": {"all": "primary"}},
    ]
    input = _input(tmp_path, "K8S_TRAFFIC_ROUTING", _config(stages))

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.SUCCESS

    [service] = _applied(input)
    assert service.body["spec"]["selector"] == {"app": "web", LABEL_VARIANT: "primary"}


def test__DispatchingExecutor__execute__rollback_after_sync_with_variant_selector(tmp_path: Path) -> None:
    stages = [{"name": "K8S_SYNC", "with": {"addVariantLabelToSelector": True}}, {"name": "ROLLBACK"}]
    input = _input(tmp_path, "ROLLBACK", _config(stages))

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.SUCCESS

    deployment = next(m for m in _applied(input) if m.key.kind == "Deployment")
    assert deployment.body["spec"]["selector"]["matchLabels"] == {"app": "web", LABEL_VARIANT: "primary"}
    assert _deleted(input) == []


def test__DispatchingExecutor__execute__traffic_routing_to_inconsistent_variant(tmp_path: Path) -> None:
    stages = [
        {"name": "K8S_CANARY_ROLLOUT", "with": {"suffix": ""}},
        {"name": "K8S_TRAFFIC_ROUTING", "with": {"all": "canary"}},
    ]
    input = _input(tmp_path, "K8S_TRAFFIC_ROUTING", _config(stages))

    assert DispatchingExecutor.default().execute(input, StopSignal()) == StageStatus.FAILURE
    assert _errors(input) == ["The canary variant requires a non-empty name suffix"]
    input.cluster.apply_manifest.assert_not_called()  # type: ignore[attr-defined]
