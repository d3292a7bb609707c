from enum import Enum
from pathlib import Path
import signal
from typing import Optional

from loguru import logger
from typer import Exit, Option

from kuberollout.cache import LRUCache
from kuberollout.cluster import ClusterClient
from kuberollout.config import DeploymentConfig
from kuberollout.errors import ConfigError
from kuberollout.loader import default_loader_factory
from kuberollout.logpersister import LoguruLogPersister
from kuberollout.stages import DeploymentInfo, StageInput
from kuberollout.stages.dispatch import DispatchingExecutor
from kuberollout.stopsignal import StageStatus, StopSignal

from . import app


class ClientType(str, Enum):
    KUBECTL = "kubectl"
    API = "api"


def _create_cluster_client(
    client: ClientType,
    kubeconfig: Path | None,
    context: str | None,
    dry_run: bool,
    timeout: float | None = None,
) -> ClusterClient:
    """
    Create the client for the cluster. The stage *timeout*, if any, bounds every single cluster call.
    """

    if dry_run:
        from kuberollout.cluster.printing import PrintingClusterClient

        logger.info("Dry run, manifests are printed instead of applied.")
        return PrintingClusterClient()

    if client == ClientType.API:
        from kubernetes.client.api_client import ApiClient
        from kubernetes.config.kube_config import load_kube_config
        from kuberollout.cluster.dynamic import DynamicClusterClient

        load_kube_config(config_file=str(kubeconfig) if kubeconfig else None, context=context)
        return DynamicClusterClient.from_api_client(ApiClient(), request_timeout=timeout)

    from kuberollout.cluster.kubectl import Kubectl

    kubectl = Kubectl(context=context, request_timeout=timeout)
    if kubeconfig is not None:
        kubectl.set_kubeconfig(kubeconfig)
    return kubectl


@app.command()
def execute(
    stage: str = Option(..., "--stage", "-s", help="The name of the stage to execute, e.g. K8S_CANARY_ROLLOUT."),
    app_id: str = Option(..., envvar="KUBEROLLOUT_APP_ID", help="The ID of the application."),
    commit: str = Option(..., help="The commit that is being deployed."),
    repo_dir: Optional[Path] = Option(
        None,
        help="The checkout of the commit that is being deployed. If not set, the directory containing the "
        "deployment configuration is searched for in the current directory and its parents.",
    ),
    git_path: str = Option(".", help="The directory of the application, relative to the repository."),
    app_name: str = Option("", help="The name of the application. Defaults to the application ID."),
    running_commit: str = Option("", help="The commit that is currently deployed, if any."),
    running_repo_dir: Optional[Path] = Option(None, help="The checkout of the running commit."),
    config_filename: str = Option(DeploymentConfig.FILENAME, help="The name of the deployment configuration file."),
    stage_index: Optional[int] = Option(None, help="The position of the stage in the pipeline."),
    agent_id: str = Option("", envvar="KUBEROLLOUT_AGENT_ID", help="The ID of the deploying agent."),
    kubeconfig: Optional[Path] = Option(None, help="The kubeconfig to use."),
    context: Optional[str] = Option(None, help="The kubeconfig context to use."),
    client: ClientType = Option(ClientType.KUBECTL, help="How to talk to the cluster."),
    timeout: Optional[float] = Option(None, help="Time out the stage after this many seconds."),
    dry_run: bool = Option(False, help="Print the manifests instead of applying them."),
) -> None:
    """
    Execute a single stage of a Kubernetes application's pipeline.
    """

    try:
        if repo_dir is None:
            repo_dir = DeploymentConfig.find_config_file().parent
            git_path = "."
        config = DeploymentConfig.load(repo_dir / git_path / config_filename)
    except ConfigError as exc:
        logger.error("{}", exc)
        raise Exit(1)

    stop = StopSignal(timeout=timeout)
    previous_handler = signal.signal(signal.SIGINT, lambda *_: stop.cancel())

    input = StageInput(
        stage_name=stage,
        stage_index=stage_index,
        deployment=DeploymentInfo(
            application_id=app_id,
            application_name=app_name or app_id,
            commit_hash=commit,
            running_commit_hash=running_commit,
            git_path=git_path,
        ),
        config=config,
        agent_id=agent_id,
        repo_dir=repo_dir,
        running_repo_dir=running_repo_dir,
        cache=LRUCache(),
        cluster=_create_cluster_client(client, kubeconfig, context, dry_run, timeout),
        log=LoguruLogPersister(stage),
        loader_factory=default_loader_factory(config_filename),
    )

    try:
        status = DispatchingExecutor.default().execute(input, stop)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    raise Exit(0 if status == StageStatus.SUCCESS else 1)
