"""
Pushes manifests to and removes resources from the cluster.

Applying is sequential and stops at the first failure: manifests are expected in dependency order, and continuing past
a failed dependency does more harm than stopping. Resources that were applied before the failure stay in the cluster.

Deleting is best effort: every resource is attempted, resources that are already gone count as deleted, and a single
aggregate error is reported at the end if any resource could not be deleted.
"""

from dataclasses import dataclass, field

from kuberollout.cluster import ClusterClient, ResourceNotFoundError
from kuberollout.errors import KubeRolloutError, StageStoppedError
from kuberollout.logpersister import LogPersister
from kuberollout.manifest import Manifest, ResourceKey
from kuberollout.stopsignal import StopSignal


@dataclass
class ApplyError(KubeRolloutError):
    key: ResourceKey
    cause: Exception

    def __str__(self) -> str:
        return f"Failed to apply manifest {self.key.readable()}: {self.cause}"


@dataclass
class DeleteResourcesError(KubeRolloutError):
    failed: int
    total: int

    def __str__(self) -> str:
        return f"{self.failed} of {self.total} resources failed to delete"


@dataclass
class DeleteResult:
    """
    The outcome of `delete_resources()`. Resources that were not attempted because the stage was stopped count as
    failed.
    """

    total: int
    deleted: list[ResourceKey] = field(default_factory=list)
    failed: list[ResourceKey] = field(default_factory=list)
    not_attempted: list[ResourceKey] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.deleted)

    @property
    def error(self) -> DeleteResourcesError | None:
        if self.succeeded < self.total:
            return DeleteResourcesError(self.total - self.succeeded, self.total)
        return None

    def check(self) -> None:
        """
        Raise the aggregate error if not all resources could be deleted.
        """

        if (error := self.error) is not None:
            raise error


def apply_manifests(
    cluster: ClusterClient,
    manifests: list[Manifest],
    log: LogPersister,
    stop: StopSignal | None = None,
    namespace: str = "",
) -> None:
    """
    Apply the manifests in the given order.

    Raises:
        ApplyError: For the first manifest that could not be applied. Later manifests are not attempted.
        StageStoppedError: If the stop signal was raised before all manifests were applied.
    """

    if namespace:
        log.info("Start applying {} manifests to {!r} namespace", len(manifests), namespace)
    else:
        log.info("Start applying {} manifests", len(manifests))

    for manifest in manifests:
        if stop is not None and stop.stopped():
            log.error("Stopped applying manifests before {} ({})", manifest.key.readable(), stop.signal().value)
            raise StageStoppedError(f"Stage was stopped ({stop.signal().value}) while applying manifests")
        try:
            cluster.apply_manifest(manifest)
        except Exception as exc:
            log.error("Failed to apply manifest: {} ({})", manifest.key.readable(), exc)
            raise ApplyError(manifest.key, exc) from exc
        log.success("- applied manifest: {}", manifest.key.readable())

    log.success("Successfully applied {} manifests", len(manifests))


def delete_resources(
    cluster: ClusterClient,
    keys: list[ResourceKey],
    log: LogPersister,
    stop: StopSignal | None = None,
) -> DeleteResult:
    """
    Delete the given resources. Failures are reported per resource and do not stop the deletion of the others.
    """

    result = DeleteResult(total=len(keys))
    if not keys:
        log.info("No resources to delete")
        return result

    log.info("Start deleting {} resources", len(keys))
    for idx, key in enumerate(keys):
        if stop is not None and stop.stopped():
            result.not_attempted = list(keys[idx:])
            log.error("Stopped deleting resources, {} were not attempted ({})", len(keys) - idx, stop.signal().value)
            break
        try:
            cluster.delete(key)
        except ResourceNotFoundError:
            log.info("- no resource {} to delete", key.readable())
            result.deleted.append(key)
        except Exception as exc:
            log.error("- unable to delete resource: {} ({})", key.readable(), exc)
            result.failed.append(key)
        else:
            log.success("- deleted resource: {}", key.readable())
            result.deleted.append(key)

    if result.succeeded < result.total:
        log.info("Deleted {}/{} resources", result.succeeded, result.total)
    else:
        log.success("Successfully deleted {} resources", result.total)
    return result
