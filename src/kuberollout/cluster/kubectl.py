from dataclasses import dataclass
import os
from pathlib import Path
import shlex
import subprocess
from tempfile import TemporaryDirectory
from typing import Any

import yaml
from loguru import logger

from kuberollout.cluster import FIELD_MANAGER, ClusterClient, ResourceNotFoundError
from kuberollout.manifest import Manifest, ResourceKey


@dataclass
class KubectlError(Exception):
    statuscode: int
    stderr: str | None = None

    def __str__(self) -> str:
        message = f"Kubectl command failed with status code {self.statuscode}"
        if self.stderr:
            message += f": {self.stderr}"
        return message


class Kubectl(ClusterClient):
    """
    Cluster client that shells out to `kubectl`. Manifests are applied one at a time with server-side apply.
    """

    def __init__(self, context: str | None = None, request_timeout: float | None = None) -> None:
        self.env: dict[str, str] = {}
        self.context = context
        self.request_timeout = request_timeout
        self.tempdir: TemporaryDirectory | None = None

    def __del__(self) -> None:
        if hasattr(self, "tempdir") and self.tempdir is not None:
            logger.warning("Kubectl object was not cleaned up properly")
            self.tempdir.cleanup()

    def __enter__(self) -> "Kubectl":
        return self

    def __exit__(self, exc_type: Any, exc_value: Any, traceback: Any) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        if self.tempdir is not None:
            self.tempdir.cleanup()
            self.tempdir = None

    def set_kubeconfig(self, kubeconfig: dict[str, Any] | str | Path) -> None:
        """
        Set the kubeconfig to use for `kubectl` commands. A dictionary or string is written to a temporary file.
        """

        if isinstance(kubeconfig, Path):
            kubeconfig_path = kubeconfig
        else:
            if self.tempdir is None:
                self.tempdir = TemporaryDirectory()
            kubeconfig_path = Path(self.tempdir.name) / "kubeconfig"
            with open(kubeconfig_path, "w") as f:
                if isinstance(kubeconfig, str):
                    f.write(kubeconfig)
                else:
                    yaml.safe_dump(kubeconfig, f)

        self.env["KUBECONFIG"] = str(kubeconfig_path)

    def _run(self, command: list[str], input: str | None = None) -> subprocess.CompletedProcess[str]:
        command = ["kubectl", *command]
        if self.context:
            command.extend(["--context", self.context])
        if self.request_timeout is not None:
            command.append(f"--request-timeout={self.request_timeout}s")

        logger.debug("Running command: $ {command}", command=" ".join(map(shlex.quote, command)))
        try:
            return subprocess.run(
                command,
                input=input,
                text=True,
                capture_output=True,
                env={**os.environ, **self.env},
                timeout=self.request_timeout,
            )
        except subprocess.TimeoutExpired:
            raise KubectlError(-1, f"kubectl did not finish within {self.request_timeout}s")

    def apply_manifest(self, manifest: Manifest) -> None:
        status = self._run(
            ["apply", "-f", "-", "--server-side", "--force-conflicts", f"--field-manager={FIELD_MANAGER}"],
            input=manifest.to_yaml(),
        )
        if status.returncode:
            raise KubectlError(status.returncode, status.stderr.strip())

    def delete(self, key: ResourceKey) -> None:
        command = ["delete", get_kubectl_resource_name(key), "--wait=false"]
        if key.namespace:
            command.extend(["--namespace", key.namespace])

        status = self._run(command)
        if status.returncode:
            if "(NotFound)" in status.stderr:
                raise ResourceNotFoundError(key)
            raise KubectlError(status.returncode, status.stderr.strip())


def get_kubectl_resource_name(key: ResourceKey) -> str:
    """
    Return the fully qualified `KIND.VERSION.GROUP/NAME` argument that identifies the resource for `kubectl`.
    """

    if "/" in key.api_version:
        group, version = key.api_version.split("/", 1)
        return f"{key.kind}.{version}.{group}/{key.name}"
    return f"{key.kind}/{key.name}"
