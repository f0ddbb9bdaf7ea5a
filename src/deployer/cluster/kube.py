"""Cluster application with kubectl.

Turns a persisted deployment into a Kubernetes Deployment manifest and
applies it with ``kubectl apply``. The manifest is deliberately minimal:
one container running the built image, labelled with the deployment id.
"""

import logging
import re
from typing import Any, Dict, Optional, Protocol

import yaml

from src.deployer.builder.models import Image
from src.deployer.extractor.models import AppSpec
from src.deployer.process import run_command

logger = logging.getLogger(__name__)

_DNS_LABEL_INVALID = re.compile(r"[^a-z0-9-]+")


class ClusterApplyError(Exception):
    """Raised when a manifest cannot be applied to the cluster."""

    pass


class ClusterApplier(Protocol):
    def define_app(self, app_id: str, app: AppSpec, image: Image) -> Dict[str, Any]:
        ...

    async def apply(self, kube_config: Optional[str], manifest: Dict[str, Any]) -> None:
        ...


def dns_label(value: str) -> str:
    """Normalize a service name into a Kubernetes resource name."""
    label = _DNS_LABEL_INVALID.sub("-", value.lower()).strip("-")
    return label[:63].rstrip("-") or "app"


class KubectlApplier:
    """Applies deployment manifests with the kubectl CLI.

    Attributes:
        namespace: Namespace workloads are created in.
        kubectl_path: Path to the kubectl executable.
        timeout_seconds: Maximum duration of one apply.
    """

    def __init__(
        self,
        namespace: str = "default",
        kubectl_path: str = "kubectl",
        timeout_seconds: int = 300,
    ):
        self.namespace = namespace
        self.kubectl_path = kubectl_path
        self.timeout_seconds = timeout_seconds

    def define_app(self, app_id: str, app: AppSpec, image: Image) -> Dict[str, Any]:
        """Build the Deployment manifest for a persisted app definition.

        Args:
            app_id: Id the store assigned to the AppDefinition.
            app: The extracted application spec.
            image: The built image.

        Returns:
            The manifest as a plain dictionary.
        """
        service = app.service
        name = dns_label(service.name)
        labels = {"app": name, "deployer/deployment-id": str(app_id)}

        container: Dict[str, Any] = {
            "name": name,
            "image": image.full_path,
            "env": [{"name": k, "value": v} for k, v in sorted(service.env.items())],
        }
        if service.port:
            container["ports"] = [{"containerPort": service.port}]

        return {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": name, "namespace": self.namespace, "labels": labels},
            "spec": {
                "replicas": service.replicas,
                "selector": {"matchLabels": {"app": name}},
                "template": {
                    "metadata": {"labels": labels},
                    "spec": {"containers": [container]},
                },
            },
        }

    async def apply(self, kube_config: Optional[str], manifest: Dict[str, Any]) -> None:
        """Apply a manifest to the cluster.

        Args:
            kube_config: Path to the kubeconfig; None uses kubectl's default.
            manifest: Manifest produced by define_app.

        Raises:
            ClusterApplyError: If kubectl fails.
        """
        args = [self.kubectl_path]
        if kube_config:
            args += ["--kubeconfig", kube_config]
        args += ["apply", "-f", "-"]

        name = manifest.get("metadata", {}).get("name", "")
        logger.info(
            "Applying manifest",
            extra={"deployment": name, "namespace": self.namespace},
        )

        result = await run_command(
            args,
            timeout_seconds=self.timeout_seconds,
            stdin=yaml.safe_dump(manifest, sort_keys=False).encode(),
        )
        if not result.success:
            raise ClusterApplyError(
                f"kubectl apply failed for {name}: {result.stderr.strip()[-500:]}"
            )
