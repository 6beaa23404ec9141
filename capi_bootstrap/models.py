"""Shared models threaded through one bootstrap operation."""

from datetime import datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Values(BaseModel):
    """Mutable context for one cluster operation.

    The kubeconfig and the manifests are rebuilt on every run and are not
    persisted with the cluster state.
    """
    cluster_name: str = ""
    namespace: str = "default"
    k8s_version: str = ""
    bootstrap_token: str = ""
    cluster_endpoint: str = ""
    ssh_authorized_keys: List[str] = Field(default_factory=list)
    cluster_kind: str = ""
    manifest_file: str = ""
    bootstrap_manifest_dir: str = ""
    tar_write_files: bool = False

    kubeconfig: Optional[Dict[str, Any]] = Field(default=None, exclude=True)
    manifests: List[str] = Field(default_factory=list, exclude=True)
    manifest_template: str = Field(default="", exclude=True)

    def template_context(self) -> Dict[str, Any]:
        """Names the manifest templates use for these values."""
        return {
            "ClusterName": self.cluster_name,
            "Namespace": self.namespace,
            "K8sVersion": self.k8s_version,
            "BootstrapToken": self.bootstrap_token,
            "ClusterEndpoint": self.cluster_endpoint,
            "SSHAuthorizedKeys": self.ssh_authorized_keys,
            "ClusterKind": self.cluster_kind,
            "BootstrapManifestDir": self.bootstrap_manifest_dir,
        }


@dataclass
class NodeInfo:
    """One row of the ``list`` output."""
    cluster: str
    name: str = ""
    status: str = "NotReady"
    version: str = ""
    external_ip: str = ""
    created: Optional[datetime] = None

    def age(self, now: Optional[datetime] = None) -> str:
        """Kubectl-style age of the node."""
        if self.created is None:
            return ""
        now = now or datetime.now(self.created.tzinfo)
        seconds = max(int((now - self.created).total_seconds()), 0)
        if seconds < 120:
            return f"{seconds}s"
        minutes = seconds // 60
        if minutes < 120:
            return f"{minutes}m"
        hours = minutes // 60
        if hours < 48:
            return f"{hours}h"
        return f"{hours // 24}d"
