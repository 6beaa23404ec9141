"""kubeadm control plane (KubeadmControlPlane)."""

import copy
import logging
import posixpath
import re
from typing import Any, Dict, List, Tuple

from pydantic import Field

from capi_bootstrap.certs import API_SERVER_PORT, Certificates, join_host_port
from capi_bootstrap.cloudinit.files import construct_file, template_path
from capi_bootstrap.cloudinit.models import InitFile, ParsedManifest
from capi_bootstrap.exceptions import ManifestError
from capi_bootstrap.manifests import require_kind
from capi_bootstrap.manifests.resources import KubeadmControlPlane
from capi_bootstrap.models import Values
from capi_bootstrap.providers.controlplane.base import INIT_SCRIPT_PATH, ControlPlaneProvider
from capi_bootstrap.utils import to_yaml

logger = logging.getLogger(__name__)

MANIFEST_DIR = "/var/lib/kubeadm/manifests/"
CONFIG_PATH = "/run/kubeadm/kubeadm.yaml"
PKI_DIR = "/etc/kubernetes/pki"

_VERSION = re.compile(r"^v?(\d+)\.(\d+)(?:\.(\d+))?(\S*)$")


def parse_version(version: str) -> Tuple[int, int, int, str]:
    """Parse a Kubernetes version leniently into (major, minor, patch, suffix)."""
    match = _VERSION.match(version.strip())
    if not match:
        raise ManifestError(f"invalid kubernetes version {version!r}")
    major, minor, patch, suffix = match.groups()
    return int(major), int(minor), int(patch or 0), suffix


def kubeadm_api_version(version: str) -> str:
    """kubeadm config API served by a Kubernetes version."""
    major, minor, _, _ = parse_version(version)
    if (major, minor) >= (1, 31):
        return "kubeadm.k8s.io/v1beta4"
    return "kubeadm.k8s.io/v1beta3"


class KubeadmProvider(ControlPlaneProvider):
    name: str = "KubeadmControlPlane"
    cluster_configuration: Dict[str, Any] = Field(default_factory=dict)
    init_configuration: Dict[str, Any] = Field(default_factory=dict)

    def pre_deploy(self, values: Values) -> None:
        _, control_plane = require_kind(values.manifests, KubeadmControlPlane.KIND, KubeadmControlPlane)
        config_spec = control_plane.spec.kubeadm_config_spec
        self.cluster_configuration = config_spec.cluster_configuration
        self.init_configuration = config_spec.init_configuration

        values.bootstrap_manifest_dir = MANIFEST_DIR
        values.k8s_version = control_plane.spec.version
        logger.info(f"k8s version: {values.k8s_version}")
        self.bootstrap_trust(values)

    def new_certificates(self) -> Certificates:
        return Certificates.for_kubeadm(PKI_DIR)

    def generate_capi_file(self, values: Values) -> InitFile:
        return construct_file(
            posixpath.join(MANIFEST_DIR, "capi-kubeadm.yaml"),
            template_path(__file__, "capi-kubeadm.yaml"),
            self.context(values),
        )

    def generate_additional_files(self, values: Values) -> List[InitFile]:
        return [InitFile(path=CONFIG_PATH, content=self.kubeadm_config(values), permissions="0640")]

    def generate_init_script(self, values: Values) -> InitFile:
        return construct_file(
            INIT_SCRIPT_PATH,
            template_path(__file__, "init-cluster.sh"),
            self.context(values),
            permissions="0755",
        )

    def generate_run_command(self, values: Values) -> List[str]:
        return [f"kubeadm init --config {CONFIG_PATH}"]

    def kubeadm_config(self, values: Values) -> str:
        """ClusterConfiguration and InitConfiguration documents for ``kubeadm init``."""
        major, minor, patch, suffix = parse_version(values.k8s_version)
        api_version = kubeadm_api_version(values.k8s_version)

        cluster_config = copy.deepcopy(self.cluster_configuration)
        cluster_config.update({
            "apiVersion": api_version,
            "kind": "ClusterConfiguration",
            "controlPlaneEndpoint": join_host_port(values.cluster_endpoint, API_SERVER_PORT),
            "clusterName": values.cluster_name,
            "kubernetesVersion": f"v{major}.{minor}.{patch}{suffix}",
        })
        api_server = cluster_config.setdefault("apiServer", {})
        api_server["certSANs"] = ["127.0.0.1"]

        init_config = copy.deepcopy(self.init_configuration)
        init_config.update({"apiVersion": api_version, "kind": "InitConfiguration"})
        return "\n---\n".join([to_yaml(cluster_config), to_yaml(init_config)])

    def update_manifests(self, values: Values) -> ParsedManifest:
        _, control_plane = require_kind(values.manifests, KubeadmControlPlane.KIND, KubeadmControlPlane)
        self.restore_control_plane_ref(values.manifests, control_plane)
        spec = control_plane.spec.kubeadm_config_spec
        return self.parsed_manifest(spec.files, spec.pre_kubeadm_commands, spec.post_kubeadm_commands)
