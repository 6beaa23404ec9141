"""k3s control plane (cluster-api-k3s KThreesControlPlane)."""

import json
import logging
import posixpath
from typing import List

from pydantic import Field

from capi_bootstrap.certs import Certificates
from capi_bootstrap.cloudinit.files import construct_file, template_path
from capi_bootstrap.cloudinit.models import InitFile, ParsedManifest
from capi_bootstrap.manifests import require_kind
from capi_bootstrap.manifests.resources import (
    KThreesAgentConfig,
    KThreesControlPlane,
    KThreesServerConfig,
)
from capi_bootstrap.models import Values
from capi_bootstrap.providers.controlplane.base import INIT_SCRIPT_PATH, ControlPlaneProvider
from capi_bootstrap.utils import to_yaml

logger = logging.getLogger(__name__)

MANIFEST_DIR = "/var/lib/rancher/k3s/server/manifests/"
CONFIG_PATH = "/etc/rancher/k3s/config.yaml"
TLS_DIR = "/var/lib/rancher/k3s/server/tls"
ETCD_PROXY_PATH = posixpath.join(MANIFEST_DIR, "etcd-proxy.yaml")

TLS_CIPHER_SUITES_ARG = (
    "tls-cipher-suites="
    "TLS_ECDHE_ECDSA_WITH_AES_128_GCM_SHA256,TLS_ECDHE_RSA_WITH_AES_128_GCM_SHA256,"
    "TLS_ECDHE_ECDSA_WITH_CHACHA20_POLY1305,TLS_ECDHE_RSA_WITH_AES_256_GCM_SHA384,"
    "TLS_ECDHE_RSA_WITH_CHACHA20_POLY1305,TLS_ECDHE_ECDSA_WITH_AES_256_GCM_SHA384"
)


class K3sProvider(ControlPlaneProvider):
    name: str = "KThreesControlPlane"
    server_config: KThreesServerConfig = Field(default_factory=KThreesServerConfig)
    agent_config: KThreesAgentConfig = Field(default_factory=KThreesAgentConfig)

    def pre_deploy(self, values: Values) -> None:
        _, control_plane = require_kind(values.manifests, KThreesControlPlane.KIND, KThreesControlPlane)
        config_spec = control_plane.spec.kthrees_config_spec
        self.server_config = config_spec.server_config
        self.agent_config = config_spec.agent_config

        values.bootstrap_manifest_dir = MANIFEST_DIR
        values.k8s_version = control_plane.spec.version
        logger.info(f"k8s version: {values.k8s_version}")
        self.bootstrap_trust(values)

    def new_certificates(self) -> Certificates:
        return Certificates.for_k3s(TLS_DIR)

    def generate_capi_file(self, values: Values) -> InitFile:
        return construct_file(
            posixpath.join(MANIFEST_DIR, "capi-k3s.yaml"),
            template_path(__file__, "capi-k3s.yaml"),
            self.context(values),
        )

    def generate_additional_files(self, values: Values) -> List[InitFile]:
        return [
            InitFile(path=CONFIG_PATH, content=to_yaml(self.server_init_config(values)), permissions="0600"),
            construct_file(ETCD_PROXY_PATH, template_path(__file__, "etcd-proxy.yaml"), self.context(values)),
        ]

    def generate_init_script(self, values: Values) -> InitFile:
        return construct_file(
            INIT_SCRIPT_PATH,
            template_path(__file__, "init-cluster.sh"),
            self.context(values),
            permissions="0755",
        )

    def generate_run_command(self, values: Values) -> List[str]:
        return [f"curl -sfL https://get.k3s.io | INSTALL_K3S_VERSION={json.dumps(values.k8s_version)} sh -s - server"]

    def server_init_config(self, values: Values) -> dict:
        """The k3s server config for the first control plane node."""
        server, agent = self.server_config, self.agent_config
        config = {
            "cluster-init": True,
            "disable-cloud-controller": True,
            "token": values.bootstrap_token,
            "tls-san": server.tls_san + [values.cluster_endpoint],
            "kube-apiserver-arg": server.kube_apiserver_args + ["anonymous-auth=true", TLS_CIPHER_SUITES_ARG],
            "kube-controller-manager-arg": server.kube_controller_manager_args + ["cloud-provider=external"],
            "kube-scheduler-arg": server.kube_scheduler_args,
            "disable": server.disable_components,
            "cluster-cidr": server.cluster_cidr,
            "service-cidr": server.service_cidr,
            "cluster-dns": server.cluster_dns,
            "cluster-domain": server.cluster_domain,
            "node-name": agent.node_name,
            "kubelet-arg": agent.kubelet_args + ["cloud-provider=external"],
            "kube-proxy-arg": agent.kube_proxy_args,
            "node-label": agent.node_labels,
            "node-taint": agent.node_taints,
            "private-registry": agent.private_registry,
        }
        return {key: value for key, value in config.items() if value not in ("", [], None)}

    def update_manifests(self, values: Values) -> ParsedManifest:
        _, control_plane = require_kind(values.manifests, KThreesControlPlane.KIND, KThreesControlPlane)
        self.restore_control_plane_ref(values.manifests, control_plane)
        spec = control_plane.spec.kthrees_config_spec
        return self.parsed_manifest(spec.files, spec.pre_k3s_commands, spec.post_k3s_commands)
