"""Control plane provider capability."""

import logging
import posixpath
from abc import abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import PrivateAttr

from capi_bootstrap.certs import Certificates, kubeconfig_secret
from capi_bootstrap.cloudinit.models import InitFile, ParsedManifest
from capi_bootstrap.exceptions import ConfigurationError, NoCertificatesError
from capi_bootstrap.manifests import (
    CONTROL_PLANE_PLACEHOLDER,
    get_cluster_def,
    replace_at,
    unescape_placeholders,
)
from capi_bootstrap.manifests.resources import BootstrapFile, ObjectReference, Resource
from capi_bootstrap.models import Values
from capi_bootstrap.providers.base import Provider
from capi_bootstrap.utils import generate_token, to_yaml

logger = logging.getLogger(__name__)

INIT_SCRIPT_PATH = "/tmp/init-cluster.sh"


class ControlPlaneProvider(Provider):
    """Installs one control plane flavor on the bootstrap node.

    Providers self-host their trust material: ``pre_deploy`` generates the
    certificates once and every accessor derives from that single set.
    """

    _certificates: Optional[Certificates] = PrivateAttr(default=None)

    def pre_cmd(self, values: Values) -> None:
        """Validate the environment; nothing is needed by default."""

    @abstractmethod
    def pre_deploy(self, values: Values) -> None:
        """Read the control plane resource and bootstrap trust."""

    @abstractmethod
    def new_certificates(self) -> Certificates:
        """The empty certificate set for this flavor."""

    @abstractmethod
    def generate_capi_file(self, values: Values) -> InitFile:
        """The manifest installing this control plane provider."""

    @abstractmethod
    def generate_additional_files(self, values: Values) -> List[InitFile]:
        """Config files the installer needs on the node."""

    @abstractmethod
    def generate_init_script(self, values: Values) -> InitFile:
        """The script driving the pivot once the control plane is up."""

    @abstractmethod
    def generate_run_command(self, values: Values) -> List[str]:
        """Commands installing the control plane."""

    @abstractmethod
    def update_manifests(self, values: Values) -> ParsedManifest:
        """Extract files and commands from the control plane resource."""

    def post_deploy(self, values: Values) -> None:
        """Hook run after the bootstrap node was created."""

    def template_context(self) -> Dict[str, Any]:
        return {}

    def context(self, values: Values) -> Dict[str, Any]:
        context = values.template_context()
        context.update(self.template_context())
        return context

    def bootstrap_trust(self, values: Values) -> None:
        """Generate certificates and the admin kubeconfig.

        Raises:
            ConfigurationError: If the cluster endpoint is not known yet
        """
        if not values.cluster_endpoint:
            raise ConfigurationError("cluster endpoint is not set, the infrastructure pre-deploy must run first")
        if not values.bootstrap_token:
            values.bootstrap_token = generate_token()

        certificates = self.new_certificates()
        certificates.generate()
        values.kubeconfig = certificates.new_kubeconfig(values.cluster_name, values.cluster_endpoint)
        self._certificates = certificates
        logger.info(f"🔐 Generated trust material for cluster {values.cluster_name}")

    @property
    def has_certificates(self) -> bool:
        return self._certificates is not None and self._certificates.generated

    @property
    def certificates(self) -> Certificates:
        if not self.has_certificates:
            raise NoCertificatesError()
        return self._certificates

    def get_control_plane_cert_secret(self, values: Values) -> InitFile:
        """CAPI secrets for every CA plus the bootstrap token."""
        secrets = self.certificates.as_secrets(values.cluster_name, values.namespace, values.bootstrap_token)
        return InitFile(
            path=posixpath.join(values.bootstrap_manifest_dir, "cp-secrets.yaml"),
            content=to_yaml(secrets),
        )

    def get_control_plane_cert_files(self, values: Values) -> List[InitFile]:
        return self.certificates.as_files()

    def get_kubeconfig(self, values: Values) -> InitFile:
        """The admin kubeconfig wrapped in the ``<cluster>-kubeconfig`` secret."""
        if not self.has_certificates or values.kubeconfig is None:
            raise NoCertificatesError()
        secret = kubeconfig_secret(values.cluster_name, values.namespace, to_yaml(values.kubeconfig))
        return InitFile(
            path=posixpath.join(values.bootstrap_manifest_dir, "kubeconfig-secret.yaml"),
            content=to_yaml(secret),
        )

    def restore_control_plane_ref(self, documents: List[str], control_plane: Resource) -> None:
        """Point the Cluster back at the real control plane resource."""
        found = get_cluster_def(documents)
        if found is None:
            return
        index, cluster = found
        spec = cluster.spec
        ref = spec.control_plane_ref or ObjectReference()
        if ref.name and ref.name != CONTROL_PLANE_PLACEHOLDER:
            return
        ref.name = control_plane.metadata.name
        ref.kind = control_plane.kind
        if not ref.api_version:
            ref.api_version = control_plane.api_version
        spec.control_plane_ref = ref
        cluster.spec = spec
        replace_at(documents, index, cluster)

    @staticmethod
    def parsed_manifest(files: List[BootstrapFile], pre: List[str], post: List[str]) -> ParsedManifest:
        """Files and commands declared in the resource, with cloud-init placeholders restored."""
        parsed = ParsedManifest()
        for f in files:
            init_file = InitFile.from_dict(f.model_dump())
            init_file.content = unescape_placeholders(init_file.content)
            parsed.additional_files.append(init_file)
        parsed.pre_run_cmd = [unescape_placeholders(cmd) for cmd in pre]
        parsed.post_run_cmd = [unescape_placeholders(cmd) for cmd in post]
        return parsed
