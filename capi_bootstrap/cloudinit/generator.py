"""Assemble the cloud-init user-data for the bootstrap node."""

import io
import logging
import posixpath
import tarfile
import time
from contextlib import contextmanager
from typing import Iterator, List

import yaml

from capi_bootstrap import helm
from capi_bootstrap.cloudinit.files import construct_file, template_path
from capi_bootstrap.cloudinit.models import CLOUD_CONFIG_HEADER, CloudConfig, InitFile, ParsedManifest
from capi_bootstrap.exceptions import AssemblyError, BootstrapError
from capi_bootstrap.manifests import join, normalize, render, split
from capi_bootstrap.models import Values
from capi_bootstrap.providers import Providers
from capi_bootstrap.providers.controlplane.base import INIT_SCRIPT_PATH

logger = logging.getLogger(__name__)

TAR_PATH = "/tmp/cloud-init-files.tgz"
TAR_EXTRACT_COMMANDS = [
    f"tar -C / -xvf {TAR_PATH}",
    f"tar -xf {TAR_PATH} --to-command='xargs -0 cloud-init query -f > /$TAR_FILENAME'",
]
DEBUG_COMMANDS = [
    "curl -s -L https://github.com/derailed/k9s/releases/download/v0.32.4/k9s_Linux_amd64.tar.gz"
    " | tar -xvz -C /usr/local/bin k9s",
    'echo "alias k=\\"kubectl\\"" >> /root/.bashrc',
]


@contextmanager
def artifact(name: str) -> Iterator[None]:
    """Wrap any failure while generating ``name`` into an AssemblyError."""
    try:
        yield
    except AssemblyError:
        raise
    except (BootstrapError, OSError, yaml.YAMLError, tarfile.TarError) as e:
        raise AssemblyError(name, e) from e


def generate_cert_manager_manifest(values: Values) -> InitFile:
    return construct_file(
        posixpath.join(values.bootstrap_manifest_dir, "cert-manager.yaml"),
        template_path(__file__, "cert-manager.yaml"),
        values.template_context(),
    )


def generate_capi_operator(values: Values) -> InitFile:
    return construct_file(
        posixpath.join(values.bootstrap_manifest_dir, "capi-operator.yaml"),
        template_path(__file__, "capi-operator.yaml"),
        values.template_context(),
    )


def generate_capi_manifests(values: Values, providers: Providers) -> ParsedManifest:
    """Render and rewrite the cluster manifests for the bootstrap node.

    The template is rendered with cloud-init placeholders escaped, the
    Cluster is normalized, then the control plane and the infrastructure
    providers rewrite their resources in that order.
    """
    rendered = render(values.manifest_template, values.template_context(),
                      name=values.manifest_file or "<manifest>", escape=True)
    documents = split(rendered)
    normalize(documents)
    values.manifests = documents

    parsed = providers.control_plane.update_manifests(values)
    parsed.merge(providers.infrastructure.update_manifests(values))
    parsed.additional_files.extend(helm.add_helm_charts(values))

    parsed.manifest_file = InitFile(
        path=posixpath.join(values.bootstrap_manifest_dir, "capi-manifests.yaml"),
        content=join(values.manifests),
    )
    return parsed


def create_tar(files: List[InitFile]) -> InitFile:
    """Bundle files into one gzipped tarball written at TAR_PATH.

    Members are named by their path without the leading slash so that
    ``tar -C /`` restores them in place.
    """
    buf = io.BytesIO()
    now = time.time()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for f in files:
            data = f.content if isinstance(f.content, bytes) else f.content.encode("utf-8")
            info = tarfile.TarInfo(name=f.path.lstrip("/"))
            info.size = len(data)
            info.mode = 0o644
            info.mtime = now
            tar.addfile(info, io.BytesIO(data))
    return InitFile(path=TAR_PATH, content=buf.getvalue())


def generate_cloud_init(values: Values, providers: Providers, offload: bool = True) -> bytes:
    """Build the complete user-data for the bootstrap node.

    Args:
        values: Values populated by the providers' pre_deploy
        providers: The infrastructure, control plane and backend providers
        offload: Move files over the user-data limit to the backend

    Returns:
        bytes: The cloud-config document

    Raises:
        AssemblyError: If any artifact fails to generate
    """
    infrastructure, control_plane, backend = providers.infrastructure, providers.control_plane, providers.backend

    with artifact("cert-manager manifest"):
        cert_manager = generate_cert_manager_manifest(values)
    with artifact("capi-operator manifest"):
        capi_operator = generate_capi_operator(values)
    with artifact("capi manifests"):
        capi_manifests = generate_capi_manifests(values, providers)

    with artifact(f"{infrastructure.name} files"):
        infra_capi = infrastructure.generate_capi_file(values)
        pivot_machine = infrastructure.generate_capi_machine(values)
        infra_files = infrastructure.generate_additional_files(values)

    with artifact(f"{control_plane.name} files"):
        control_plane_capi = control_plane.generate_capi_file(values)
        control_plane_files = control_plane.generate_additional_files(values)
        init_script = control_plane.generate_init_script(values)
        run_commands = control_plane.generate_run_command(values)

    with artifact("control plane certificates"):
        cert_files = control_plane.get_control_plane_cert_files(values)
        cert_secret = control_plane.get_control_plane_cert_secret(values)
        kubeconfig_secret = control_plane.get_kubeconfig(values)

    run_cmd = (
        DEBUG_COMMANDS
        + run_commands
        + capi_manifests.pre_run_cmd
        + [f"bash {INIT_SCRIPT_PATH}"]
        + capi_manifests.post_run_cmd
    )

    write_files = [
        cert_manager,
        capi_operator,
        control_plane_capi,
        infra_capi,
        pivot_machine,
        capi_manifests.manifest_file,
        cert_secret,
        kubeconfig_secret,
        init_script,
    ]
    write_files += infra_files
    write_files += control_plane_files
    write_files += cert_files
    write_files += capi_manifests.additional_files

    if values.tar_write_files:
        with artifact("cloud-init file archive"):
            write_files = [create_tar(write_files)]
        run_cmd = TAR_EXTRACT_COMMANDS + run_cmd

    download_commands: List[str] = []
    if offload:
        with artifact("offloaded files"):
            download_commands = backend.write_files(values.cluster_name, write_files, run_cmd=run_cmd)
    cloud_config = CloudConfig(write_files=write_files, runcmd=download_commands + run_cmd)

    with artifact("cloud-config"):
        user_data = cloud_config.render()
    logger.info(f"✅ Generated cloud-init payload with {len(write_files)} files and {len(cloud_config.runcmd)} commands")
    return user_data
