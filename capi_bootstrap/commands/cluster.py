"""
Cluster Creation Command
========================

Creates a self-hosting management cluster from a Cluster-API manifest:

1. Resolve the infrastructure and control plane providers from the Cluster
2. Create the API front end and generate the trust material
3. Assemble the cloud-init payload and boot the bootstrap node
4. Persist the cluster state through the backend

Environment Variables:
- CLUSTER_NAME: Cluster name when the manifest does not set one
- LINODE_TOKEN: Linode API token
- AUTHORIZED_KEYS: SSH public key installed on the bootstrap node
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from capi_bootstrap.cloudinit.generator import generate_cloud_init
from capi_bootstrap.commands import CLIContext, get_context, stage
from capi_bootstrap.exceptions import AlreadyExistsError, ConfigurationError, ManifestError
from capi_bootstrap.manifests import get_cluster_def, render, split
from capi_bootstrap.models import Values
from capi_bootstrap.providers import Providers
from capi_bootstrap.state import State

logger = logging.getLogger(__name__)


def read_manifest(manifest: str) -> str:
    """Read the manifest template from a file, or stdin for ``-``."""
    if manifest == "-":
        return sys.stdin.read()
    path = Path(manifest).expanduser()
    try:
        return path.read_text()
    except OSError as e:
        raise ConfigurationError(f"cannot read manifest {path}: {e}") from e


def load_values(manifest: str, template: str, cluster_name: Optional[str], tar_write_files: bool) -> Values:
    """Pre-render the manifest and read the cluster identity from it.

    Raises:
        ManifestError: If there is no Cluster or it names no providers
        ConfigurationError: If no cluster name can be determined
    """
    values = Values(
        cluster_name=cluster_name or "",
        manifest_file=manifest,
        manifest_template=template,
        tar_write_files=tar_write_files,
    )
    values.manifests = split(render(template, values.template_context(), name=manifest, escape=True))

    found = get_cluster_def(values.manifests)
    if found is None:
        raise ManifestError(f"{manifest} has no Cluster resource")
    _, cluster = found

    if not values.cluster_name:
        values.cluster_name = cluster.metadata.name
    if not values.cluster_name:
        raise ConfigurationError("cluster name is required, set metadata.name, --name or CLUSTER_NAME")
    if cluster.metadata.namespace:
        values.namespace = cluster.metadata.namespace

    if cluster.spec.infrastructure_ref is None or not cluster.spec.infrastructure_ref.kind:
        raise ManifestError(f"Cluster {values.cluster_name} has no spec.infrastructureRef.kind")
    if cluster.spec.control_plane_ref is None or not cluster.spec.control_plane_ref.kind:
        raise ManifestError(f"Cluster {values.cluster_name} has no spec.controlPlaneRef.kind")
    values.cluster_kind = cluster.spec.infrastructure_ref.kind
    return values


def create_cluster_cmd(
    ctx: typer.Context,
    manifest: str = typer.Argument(..., help="Cluster manifest template, or - for stdin"),
    name: Optional[str] = typer.Option(None, "--name", "-n", envvar="CLUSTER_NAME", help="Cluster name"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="Backend provider for the cluster state"),
    tar_write_files: bool = typer.Option(False, "--tar-write-files",
                                         help="Bundle all files into one archive in the user-data"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the cloud-init payload without creating anything"),
):
    """Create a bootstrap node that pivots into the cluster described by MANIFEST."""
    obj: CLIContext = get_context(ctx)

    with stage("load manifest", obj.debug):
        values = load_values(manifest, read_manifest(manifest), name, tar_write_files)
        found = get_cluster_def(values.manifests)
        control_plane_kind = found[1].spec.control_plane_ref.kind
        logger.info(f"🚀 Bootstrapping cluster {values.cluster_name} ({values.cluster_kind}/{control_plane_kind})")

    with stage("resolve providers", obj.debug):
        providers = Providers(
            infrastructure=obj.registries.infrastructure.require(values.cluster_kind),
            control_plane=obj.registries.control_plane.require(control_plane_kind),
            backend=obj.registries.backend.require(obj.backend_name(backend)),
        )

    with stage("pre-flight checks", obj.debug):
        providers.backend.pre_cmd(values.cluster_name)
        if providers.backend.exists(values.cluster_name):
            raise AlreadyExistsError(f"state already exists for cluster {values.cluster_name}, delete it first")
        providers.infrastructure.pre_cmd(values)
        providers.control_plane.pre_cmd(values)

    if dry_run:
        # no front end exists yet, so the endpoint is a stand-in
        values.cluster_endpoint = values.cluster_endpoint or "127.0.0.1"
        with stage("control plane pre-deploy", obj.debug):
            providers.control_plane.pre_deploy(values)
        with stage("generate cloud-init", obj.debug):
            user_data = generate_cloud_init(values, providers, offload=False)
        typer.echo(user_data.decode("utf-8"))
        return

    with stage(f"{providers.infrastructure.name} pre-deploy", obj.debug):
        providers.infrastructure.pre_deploy(values)
    with stage(f"{providers.control_plane.name} pre-deploy", obj.debug):
        providers.control_plane.pre_deploy(values)

    with stage("generate cloud-init", obj.debug):
        user_data = generate_cloud_init(values, providers)

    with stage(f"{providers.infrastructure.name} deploy", obj.debug):
        providers.infrastructure.deploy(values, user_data)

    with stage("write state", obj.debug):
        state = State(
            values=values,
            infrastructure=providers.infrastructure,
            control_plane=providers.control_plane,
            backend=providers.backend,
        )
        providers.backend.write_config(values.cluster_name, state.to_config())

    with stage("post-deploy", obj.debug):
        providers.infrastructure.post_deploy(values)
        providers.control_plane.post_deploy(values)

    logger.info(f"✅ Cluster {values.cluster_name} is bootstrapping at https://{values.cluster_endpoint}:6443")
    logger.info(f"🔐 Fetch its kubeconfig with: capi-bootstrap get kubeconfig {values.cluster_name}")
