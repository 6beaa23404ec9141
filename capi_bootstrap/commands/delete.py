import logging
from typing import Optional

import typer

from capi_bootstrap.commands import CLIContext, get_context, load_state, stage
from capi_bootstrap.exceptions import StateNotFoundError
from capi_bootstrap.models import Values

logger = logging.getLogger(__name__)

DEFAULT_INFRASTRUCTURE = "LinodeCluster"


def delete_cluster_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Cluster name"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="Backend holding the cluster state"),
    infrastructure: Optional[str] = typer.Option(
        None, "--infrastructure", "-i",
        help=f"Infrastructure provider to clean up when the cluster has no state (default: {DEFAULT_INFRASTRUCTURE})"),
    force: bool = typer.Option(False, "--force", "-f",
                               help="Delete all resources created for this cluster without confirming"),
):
    """Delete the cloud resources and the state of a cluster.

    Resources are found by the cluster tag, so a create that failed before
    its state was written can still be cleaned up.
    """
    obj: CLIContext = get_context(ctx)

    with stage("read state", obj.debug):
        try:
            state = load_state(obj, name, backend)
        except StateNotFoundError:
            state = None

    if state is None:
        with stage("resolve infrastructure", obj.debug):
            provider = obj.registries.infrastructure.require(infrastructure or DEFAULT_INFRASTRUCTURE)
        values = Values(cluster_name=name)
        logger.warning(f"⚠️ No state found for cluster {name}, looking up {provider.name} resources by tag")
    else:
        provider, values = state.infrastructure, state.values

    with stage(f"{provider.name} delete", obj.debug):
        provider.pre_cmd(values)
        if not provider.delete(values, force=force):
            raise typer.Exit()

    if state is not None:
        with stage("delete state", obj.debug):
            state.backend.delete(name)
    logger.info(f"✅ Cluster {name} deleted")
