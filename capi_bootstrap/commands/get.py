import logging
from typing import Optional

import typer

from capi_bootstrap.commands import CLIContext, get_context, load_state, stage
from capi_bootstrap.state import strip_extension
from capi_bootstrap.utils import to_yaml

logger = logging.getLogger(__name__)

app = typer.Typer(help="Read the persisted data of a cluster")


@app.command("kubeconfig")
def get_kubeconfig_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Cluster name"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="Backend holding the cluster state"),
):
    """Print the admin kubeconfig of a cluster."""
    obj: CLIContext = get_context(ctx)
    with stage("get kubeconfig", obj.debug):
        state = load_state(obj, name, backend)
        typer.echo(to_yaml(strip_extension(state.config)), nl=False)


@app.command("state")
def get_state_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Cluster name"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="Backend holding the cluster state"),
):
    """Print the persisted state record of a cluster."""
    obj: CLIContext = get_context(ctx)
    with stage("get state", obj.debug):
        state = load_state(obj, name, backend)
        typer.echo(to_yaml(state.record()), nl=False)
