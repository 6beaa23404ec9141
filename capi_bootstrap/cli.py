import logging
import sys
from typing import Optional

import typer

from capi_bootstrap import __version__
from capi_bootstrap.commands import CLIContext, cluster, delete, get, kubectl, list as list_cmd, stage
from capi_bootstrap.config import BootstrapConfig
from capi_bootstrap.logging import setup_logging

app = typer.Typer(help="Bootstrap a self-hosting Cluster-API management cluster.")

# Add all commands
app.command("cluster")(cluster.create_cluster_cmd)
app.command("delete")(delete.delete_cluster_cmd)
app.command("list")(list_cmd.list_clusters_cmd)
app.command("kubectl", context_settings={"allow_extra_args": True, "ignore_unknown_options": True})(
    kubectl.kubectl_cmd
)
app.add_typer(get.app, name="get")


@app.command("version")
def version_cmd():
    """Print the version."""
    typer.echo(f"capi-bootstrap {__version__}")


# Global options callback
@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    config: Optional[str] = typer.Option(None, "--config",
                                         help="Config file (default $XDG_CONFIG_HOME/cluster-api/bootstrap.yaml)"),
    profile: Optional[str] = typer.Option(None, "--profile", help="Which profile to use from the config file"),
    backend: Optional[str] = typer.Option(None, "--backend", help="The backend provider to use"),
):
    """capi-bootstrap - Cluster-API bootstrap CLI."""
    setup_logging(debug)
    if debug:
        logging.debug("Debug mode enabled")

    with stage("load config", debug):
        defaults = BootstrapConfig.load(config).apply(profile, backend)
    ctx.obj = CLIContext(debug=debug, defaults=defaults)


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        logging.error(f"Error: {e}")
        sys.exit(1)
