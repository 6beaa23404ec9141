import logging
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from capi_bootstrap.commands import CLIContext, get_backend, get_context, stage
from capi_bootstrap.exceptions import RemoteCallError
from capi_bootstrap.kube import build_node_info_list
from capi_bootstrap.models import NodeInfo
from capi_bootstrap.state import strip_extension

logger = logging.getLogger(__name__)

console = Console()


def clusters_table(nodes: List[NodeInfo]) -> Table:
    table = Table(title="Clusters")
    table.add_column("Cluster", style="cyan")
    table.add_column("Node")
    table.add_column("Status")
    table.add_column("Version")
    table.add_column("External IP")
    table.add_column("Age", justify="right")
    for node in nodes:
        status = f"[green]{node.status}[/green]" if node.status == "Ready" else f"[red]{node.status}[/red]"
        table.add_row(node.cluster, node.name, status, node.version, node.external_ip, node.age())
    return table


def list_clusters_cmd(
    ctx: typer.Context,
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="Backend holding the cluster state"),
):
    """List clusters and their nodes using the state stored in a backend."""
    obj: CLIContext = get_context(ctx)
    with stage("list clusters", obj.debug):
        clusters = get_backend(obj, "", backend).list_clusters()

    nodes: List[NodeInfo] = []
    for name, config in clusters.items():
        try:
            nodes.extend(build_node_info_list(name, strip_extension(config)))
        except RemoteCallError as e:
            logger.warning(f"⚠️  Could not list nodes of cluster {name}: {e}")
            nodes.append(NodeInfo(cluster=name, status="Unreachable"))

    if not nodes:
        console.print("No clusters found.")
        return
    console.print(clusters_table(nodes))
