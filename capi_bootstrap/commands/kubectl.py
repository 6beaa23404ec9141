import logging
import os
import subprocess
import tempfile
from typing import Optional

import typer

from capi_bootstrap.commands import CLIContext, get_context, load_state, stage
from capi_bootstrap.state import strip_extension
from capi_bootstrap.utils import write_yaml_file

logger = logging.getLogger(__name__)


def kubectl_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Cluster name"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="Backend holding the cluster state"),
):
    """Run kubectl against a cluster with the admin kubeconfig from its state.

    Arguments after the cluster name are passed to kubectl unchanged, e.g.
    ``capi-bootstrap kubectl demo get nodes -o wide``.
    """
    obj: CLIContext = get_context(ctx)
    with stage("read state", obj.debug):
        state = load_state(obj, name, backend)

    with tempfile.TemporaryDirectory(prefix="capi-bootstrap-") as tmp:
        kubeconfig = os.path.join(tmp, "kubeconfig.yaml")
        write_yaml_file(kubeconfig, strip_extension(state.config))
        command = ["kubectl", "--kubeconfig", kubeconfig] + list(ctx.args)
        logger.debug(f"running: {' '.join(command)}")
        try:
            result = subprocess.run(command)
        except FileNotFoundError:
            logger.error("❌ kubectl not found in PATH")
            raise typer.Exit(code=1)
    raise typer.Exit(code=result.returncode)
