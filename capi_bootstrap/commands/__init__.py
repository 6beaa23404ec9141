"""Helpers shared by the CLI commands."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

import typer

from capi_bootstrap.config import Defaults
from capi_bootstrap.exceptions import BootstrapError
from capi_bootstrap.providers import BackendProvider
from capi_bootstrap.providers.registry import Registries, default_registries
from capi_bootstrap.state import State

logger = logging.getLogger(__name__)

DEFAULT_BACKEND = "file"


@dataclass
class CLIContext:
    """Options of the top-level callback, carried in ``ctx.obj``."""
    debug: bool = False
    defaults: Defaults = field(default_factory=Defaults)
    registries: Registries = field(default_factory=default_registries)

    def backend_name(self, override: Optional[str] = None) -> str:
        return override or self.defaults.backend or DEFAULT_BACKEND


def get_context(ctx: typer.Context) -> CLIContext:
    if not isinstance(ctx.obj, CLIContext):
        ctx.obj = CLIContext()
    return ctx.obj


@contextmanager
def stage(name: str, debug: bool = False) -> Iterator[None]:
    """Log a failure of ``name`` once and exit with status 1."""
    try:
        yield
    except BootstrapError as e:
        if debug:
            logger.exception(f"❌ {name} failed: {e}")
        else:
            logger.error(f"❌ {name} failed: {e}")
        raise typer.Exit(code=1)


def get_backend(obj: CLIContext, cluster_name: str, override: Optional[str] = None) -> BackendProvider:
    """Resolve and initialize the backend provider."""
    backend = obj.registries.backend.require(obj.backend_name(override))
    backend.pre_cmd(cluster_name)
    return backend


def load_state(obj: CLIContext, cluster_name: str, override: Optional[str] = None) -> State:
    """Read and decode the persisted state of a cluster."""
    backend = get_backend(obj, cluster_name, override)
    config = backend.read(cluster_name)
    state = State.from_config(config, obj.registries)
    # the live backend carries credentials, the decoded one does not
    state.backend = backend
    return state
