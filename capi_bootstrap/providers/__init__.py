"""Infrastructure, control plane and backend providers."""

from dataclasses import dataclass

from capi_bootstrap.providers.backend.base import BackendProvider
from capi_bootstrap.providers.controlplane.base import ControlPlaneProvider
from capi_bootstrap.providers.infrastructure.base import InfrastructureProvider
from capi_bootstrap.providers.registry import ProviderRegistry, Registries, default_registries


@dataclass
class Providers:
    """The provider triple chosen for one cluster."""
    infrastructure: InfrastructureProvider
    control_plane: ControlPlaneProvider
    backend: BackendProvider


__all__ = [
    "BackendProvider",
    "ControlPlaneProvider",
    "InfrastructureProvider",
    "ProviderRegistry",
    "Providers",
    "Registries",
    "default_registries",
]
