"""Provider registries: name -> provider class."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from capi_bootstrap.exceptions import ProviderNotFoundError, StateDecodeError
from capi_bootstrap.providers.base import Provider

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=Provider)


class _Discriminator(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str


class ProviderRegistry(Generic[P]):
    """Lookup of one provider axis by name."""

    def __init__(self, kind: str):
        self.kind = kind
        self._providers: Dict[str, Type[P]] = {}

    def register(self, provider_cls: Type[P]) -> Type[P]:
        self._providers[provider_cls.provider_name()] = provider_cls
        return provider_cls

    def names(self) -> List[str]:
        return sorted(self._providers)

    def lookup(self, name: str) -> Optional[Type[P]]:
        return self._providers.get(name)

    def new(self, name: str) -> Optional[P]:
        """A fresh provider for ``name``, or None when it is not registered."""
        provider_cls = self.lookup(name)
        if provider_cls is None:
            return None
        return provider_cls()

    def require(self, name: str) -> P:
        """Like new, but an unknown name is a ProviderNotFoundError."""
        provider = self.new(name)
        if provider is None:
            raise ProviderNotFoundError(self.kind, name, self.names())
        return provider

    def load(self, raw: Any) -> P:
        """Decode a persisted provider record.

        The record's ``name`` is decoded first to pick the concrete class,
        then the whole record is decoded as that class.

        Raises:
            StateDecodeError: If either pass fails or the name is unknown
        """
        try:
            envelope = _Discriminator.model_validate(raw)
        except ValidationError as e:
            raise StateDecodeError(f"{self.kind} provider record has no name: {e}") from e

        provider_cls = self.lookup(envelope.name)
        if provider_cls is None:
            raise StateDecodeError(
                f"{self.kind} provider {envelope.name!r} is not registered, options are: {', '.join(self.names())}"
            )
        try:
            return provider_cls.model_validate(raw)
        except ValidationError as e:
            raise StateDecodeError(f"failed to decode {self.kind} provider {envelope.name}: {e}") from e


@dataclass
class Registries:
    """The three provider axes, passed into the pipeline and the state store."""
    infrastructure: ProviderRegistry
    control_plane: ProviderRegistry
    backend: ProviderRegistry


def default_registries() -> Registries:
    """Registries holding every stock provider."""
    from capi_bootstrap.providers.backend.file import FileBackend
    from capi_bootstrap.providers.backend.github import GitHubBackend
    from capi_bootstrap.providers.backend.s3 import S3Backend
    from capi_bootstrap.providers.controlplane.k3s.provider import K3sProvider
    from capi_bootstrap.providers.controlplane.kubeadm.provider import KubeadmProvider
    from capi_bootstrap.providers.infrastructure.linode.provider import LinodeProvider

    registries = Registries(
        infrastructure=ProviderRegistry("infrastructure"),
        control_plane=ProviderRegistry("control plane"),
        backend=ProviderRegistry("backend"),
    )
    registries.infrastructure.register(LinodeProvider)
    registries.control_plane.register(K3sProvider)
    registries.control_plane.register(KubeadmProvider)
    registries.backend.register(FileBackend)
    registries.backend.register(S3Backend)
    registries.backend.register(GitHubBackend)
    return registries
