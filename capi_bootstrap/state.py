"""Cluster state persisted as an extension of the admin kubeconfig.

The kubeconfig a backend stores for a cluster carries one extension named
``capi-bootstrap`` holding the values of the create run and the three
providers that performed it. Providers are persisted as plain field data with
their ``name`` as discriminator and restored through the provider registries.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from capi_bootstrap.exceptions import StateDecodeError
from capi_bootstrap.models import Values
from capi_bootstrap.providers import BackendProvider, ControlPlaneProvider, InfrastructureProvider, Providers
from capi_bootstrap.providers.registry import Registries

logger = logging.getLogger(__name__)

EXTENSION_NAME = "capi-bootstrap"


class StateRecord(BaseModel):
    """Shape of the extension payload; providers stay raw until the registry resolves them."""
    model_config = ConfigDict(extra="ignore")

    values: Values
    backend: Dict[str, Any] = Field(default_factory=dict)
    control_plane: Dict[str, Any] = Field(default_factory=dict)
    infrastructure: Dict[str, Any] = Field(default_factory=dict)


def strip_extension(config: Dict[str, Any]) -> Dict[str, Any]:
    """A copy of a kubeconfig without the state extension."""
    stripped = copy.deepcopy(config)
    extensions = [e for e in stripped.get("extensions") or [] if e.get("name") != EXTENSION_NAME]
    if extensions:
        stripped["extensions"] = extensions
    else:
        stripped.pop("extensions", None)
    return stripped


@dataclass
class State:
    """Values plus the provider triple of one cluster."""
    values: Values
    infrastructure: InfrastructureProvider
    control_plane: ControlPlaneProvider
    backend: BackendProvider
    config: Optional[Dict[str, Any]] = None

    @property
    def providers(self) -> Providers:
        return Providers(
            infrastructure=self.infrastructure,
            control_plane=self.control_plane,
            backend=self.backend,
        )

    def record(self) -> Dict[str, Any]:
        return {
            "values": self.values.model_dump(mode="json"),
            "backend": self.backend.model_dump(mode="json"),
            "control_plane": self.control_plane.model_dump(mode="json"),
            "infrastructure": self.infrastructure.model_dump(mode="json"),
        }

    def to_config(self) -> Dict[str, Any]:
        """The kubeconfig with exactly one copy of the state extension."""
        base = self.config if self.config is not None else self.values.kubeconfig
        config = strip_extension(base or {})
        config.setdefault("extensions", []).append({"name": EXTENSION_NAME, "extension": self.record()})
        return config

    @classmethod
    def from_config(cls, config: Dict[str, Any], registries: Registries) -> "State":
        """Restore the state stored in a kubeconfig.

        Raises:
            StateDecodeError: If the extension is missing or any part fails to decode
        """
        if not isinstance(config, dict):
            raise StateDecodeError("state is not a kubeconfig mapping")
        raw = next((e.get("extension") for e in config.get("extensions") or []
                    if isinstance(e, dict) and e.get("name") == EXTENSION_NAME), None)
        if raw is None:
            raise StateDecodeError(f"kubeconfig has no {EXTENSION_NAME} extension")

        try:
            record = StateRecord.model_validate(raw)
        except ValidationError as e:
            raise StateDecodeError(f"failed to decode state values: {e}") from e

        values = record.values
        values.kubeconfig = strip_extension(config)
        state = cls(
            values=values,
            infrastructure=registries.infrastructure.load(record.infrastructure),
            control_plane=registries.control_plane.load(record.control_plane),
            backend=registries.backend.load(record.backend),
            config=config,
        )
        logger.debug(f"decoded state for cluster {values.cluster_name}: "
                     f"{state.infrastructure.name}/{state.control_plane.name}/{state.backend.name}")
        return state
