"""Configuration management for capi-bootstrap.

Settings come from the environment (a ``.env`` file is loaded first) and from
an optional bootstrap config file with the following precedence:

1. Explicit command line arguments
2. The selected profile
3. The file's defaults
"""
import os
import logging
from pathlib import Path
from typing import Dict, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from capi_bootstrap.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Load environment variables from .env file if it exists
load_dotenv()


def xdg_config_home() -> Path:
    """Return $XDG_CONFIG_HOME, falling back to ~/.config."""
    return Path(os.getenv("XDG_CONFIG_HOME") or Path("~/.config").expanduser())


class Config:
    """Application configuration with sensible defaults."""

    APP_NAME: str = "capi-bootstrap"

    # Timeouts (in seconds)
    API_TIMEOUT: int = int(os.getenv("API_TIMEOUT", "30"))

    # Linode metadata user_data accepts at most 64KiB
    USERDATA_LIMIT: int = int(os.getenv("USERDATA_LIMIT", "65535"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    @classmethod
    def config_file(cls) -> Path:
        """Default location of the bootstrap config file."""
        return xdg_config_home() / "cluster-api" / "bootstrap.yaml"

    @classmethod
    def state_dir(cls) -> Path:
        """Directory the file backend keeps cluster state in."""
        return xdg_config_home() / "cluster-api" / "bootstrap"


class Defaults(BaseModel):
    """Provider names to use when none is given on the command line."""
    backend: str = Field(default="", description="Backend provider name")
    capi: str = Field(default="", description="CAPI env set name")
    control_plane: str = Field(default="", description="Control plane env set name")
    infrastructure: str = Field(default="", description="Infrastructure env set name")


class BootstrapConfig(BaseModel):
    """Contents of ``$XDG_CONFIG_HOME/cluster-api/bootstrap.yaml``."""
    defaults: Defaults = Field(default_factory=Defaults)
    profiles: Dict[str, Defaults] = Field(default_factory=dict)
    backend: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    capi: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    control_plane: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    infrastructure: Dict[str, Dict[str, str]] = Field(default_factory=dict)

    model_config = {"extra": "ignore"}

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "BootstrapConfig":
        """Load the config file, returning empty defaults when it does not exist."""
        config_path = Path(os.path.expandvars(str(path))) if path else Config.config_file()
        config_path = config_path.expanduser()
        if not config_path.exists():
            logger.debug(f"config file not found: {config_path}")
            return cls()

        logger.debug(f"loading config file: {config_path}")
        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            return cls.model_validate(data)
        except (yaml.YAMLError, ValidationError) as e:
            raise ConfigurationError(f"invalid config file {config_path}: {e}") from e

    def select(self, profile: Optional[str] = None) -> Defaults:
        """Return the defaults for a profile, or the file defaults."""
        if profile:
            if profile in self.profiles:
                logger.debug(f"configuration profile found: {profile}")
                return self.profiles[profile]
            logger.warning(f"⚠️  configuration profile {profile!r} not found, using defaults")
        return self.defaults

    def apply(self, profile: Optional[str] = None, backend: Optional[str] = None) -> Defaults:
        """Export the env sets chosen by the arguments, profile or defaults.

        Args:
            profile: Profile name to select defaults from
            backend: Backend name passed on the command line

        Returns:
            The selected defaults, with ``backend`` resolved
        """
        defaults = self.select(profile)
        chosen = Defaults(
            backend=backend or defaults.backend,
            capi=defaults.capi,
            control_plane=defaults.control_plane,
            infrastructure=defaults.infrastructure,
        )
        # alpha order: backend, capi, control plane, infrastructure
        for name, envs in (
            (chosen.backend, self.backend),
            (chosen.capi, self.capi),
            (chosen.control_plane, self.control_plane),
            (chosen.infrastructure, self.infrastructure),
        ):
            expand_env(envs.get(name, {}))
        return chosen


def expand_env(env: Dict[str, str]) -> None:
    """Set every key of an env set in os.environ."""
    for key, value in env.items():
        logger.debug(f"expanding env: {key}")
        os.environ[key] = str(value)
