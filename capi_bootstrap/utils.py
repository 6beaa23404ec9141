"""Utility functions shared by the providers and backends."""

import logging
import os
import uuid
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)


def generate_token() -> str:
    """Generate a random bootstrap token.

    Returns:
        str: A random UUID string
    """
    return str(uuid.uuid4())


def to_yaml(data: Any) -> str:
    """Dump data as block-style YAML, keeping key order."""
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


def write_yaml_file(path: str, data: Dict[str, Any], mode: int = 0o600) -> None:
    """Write a YAML file with the given data.

    Args:
        path: Path to the YAML file
        data: Data to write as YAML
        mode: File permissions (default: 0o600)

    Raises:
        OSError: If the file cannot be written
    """
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(to_yaml(data))
        os.chmod(path, mode)
    except OSError as e:
        logger.error(f"Failed to write YAML file {path}: {e}")
        raise


def read_yaml_file(path: str) -> Any:
    """Read a YAML file and return its contents.

    Raises:
        FileNotFoundError: If the file does not exist
        yaml.YAMLError: If the file is not valid YAML
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML file {path}: {e}")
        raise
