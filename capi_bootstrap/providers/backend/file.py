"""Local filesystem backend."""

import logging
import shutil
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from capi_bootstrap.cloudinit.models import InitFile
from capi_bootstrap.config import Config
from capi_bootstrap.exceptions import BackendError, PayloadTooLargeError, StateNotFoundError
from capi_bootstrap.providers.backend.base import STATE_FILE, BackendProvider
from capi_bootstrap.utils import read_yaml_file, write_yaml_file

logger = logging.getLogger(__name__)


class FileBackend(BackendProvider):
    """Keeps state under ``$XDG_CONFIG_HOME/cluster-api/bootstrap/<cluster>/``."""
    name: str = "file"
    base_path: Optional[str] = None

    @property
    def root(self) -> Path:
        return Path(self.base_path) if self.base_path else Config.state_dir()

    def _state_file(self, cluster_name: str) -> Path:
        return self.root / cluster_name / STATE_FILE

    def pre_cmd(self, cluster_name: str) -> None:
        logger.debug(f"[file backend] validating state dir: {self.root}")
        try:
            (self.root / cluster_name).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackendError("prepare state dir", str(e)) from e

    def read(self, cluster_name: str) -> Dict[str, Any]:
        path = self._state_file(cluster_name)
        logger.debug(f"[file backend] reading state file: {path}")
        if not path.exists():
            raise StateNotFoundError(cluster_name)
        try:
            return read_yaml_file(path) or {}
        except (OSError, yaml.YAMLError) as e:
            raise BackendError("read state", f"{path}: {e}") from e

    def write_config(self, cluster_name: str, config: Dict[str, Any]) -> None:
        path = self._state_file(cluster_name)
        logger.debug(f"[file backend] writing state file: {path}")
        try:
            write_yaml_file(path, config)
        except OSError as e:
            raise BackendError("write state", f"{path}: {e}") from e

    def delete(self, cluster_name: str) -> None:
        path = self.root / cluster_name
        logger.debug(f"[file backend] deleting state files in: {path}")
        shutil.rmtree(path, ignore_errors=True)

    def list_clusters(self) -> Dict[str, Dict[str, Any]]:
        clusters: Dict[str, Dict[str, Any]] = {}
        if not self.root.is_dir():
            return clusters
        for entry in sorted(self.root.iterdir()):
            if entry.is_dir() and (entry / STATE_FILE).exists():
                clusters[entry.name] = self.read(entry.name)
        return clusters

    def upload_file(self, cluster_name: str, init_file: InitFile) -> str:
        raise PayloadTooLargeError(
            f"cloud-init payload is over the user-data limit and the file backend cannot host {init_file.path}, "
            f"use the s3 or github backend"
        )
