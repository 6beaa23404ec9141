"""Backend provider capability: cluster state and offloaded payload files."""

import logging
from abc import abstractmethod
from typing import Any, Dict, List, Optional

from capi_bootstrap.cloudinit.models import CloudConfig, InitFile
from capi_bootstrap.config import Config
from capi_bootstrap.exceptions import PayloadTooLargeError, StateNotFoundError
from capi_bootstrap.providers.base import Provider

logger = logging.getLogger(__name__)

STATE_FILE = "kubeconfig.yaml"


def download_command(url: str, init_file: InitFile, curl_args: str = "-s") -> str:
    """Shell command fetching an offloaded file back onto the node.

    Text files are piped through ``cloud-init query`` so instance-data
    placeholders get rendered; binary files are written untouched.
    """
    if init_file.is_binary:
        return f"curl {curl_args} -o {init_file.path} '{url}'"
    return f"curl {curl_args} '{url}' | xargs -0 cloud-init query -f > {init_file.path}"


class BackendProvider(Provider):
    """Stores the cluster state record and hosts files too large for user-data."""

    @abstractmethod
    def pre_cmd(self, cluster_name: str) -> None:
        """Authenticate and prepare storage for ``cluster_name``."""

    @abstractmethod
    def read(self, cluster_name: str) -> Dict[str, Any]:
        """Read the state kubeconfig of a cluster.

        Raises:
            StateNotFoundError: If the cluster has no state
        """

    @abstractmethod
    def write_config(self, cluster_name: str, config: Dict[str, Any]) -> None:
        """Persist the state kubeconfig of a cluster."""

    @abstractmethod
    def delete(self, cluster_name: str) -> None:
        """Remove the state and every offloaded file of a cluster."""

    @abstractmethod
    def list_clusters(self) -> Dict[str, Dict[str, Any]]:
        """Every persisted cluster mapped to its state kubeconfig."""

    @abstractmethod
    def upload_file(self, cluster_name: str, init_file: InitFile) -> str:
        """Store one file remotely and return the command fetching it back."""

    def exists(self, cluster_name: str) -> bool:
        try:
            self.read(cluster_name)
        except StateNotFoundError:
            return False
        return True

    def write_files(self, cluster_name: str, files: List[InitFile], run_cmd: Optional[List[str]] = None,
                    limit: Optional[int] = None) -> List[str]:
        """Offload files until the serialized user-data is below the ceiling.

        The size is measured on the rendered cloud-config, header, runcmd
        and the retrieval commands included. The largest files move first.
        An offloaded file keeps its place in ``files`` with empty content;
        the returned retrieval commands follow the original file order.

        Args:
            cluster_name: Cluster the files belong to
            files: Files of the payload, modified in place
            run_cmd: Commands that run after the retrieval commands
            limit: Ceiling in bytes, ``Config.USERDATA_LIMIT`` by default

        Returns:
            Commands to prepend to runcmd

        Raises:
            PayloadTooLargeError: If the payload stays over the ceiling with every file offloaded
        """
        limit = Config.USERDATA_LIMIT if limit is None else limit
        run_cmd = run_cmd or []
        commands: Dict[int, str] = {}

        def payload_size() -> int:
            downloads = [commands[i] for i in sorted(commands)]
            return len(CloudConfig(write_files=files, runcmd=downloads + run_cmd).render())

        total = payload_size()
        if total < limit:
            return []

        logger.info(f"📦 Payload is {total} bytes, over the {limit} byte limit; offloading files to {self.name}")
        for index in sorted(range(len(files)), key=lambda i: files[i].size, reverse=True):
            if total < limit:
                break
            init_file = files[index]
            if not init_file.size:
                continue
            size = init_file.size
            commands[index] = self.upload_file(cluster_name, init_file)
            init_file.content = ""
            total = payload_size()
            logger.debug(f"offloaded {init_file.path} ({size} bytes), payload now {total} bytes")

        if total >= limit:
            raise PayloadTooLargeError(
                f"cloud-init payload is {total} bytes with every file offloaded, over the {limit} byte limit"
            )
        return [commands[i] for i in sorted(commands)]
