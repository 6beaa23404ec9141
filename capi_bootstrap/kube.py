"""Node status of bootstrapped clusters."""

import logging
from typing import Any, Dict, List

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from capi_bootstrap.config import Config
from capi_bootstrap.exceptions import RemoteCallError
from capi_bootstrap.models import NodeInfo

logger = logging.getLogger(__name__)


def node_status(node: Any) -> str:
    for condition in (node.status.conditions or []):
        if condition.type == "Ready":
            return "Ready" if condition.status == "True" else "NotReady"
    return "NotReady"


def node_external_ip(node: Any) -> str:
    for address in (node.status.addresses or []):
        if address.type == "ExternalIP":
            return address.address
    return ""


def build_node_info_list(cluster_name: str, kubeconfig: Dict[str, Any]) -> List[NodeInfo]:
    """List the nodes of a cluster through its admin kubeconfig.

    Raises:
        RemoteCallError: If the API server cannot be reached
    """
    try:
        api_client = config.new_client_from_config_dict(kubeconfig)
    except ConfigException as e:
        raise RemoteCallError("load kubeconfig", f"{cluster_name}: {e}") from e

    try:
        with api_client:
            nodes = client.CoreV1Api(api_client).list_node(_request_timeout=Config.API_TIMEOUT)
    except ApiException as e:
        raise RemoteCallError("list nodes", f"{cluster_name}: {e.reason}", e.status) from e
    except HTTPError as e:
        raise RemoteCallError("list nodes", f"{cluster_name}: {e}") from e

    return [
        NodeInfo(
            cluster=cluster_name,
            name=node.metadata.name,
            status=node_status(node),
            version=node.status.node_info.kubelet_version if node.status.node_info else "",
            external_ip=node_external_ip(node),
            created=node.metadata.creation_timestamp,
        )
        for node in nodes.items
    ]
