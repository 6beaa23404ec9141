"""Minimal Linode API v4 client."""

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from capi_bootstrap.config import Config
from capi_bootstrap.exceptions import LinodeAPIError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.linode.com/v4"
PAGE_SIZE = 500


class LinodeClient:
    """Client for the subset of the Linode API the bootstrapper needs."""

    def __init__(self, token: str, api_url: str = DEFAULT_API_URL, timeout: Optional[int] = None,
                 session: Optional[requests.Session] = None):
        """Initialize the client.

        Args:
            token: Personal access token
            api_url: Base URL of the API
            timeout: Request timeout in seconds
            session: Session to reuse, mainly for tests
        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout or Config.API_TIMEOUT
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "User-Agent": f"{Config.APP_NAME}",
        })
        self.logger = logging.getLogger(f"{__name__}.LinodeClient")

    def _request(self, operation: str, method: str, path: str, body: Optional[Dict[str, Any]] = None,
                 params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> Any:
        url = f"{self.api_url}/{path.lstrip('/')}"
        self.logger.debug(f"{method} {url}")
        try:
            response = self.session.request(method, url, json=body, params=params, headers=headers,
                                            timeout=self.timeout)
        except requests.RequestException as e:
            raise LinodeAPIError(operation, str(e)) from e

        if not response.ok:
            try:
                errors = response.json().get("errors", [])
                message = "; ".join(e.get("reason", "") for e in errors) or response.text
            except ValueError:
                message = response.text
            raise LinodeAPIError(operation, f"[{response.status_code}] {message}", response.status_code)

        if not response.content:
            return {}
        return response.json()

    def _list(self, operation: str, path: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        headers = {"X-Filter": json.dumps(filters)} if filters else None
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            data = self._request(operation, "GET", path, params={"page": page, "page_size": PAGE_SIZE},
                                 headers=headers)
            items.extend(data.get("data", []))
            if page >= data.get("pages", 1):
                return items
            page += 1

    # NodeBalancers

    def list_node_balancers(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return self._list("list node balancers", "nodebalancers", filters)

    def create_node_balancer(self, options: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("create node balancer", "POST", "nodebalancers", options)

    def create_node_balancer_config(self, node_balancer_id: int, options: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("create node balancer config", "POST",
                             f"nodebalancers/{node_balancer_id}/configs", options)

    def create_node_balancer_node(self, node_balancer_id: int, config_id: int,
                                  options: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("create node balancer node", "POST",
                             f"nodebalancers/{node_balancer_id}/configs/{config_id}/nodes", options)

    def delete_node_balancer(self, node_balancer_id: int) -> None:
        self._request("delete node balancer", "DELETE", f"nodebalancers/{node_balancer_id}")

    # Instances

    def list_instances(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return self._list("list instances", "linode/instances", filters)

    def create_instance(self, options: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("create instance", "POST", "linode/instances", options)

    def delete_instance(self, instance_id: int) -> None:
        self._request("delete instance", "DELETE", f"linode/instances/{instance_id}")

    # VPCs

    def list_vpcs(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return self._list("list vpcs", "vpcs", filters)

    def create_vpc(self, options: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("create vpc", "POST", "vpcs", options)

    def delete_vpc(self, vpc_id: int) -> None:
        self._request("delete vpc", "DELETE", f"vpcs/{vpc_id}")
