"""Linode infrastructure (cluster-api-provider-linode)."""

import base64
import ipaddress
import logging
import os
import posixpath
import uuid
from typing import Any, Dict, List, Optional

import typer
from pydantic import Field, PrivateAttr

from capi_bootstrap.cloudinit.files import construct_file, template_path
from capi_bootstrap.cloudinit.models import InitFile, ParsedManifest
from capi_bootstrap.exceptions import (
    AlreadyExistsError,
    ConfigurationError,
    LinodeAPIError,
    MissingCredentialsError,
)
from capi_bootstrap.manifests import find_by_kind, replace_at, require_kind
from capi_bootstrap.manifests.resources import (
    APIEndpoint,
    LinodeCluster,
    LinodeMachineTemplate,
    LinodeNetworkSpec,
    LinodeVPC,
)
from capi_bootstrap.models import Values
from capi_bootstrap.providers.infrastructure.base import Confirm, InfrastructureProvider
from capi_bootstrap.providers.infrastructure.linode.client import LinodeClient

logger = logging.getLogger(__name__)

API_SERVER_PORT = 6443


class LinodeProvider(InfrastructureProvider):
    name: str = "LinodeCluster"
    machine: Optional[LinodeMachineTemplate] = None
    node_balancer: Dict[str, Any] = Field(default_factory=dict)
    node_balancer_config: Dict[str, Any] = Field(default_factory=dict)
    vpc: Optional[LinodeVPC] = None
    authorized_keys: str = ""

    _token: str = PrivateAttr(default="")
    _client: Optional[LinodeClient] = PrivateAttr(default=None)

    @property
    def client(self) -> LinodeClient:
        if self._client is None:
            raise ConfigurationError("linode client is not initialized, run pre_cmd first")
        return self._client

    def pre_cmd(self, values: Values) -> None:
        token = os.getenv("LINODE_TOKEN", "")
        if not token:
            raise MissingCredentialsError("LINODE_TOKEN")
        self._token = token
        self._client = LinodeClient(token, api_url=os.getenv("LINODE_URL") or "https://api.linode.com/v4")

    def pre_deploy(self, values: Values) -> None:
        _, self.machine = require_kind(values.manifests, LinodeMachineTemplate.KIND, LinodeMachineTemplate)
        machine_spec = self.machine.spec.template.spec

        existing = self.client.list_node_balancers({"tags": values.cluster_name})
        if existing:
            raise AlreadyExistsError(f"node balancer already exists for cluster {values.cluster_name}")

        self.node_balancer = self.client.create_node_balancer({
            "label": values.cluster_name,
            "region": machine_spec.region,
            "tags": [values.cluster_name],
        })
        logger.info(f"✅ Created NodeBalancer: {self.node_balancer.get('label')}")

        self.node_balancer_config = self.client.create_node_balancer_config(self.node_balancer["id"], {
            "port": API_SERVER_PORT,
            "protocol": "tcp",
            "algorithm": "roundrobin",
            "check": "connection",
        })

        ipv4 = self.node_balancer.get("ipv4")
        if not ipv4:
            raise LinodeAPIError("create node balancer", "no IPv4 address on NodeBalancer")

        self.authorized_keys = os.getenv("AUTHORIZED_KEYS", "")
        if self.authorized_keys:
            values.ssh_authorized_keys = [self.authorized_keys]
        values.cluster_endpoint = ipv4

        found = find_by_kind(values.manifests, LinodeVPC.KIND, LinodeVPC)
        if found is not None:
            self.vpc = found[1]

    def deploy(self, values: Values, user_data: bytes) -> None:
        machine_spec = self.machine.spec.template.spec
        options: Dict[str, Any] = {
            "label": f"{values.cluster_name}-bootstrap",
            "image": machine_spec.image,
            "region": machine_spec.region,
            "type": machine_spec.type,
            "root_pass": str(uuid.uuid4()),
            "tags": [values.cluster_name],
            "private_ip": True,
            "metadata": {"user_data": base64.b64encode(user_data).decode("ascii")},
        }

        if self.vpc is not None:
            vpc = self.client.create_vpc({
                "label": self.vpc.metadata.name,
                "description": self.vpc.spec.description,
                "region": self.vpc.spec.region or machine_spec.region,
                "subnets": [{"label": s.label, "ipv4": s.ipv4} for s in self.vpc.spec.subnets],
            })
            logger.info(f"✅ Created VPC: {vpc.get('label')}")
            subnets = vpc.get("subnets") or []
            if not subnets:
                raise LinodeAPIError("create vpc", f"vpc {vpc.get('label')} has no subnets")
            options["interfaces"] = [
                {"purpose": "vpc", "primary": True, "subnet_id": subnets[0]["id"], "ipv4": {"nat_1_1": "any"}},
                {"purpose": "public"},
            ]

        if self.authorized_keys:
            options["authorized_keys"] = [self.authorized_keys]

        instance = self.client.create_instance(options)
        logger.info(f"✅ Created Linode Instance: {instance.get('label')}")

        addresses = instance.get("ipv4", [])
        private_ip = next((ip for ip in addresses if ipaddress.ip_address(ip).is_private), "")
        if not private_ip:
            raise LinodeAPIError("create instance", f"instance {instance.get('label')} has no private IPv4 address")

        node = self.client.create_node_balancer_node(
            self.node_balancer["id"], self.node_balancer_config["id"], {
                "address": f"{private_ip}:{API_SERVER_PORT}",
                "label": f"{values.cluster_name}-bootstrap",
                "weight": 100,
            })
        logger.info(f"✅ Created NodeBalancer Node: {node.get('label')}")
        if addresses:
            logger.info(f"Bootstrap Node IP: {addresses[0]}")

    def update_manifests(self, values: Values) -> ParsedManifest:
        index, cluster = require_kind(values.manifests, LinodeCluster.KIND, LinodeCluster)
        spec = cluster.spec
        spec.control_plane_endpoint = APIEndpoint(
            host=values.cluster_endpoint,
            port=self.node_balancer_config.get("port", API_SERVER_PORT),
        )
        spec.network = LinodeNetworkSpec(
            load_balancer_type="NodeBalancer",
            apiserver_load_balancer_port=API_SERVER_PORT,
            node_balancer_id=self.node_balancer.get("id"),
            apiserver_node_balancer_config_id=self.node_balancer_config.get("id"),
        )
        cluster.spec = spec
        replace_at(values.manifests, index, cluster)
        return ParsedManifest()

    def delete(self, values: Values, force: bool = False, confirm: Optional[Confirm] = None) -> bool:
        tag_filter = {"tags": values.cluster_name}
        instances = self.client.list_instances(tag_filter)
        vpc_label = self.vpc.metadata.name if self.vpc is not None else values.cluster_name
        vpcs = self.client.list_vpcs({"label": vpc_label})
        node_balancers = self.client.list_node_balancers(tag_filter)
        if len(node_balancers) > 1:
            raise ConfigurationError(
                f"more than one NodeBalancer tagged {values.cluster_name} found, refusing to delete"
            )

        for instance in instances:
            logger.info(f"Will delete instance: {instance.get('label')} (ID: {instance.get('id')})")
        for vpc in vpcs:
            logger.info(f"Will delete VPC: {vpc.get('label')} (ID: {vpc.get('id')})")
        for node_balancer in node_balancers:
            logger.info(f"Will delete NodeBalancer: {node_balancer.get('label')} (ID: {node_balancer.get('id')})")
        if not (instances or vpcs or node_balancers):
            logger.info(f"No Linode resources found for cluster {values.cluster_name}")
            return True

        if not force:
            confirm = confirm or (lambda message: typer.confirm(message, default=False))
            if not confirm("Would you like to delete these resources?"):
                logger.info("❌ Deletion cancelled.")
                return False

        for instance in instances:
            self.client.delete_instance(instance["id"])
            logger.info(f"🗑️ Deleted Instance {instance.get('label')}")
        for node_balancer in node_balancers:
            self.client.delete_node_balancer(node_balancer["id"])
            logger.info(f"🗑️ Deleted NodeBalancer {node_balancer.get('label')}")
        for vpc in vpcs:
            self.client.delete_vpc(vpc["id"])
            logger.info(f"🗑️ Deleted VPC {vpc.get('label')}")
        return True

    def template_context(self) -> Dict[str, Any]:
        machine_spec = self.machine.spec.template.spec if self.machine else None
        return {
            "Linode": {
                "Token": self._token,
                "Region": machine_spec.region if machine_spec else "",
                "Type": machine_spec.type if machine_spec else "",
                "Image": machine_spec.image if machine_spec else "",
                "AuthorizedKeys": self.authorized_keys,
                "NodeBalancerID": self.node_balancer.get("id", ""),
                "NodeBalancerConfigID": self.node_balancer_config.get("id", ""),
                "APIServerPort": API_SERVER_PORT,
                "VPC": self.vpc is not None,
                "VPCName": self.vpc.metadata.name if self.vpc is not None else "",
            }
        }

    def _context(self, values: Values) -> Dict[str, Any]:
        context = values.template_context()
        context.update(self.template_context())
        return context

    def generate_capi_file(self, values: Values) -> InitFile:
        return construct_file(
            posixpath.join(values.bootstrap_manifest_dir, "capi-linode.yaml"),
            template_path(__file__, "capi-linode.yaml"),
            self._context(values),
        )

    def generate_capi_machine(self, values: Values) -> InitFile:
        return construct_file(
            posixpath.join(values.bootstrap_manifest_dir, "capi-pivot-machine.yaml"),
            template_path(__file__, "capi-pivot-machine.yaml"),
            self._context(values),
        )

    def generate_additional_files(self, values: Values) -> List[InitFile]:
        template = "linode-ccm-vpc.yaml" if self.vpc is not None else "linode-ccm.yaml"
        return [construct_file(
            posixpath.join(values.bootstrap_manifest_dir, "linode-ccm.yaml"),
            template_path(__file__, template),
            self._context(values),
        )]
