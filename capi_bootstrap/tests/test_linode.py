import base64
from unittest.mock import MagicMock

import pytest
import yaml

from capi_bootstrap.exceptions import (
    AlreadyExistsError,
    ConfigurationError,
    LinodeAPIError,
    ManifestError,
    MissingCredentialsError,
)
from capi_bootstrap.manifests import find_by_kind
from capi_bootstrap.models import Values
from capi_bootstrap.providers.infrastructure.linode.client import LinodeClient
from capi_bootstrap.providers.infrastructure.linode.provider import LinodeProvider


VPC_DOCUMENT = """\
apiVersion: infrastructure.cluster.x-k8s.io/v1alpha2
kind: LinodeVPC
metadata:
  name: demo-vpc
spec:
  region: us-ord
  subnets:
  - label: default
    ipv4: 10.0.0.0/8
"""


def provider_with(client):
    provider = LinodeProvider()
    provider._token = "linode-token"
    provider._client = client
    return provider


def test_pre_cmd_requires_token(monkeypatch):
    monkeypatch.delenv("LINODE_TOKEN", raising=False)
    with pytest.raises(MissingCredentialsError, match="LINODE_TOKEN"):
        LinodeProvider().pre_cmd(Values(cluster_name="demo"))


def test_pre_cmd_builds_client(monkeypatch):
    monkeypatch.setenv("LINODE_TOKEN", "linode-token")
    monkeypatch.setenv("LINODE_URL", "https://api.example.com/v4")
    provider = LinodeProvider()
    provider.pre_cmd(Values(cluster_name="demo"))
    assert provider.client.api_url == "https://api.example.com/v4"
    assert provider.client.session.headers["Authorization"] == "Bearer linode-token"


def test_client_before_pre_cmd():
    with pytest.raises(ConfigurationError):
        LinodeProvider().client


def test_pre_deploy_fails_when_node_balancer_exists(values, linode_client):
    client = linode_client
    client.list_node_balancers.return_value = [{"id": 1, "label": "demo", "tags": ["demo"]}]
    provider = provider_with(client)

    with pytest.raises(AlreadyExistsError):
        provider.pre_deploy(values)

    client.list_node_balancers.assert_called_once_with({"tags": "demo"})
    client.create_node_balancer.assert_not_called()
    client.create_node_balancer_config.assert_not_called()
    client.create_instance.assert_not_called()
    assert values.cluster_endpoint == ""


def test_pre_deploy_requires_machine_template(linode_client):
    values = Values(cluster_name="demo", manifests=["kind: ConfigMap\n"])
    with pytest.raises(ManifestError, match="LinodeMachineTemplate"):
        provider_with(linode_client).pre_deploy(values)
    linode_client.create_node_balancer.assert_not_called()


def test_pre_deploy_sets_endpoint(values, linode_client, monkeypatch):
    monkeypatch.setenv("AUTHORIZED_KEYS", "ssh-ed25519 AAAA test")
    provider = provider_with(linode_client)
    provider.pre_deploy(values)

    assert values.cluster_endpoint == "172.234.0.10"
    assert values.ssh_authorized_keys == ["ssh-ed25519 AAAA test"]
    linode_client.create_node_balancer.assert_called_once_with({
        "label": "demo",
        "region": "us-ord",
        "tags": ["demo"],
    })
    linode_client.create_node_balancer_config.assert_called_once_with(101, {
        "port": 6443,
        "protocol": "tcp",
        "algorithm": "roundrobin",
        "check": "connection",
    })
    assert provider.vpc is None


def test_pre_deploy_without_ipv4(values, linode_client):
    linode_client.create_node_balancer.return_value = {"id": 101, "label": "demo"}
    with pytest.raises(LinodeAPIError, match="IPv4"):
        provider_with(linode_client).pre_deploy(values)


def test_deploy_creates_instance_and_node(values, linode_client):
    provider = provider_with(linode_client)
    provider.pre_deploy(values)
    provider.deploy(values, b"#cloud-config\n")

    options = linode_client.create_instance.call_args.args[0]
    assert options["label"] == "demo-bootstrap"
    assert options["type"] == "g6-standard-2"
    assert options["image"] == "linode/ubuntu22.04"
    assert options["tags"] == ["demo"]
    assert options["private_ip"] is True
    assert base64.b64decode(options["metadata"]["user_data"]) == b"#cloud-config\n"
    assert "interfaces" not in options

    linode_client.create_node_balancer_node.assert_called_once_with(101, 202, {
        "address": "192.168.128.5:6443",
        "label": "demo-bootstrap",
        "weight": 100,
    })


def test_deploy_with_vpc(values, linode_client):
    values.manifests.append(VPC_DOCUMENT)
    linode_client.create_vpc.return_value = {"id": 7, "label": "demo-vpc", "subnets": [{"id": 70}]}
    provider = provider_with(linode_client)
    provider.pre_deploy(values)
    provider.deploy(values, b"#cloud-config\n")

    linode_client.create_vpc.assert_called_once_with({
        "label": "demo-vpc",
        "description": "",
        "region": "us-ord",
        "subnets": [{"label": "default", "ipv4": "10.0.0.0/8"}],
    })
    interfaces = linode_client.create_instance.call_args.args[0]["interfaces"]
    assert interfaces[0]["subnet_id"] == 70
    assert interfaces[1] == {"purpose": "public"}


def test_deploy_without_private_address(values, linode_client):
    linode_client.create_instance.return_value = {"id": 303, "label": "demo-bootstrap", "ipv4": ["172.234.1.20"]}
    provider = provider_with(linode_client)
    provider.pre_deploy(values)
    with pytest.raises(LinodeAPIError, match="private"):
        provider.deploy(values, b"")
    linode_client.create_node_balancer_node.assert_not_called()


def test_update_manifests_points_linode_cluster_at_node_balancer(values, linode_client):
    provider = provider_with(linode_client)
    provider.pre_deploy(values)
    before = list(values.manifests)
    parsed = provider.update_manifests(values)

    assert parsed.additional_files == []
    index, cluster = find_by_kind(values.manifests, "LinodeCluster")
    assert cluster["spec"]["controlPlaneEndpoint"] == {"host": "172.234.0.10", "port": 6443}
    assert cluster["spec"]["network"] == {
        "loadBalancerType": "NodeBalancer",
        "apiserverLoadBalancerPort": 6443,
        "nodeBalancerID": 101,
        "apiserverNodeBalancerConfigID": 202,
    }
    assert cluster["spec"]["region"] == "us-ord"
    changed = [i for i, (a, b) in enumerate(zip(before, values.manifests)) if a != b]
    assert changed == [index]


def test_generated_files(values, linode_client):
    provider = provider_with(linode_client)
    provider.pre_deploy(values)
    values.bootstrap_manifest_dir = "/var/lib/rancher/k3s/server/manifests/"

    capi = yaml.safe_load_all(provider.generate_capi_file(values).content)
    secret = [d for d in capi if d["kind"] == "Secret"][0]
    assert secret["stringData"]["LINODE_TOKEN"] == "linode-token"

    machine = provider.generate_capi_machine(values)
    assert machine.path == "/var/lib/rancher/k3s/server/manifests/capi-pivot-machine.yaml"
    assert "{{ ds.meta_data.id }}" in machine.content

    (ccm,) = provider.generate_additional_files(values)
    assert ccm.path.endswith("/linode-ccm.yaml")
    assert "vpcName" not in ccm.content


def test_delete_declined_keeps_resources(linode_client):
    linode_client.list_instances.return_value = [{"id": 303, "label": "demo-bootstrap"}]
    confirm = MagicMock(return_value=False)
    assert provider_with(linode_client).delete(Values(cluster_name="demo"), confirm=confirm) is False
    confirm.assert_called_once()
    linode_client.delete_instance.assert_not_called()


def test_delete_forced(linode_client):
    linode_client.list_instances.return_value = [{"id": 303, "label": "demo-bootstrap"}]
    linode_client.list_node_balancers.return_value = [{"id": 101, "label": "demo"}]
    linode_client.list_vpcs.return_value = [{"id": 7, "label": "demo-vpc"}]
    provider = provider_with(linode_client)
    confirm = MagicMock()

    assert provider.delete(Values(cluster_name="demo"), force=True, confirm=confirm) is True

    confirm.assert_not_called()
    linode_client.delete_instance.assert_called_once_with(303)
    linode_client.delete_node_balancer.assert_called_once_with(101)
    linode_client.delete_vpc.assert_called_once_with(7)


def test_delete_uses_persisted_vpc_label(values, linode_client):
    values.manifests.append(VPC_DOCUMENT)
    provider = provider_with(linode_client)
    provider.pre_deploy(values)
    provider.delete(values, force=True)
    linode_client.list_vpcs.assert_called_once_with({"label": "demo-vpc"})


def test_delete_refuses_ambiguous_node_balancers(linode_client):
    linode_client.list_node_balancers.return_value = [{"id": 1}, {"id": 2}]
    with pytest.raises(ConfigurationError):
        provider_with(linode_client).delete(Values(cluster_name="demo"), force=True)
    linode_client.delete_node_balancer.assert_not_called()


def test_client_pages_through_results():
    session = MagicMock()
    session.headers = {}
    first, second = MagicMock(ok=True, content=b"{}"), MagicMock(ok=True, content=b"{}")
    first.json.return_value = {"data": [{"id": 1}], "page": 1, "pages": 2}
    second.json.return_value = {"data": [{"id": 2}], "page": 2, "pages": 2}
    session.request.side_effect = [first, second]

    client = LinodeClient("token", session=session)
    assert client.list_instances({"tags": "demo"}) == [{"id": 1}, {"id": 2}]
    assert session.request.call_args.kwargs["headers"] == {"X-Filter": '{"tags": "demo"}'}
    assert session.request.call_args.kwargs["params"] == {"page": 2, "page_size": 500}


def test_client_error_carries_operation_and_reason():
    session = MagicMock()
    session.headers = {}
    failed = MagicMock(ok=False, status_code=401, text="unauthorized")
    failed.json.return_value = {"errors": [{"reason": "Invalid Token"}]}
    session.request.return_value = failed

    with pytest.raises(LinodeAPIError) as excinfo:
        LinodeClient("token", session=session).create_instance({})
    assert excinfo.value.operation == "create instance"
    assert excinfo.value.status_code == 401
    assert "Invalid Token" in str(excinfo.value)
