from unittest.mock import MagicMock

import pytest

from capi_bootstrap.commands.cluster import load_values
from capi_bootstrap.providers import Providers
from capi_bootstrap.providers.backend.file import FileBackend
from capi_bootstrap.providers.controlplane.k3s.provider import K3sProvider
from capi_bootstrap.providers.infrastructure.linode.provider import LinodeProvider

K3S_MANIFEST = """\
apiVersion: cluster.x-k8s.io/v1beta1
kind: Cluster
metadata:
  name: [[[ .ClusterName ]]]
spec:
  controlPlaneRef:
    apiVersion: controlplane.cluster.x-k8s.io/v1beta2
    kind: KThreesControlPlane
    name: [[[ .ClusterName ]]]-control-plane
  infrastructureRef:
    apiVersion: infrastructure.cluster.x-k8s.io/v1alpha2
    kind: LinodeCluster
    name: [[[ .ClusterName ]]]
---
apiVersion: infrastructure.cluster.x-k8s.io/v1alpha2
kind: LinodeCluster
metadata:
  name: [[[ .ClusterName ]]]
spec:
  region: us-ord
---
apiVersion: controlplane.cluster.x-k8s.io/v1beta2
kind: KThreesControlPlane
metadata:
  name: [[[ .ClusterName ]]]-control-plane
spec:
  version: v1.29.1+k3s2
  kthreesConfigSpec:
    files:
    - path: /etc/node-region
      content: "{{ ds.meta_data.region }}"
    preK3sCommands:
    - echo "{{ ds.meta_data.id }}" > /etc/node-id
    postK3sCommands:
    - echo post
---
apiVersion: infrastructure.cluster.x-k8s.io/v1alpha2
kind: LinodeMachineTemplate
metadata:
  name: [[[ .ClusterName ]]]-control-plane
spec:
  template:
    spec:
      region: us-ord
      type: g6-standard-2
      image: linode/ubuntu22.04
"""


def fake_linode_client(node_balancers=None):
    client = MagicMock()
    client.list_node_balancers.return_value = node_balancers or []
    client.list_instances.return_value = []
    client.list_vpcs.return_value = []
    client.create_node_balancer.return_value = {"id": 101, "label": "demo", "ipv4": "172.234.0.10"}
    client.create_node_balancer_config.return_value = {"id": 202, "port": 6443}
    client.create_instance.return_value = {
        "id": 303,
        "label": "demo-bootstrap",
        "ipv4": ["172.234.1.20", "192.168.128.5"],
    }
    client.create_node_balancer_node.return_value = {"id": 404, "label": "demo-bootstrap"}
    return client


@pytest.fixture
def manifest_text():
    return K3S_MANIFEST


@pytest.fixture
def values():
    return load_values("demo.yaml", K3S_MANIFEST, "demo", False)


@pytest.fixture
def linode_client():
    return fake_linode_client()


@pytest.fixture
def providers(tmp_path, linode_client):
    infrastructure = LinodeProvider()
    infrastructure._token = "linode-token"
    infrastructure._client = linode_client
    return Providers(
        infrastructure=infrastructure,
        control_plane=K3sProvider(),
        backend=FileBackend(base_path=str(tmp_path / "state")),
    )


@pytest.fixture
def deployed(values, providers):
    """Values and providers after both pre-deploy steps ran."""
    providers.infrastructure.pre_deploy(values)
    providers.control_plane.pre_deploy(values)
    return values, providers
