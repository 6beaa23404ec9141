"""Typed views of the Cluster-API resources the bootstrapper reads and rewrites.

Only the fields the providers touch are declared. Everything else is kept as
extra data so a rewritten document loses nothing.
"""

from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Model(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class ObjectMeta(_Model):
    name: str = ""
    namespace: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)


class ObjectReference(_Model):
    api_version: str = Field(default="", alias="apiVersion")
    kind: str = ""
    name: str = ""
    namespace: Optional[str] = None


class Resource(_Model):
    """Common envelope of every resource document."""
    KIND: ClassVar[str] = ""
    API_VERSION: ClassVar[str] = ""

    api_version: str = Field(default="", alias="apiVersion")
    kind: str = ""
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)


class BootstrapFile(_Model):
    path: str
    content: str = ""
    owner: str = ""
    permissions: str = ""
    encoding: str = ""


# cluster.x-k8s.io

class ClusterSpec(_Model):
    control_plane_ref: Optional[ObjectReference] = Field(default=None, alias="controlPlaneRef")
    infrastructure_ref: Optional[ObjectReference] = Field(default=None, alias="infrastructureRef")


class Cluster(Resource):
    KIND: ClassVar[str] = "Cluster"
    API_VERSION: ClassVar[str] = "cluster.x-k8s.io/v1beta1"

    spec: ClusterSpec = Field(default_factory=ClusterSpec)


# infrastructure.cluster.x-k8s.io (Linode)

class APIEndpoint(_Model):
    host: str = ""
    port: int = 0


class LinodeNetworkSpec(_Model):
    load_balancer_type: Optional[str] = Field(default=None, alias="loadBalancerType")
    apiserver_load_balancer_port: Optional[int] = Field(default=None, alias="apiserverLoadBalancerPort")
    node_balancer_id: Optional[int] = Field(default=None, alias="nodeBalancerID")
    apiserver_node_balancer_config_id: Optional[int] = Field(default=None, alias="apiserverNodeBalancerConfigID")


class LinodeClusterSpec(_Model):
    region: str = ""
    control_plane_endpoint: Optional[APIEndpoint] = Field(default=None, alias="controlPlaneEndpoint")
    network: Optional[LinodeNetworkSpec] = None
    vpc_ref: Optional[ObjectReference] = Field(default=None, alias="vpcRef")


class LinodeCluster(Resource):
    KIND: ClassVar[str] = "LinodeCluster"

    spec: LinodeClusterSpec = Field(default_factory=LinodeClusterSpec)


class LinodeMachineSpec(_Model):
    region: str = ""
    type: str = ""
    image: str = ""
    authorized_keys: List[str] = Field(default_factory=list, alias="authorizedKeys")
    tags: List[str] = Field(default_factory=list)


class LinodeMachineTemplateResource(_Model):
    spec: LinodeMachineSpec = Field(default_factory=LinodeMachineSpec)


class LinodeMachineTemplateSpec(_Model):
    template: LinodeMachineTemplateResource = Field(default_factory=LinodeMachineTemplateResource)


class LinodeMachineTemplate(Resource):
    KIND: ClassVar[str] = "LinodeMachineTemplate"

    spec: LinodeMachineTemplateSpec = Field(default_factory=LinodeMachineTemplateSpec)


class VPCSubnet(_Model):
    label: str = ""
    ipv4: str = ""


class LinodeVPCSpec(_Model):
    region: str = ""
    description: str = ""
    subnets: List[VPCSubnet] = Field(default_factory=list)


class LinodeVPC(Resource):
    KIND: ClassVar[str] = "LinodeVPC"

    spec: LinodeVPCSpec = Field(default_factory=LinodeVPCSpec)


# controlplane.cluster.x-k8s.io (k3s)

class KThreesServerConfig(_Model):
    kube_apiserver_args: List[str] = Field(default_factory=list, alias="kubeAPIServerArgs")
    kube_controller_manager_args: List[str] = Field(default_factory=list, alias="kubeControllerManagerArgs")
    kube_scheduler_args: List[str] = Field(default_factory=list, alias="kubeSchedulerArgs")
    tls_san: List[str] = Field(default_factory=list, alias="tlsSan")
    disable_components: List[str] = Field(default_factory=list, alias="disableComponents")
    cluster_cidr: str = Field(default="", alias="clusterCidr")
    service_cidr: str = Field(default="", alias="serviceCidr")
    cluster_dns: str = Field(default="", alias="clusterDNS")
    cluster_domain: str = Field(default="", alias="clusterDomain")
    cloud_provider_name: str = Field(default="", alias="cloudProviderName")


class KThreesAgentConfig(_Model):
    node_name: str = Field(default="", alias="nodeName")
    kubelet_args: List[str] = Field(default_factory=list, alias="kubeletArgs")
    kube_proxy_args: List[str] = Field(default_factory=list, alias="kubeProxyArgs")
    node_labels: List[str] = Field(default_factory=list, alias="nodeLabels")
    node_taints: List[str] = Field(default_factory=list, alias="nodeTaints")
    private_registry: str = Field(default="", alias="privateRegistry")


class KThreesConfigSpec(_Model):
    files: List[BootstrapFile] = Field(default_factory=list)
    pre_k3s_commands: List[str] = Field(default_factory=list, alias="preK3sCommands")
    post_k3s_commands: List[str] = Field(default_factory=list, alias="postK3sCommands")
    server_config: KThreesServerConfig = Field(default_factory=KThreesServerConfig, alias="serverConfig")
    agent_config: KThreesAgentConfig = Field(default_factory=KThreesAgentConfig, alias="agentConfig")


class KThreesControlPlaneSpec(_Model):
    version: str = ""
    replicas: Optional[int] = None
    kthrees_config_spec: KThreesConfigSpec = Field(default_factory=KThreesConfigSpec, alias="kthreesConfigSpec")


class KThreesControlPlane(Resource):
    KIND: ClassVar[str] = "KThreesControlPlane"

    spec: KThreesControlPlaneSpec = Field(default_factory=KThreesControlPlaneSpec)


# controlplane.cluster.x-k8s.io (kubeadm)

class KubeadmConfigSpec(_Model):
    cluster_configuration: Dict[str, Any] = Field(default_factory=dict, alias="clusterConfiguration")
    init_configuration: Dict[str, Any] = Field(default_factory=dict, alias="initConfiguration")
    files: List[BootstrapFile] = Field(default_factory=list)
    pre_kubeadm_commands: List[str] = Field(default_factory=list, alias="preKubeadmCommands")
    post_kubeadm_commands: List[str] = Field(default_factory=list, alias="postKubeadmCommands")


class KubeadmControlPlaneSpec(_Model):
    version: str = ""
    replicas: Optional[int] = None
    kubeadm_config_spec: KubeadmConfigSpec = Field(default_factory=KubeadmConfigSpec, alias="kubeadmConfigSpec")


class KubeadmControlPlane(Resource):
    KIND: ClassVar[str] = "KubeadmControlPlane"

    spec: KubeadmControlPlaneSpec = Field(default_factory=KubeadmControlPlaneSpec)


# addons.cluster.x-k8s.io

class HelmOptions(_Model):
    wait: bool = False
    timeout: Optional[str] = None
    install: Dict[str, Any] = Field(default_factory=dict)


class HelmChartProxySpec(_Model):
    cluster_selector: Dict[str, Any] = Field(default_factory=dict, alias="clusterSelector")
    repo_url: str = Field(default="", alias="repoURL")
    chart_name: str = Field(default="", alias="chartName")
    release_name: str = Field(default="", alias="releaseName")
    namespace: str = ""
    version: str = ""
    values_template: str = Field(default="", alias="valuesTemplate")
    options: HelmOptions = Field(default_factory=HelmOptions)


class HelmChartProxy(Resource):
    KIND: ClassVar[str] = "HelmChartProxy"

    spec: HelmChartProxySpec = Field(default_factory=HelmChartProxySpec)
