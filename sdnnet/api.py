"""Network API objects: cluster networks, host subnets, namespaces and policies."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

CLUSTER_NETWORK_DEFAULT = "default"
ASSIGN_HOST_SUBNET_ANNOTATION = "pod.network.openshift.io/assign-subnet"

EGRESS_RULE_ALLOW = "Allow"
EGRESS_RULE_DENY = "Deny"


@dataclass
class ObjectMeta:
    """Identifying metadata shared by every API object."""

    name: str = ""
    namespace: str = ""
    uid: str = ""
    annotations: dict[str, str] = field(default_factory=dict)


class _Named:
    """Shortcuts to the most used metadata attributes."""

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def uid(self) -> str:
        return self.metadata.uid

    @property
    def annotations(self) -> dict[str, str]:
        return self.metadata.annotations


@dataclass
class ClusterNetworkEntry:
    """One CIDR of the cluster network and the size of per-node subnets in it."""

    cidr: str = ""
    host_subnet_length: int = 0


@dataclass
class ClusterNetwork(_Named):
    """Cluster-wide network configuration."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    network: str = ""
    host_subnet_length: int = 0
    service_network: str = ""
    plugin_name: str = ""
    cluster_networks: list[ClusterNetworkEntry] = field(default_factory=list)
    vxlan_port: int | None = None
    mtu: int | None = None


@dataclass
class HostSubnet(_Named):
    """The subnet and egress settings assigned to one node."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    host: str = ""
    host_ip: str = ""
    subnet: str = ""
    egress_ips: list[str] = field(default_factory=list)
    egress_cidrs: list[str] = field(default_factory=list)

    def deep_copy(self) -> HostSubnet:
        """Return a fully independent copy."""
        return copy.deepcopy(self)


@dataclass
class NetNamespace(_Named):
    """The network identity (VNID) and egress IPs of a project."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    net_name: str = ""
    net_id: int = 0
    egress_ips: list[str] = field(default_factory=list)


@dataclass
class EgressNetworkPolicyPeer:
    """Destination of an egress rule: a CIDR or a DNS name."""

    cidr_selector: str = ""
    dns_name: str = ""


@dataclass
class EgressNetworkPolicyRule:
    """A single allow or deny rule."""

    type: str = EGRESS_RULE_ALLOW
    to: EgressNetworkPolicyPeer = field(default_factory=EgressNetworkPolicyPeer)


@dataclass
class EgressNetworkPolicy(_Named):
    """Egress firewall of a namespace."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    egress: list[EgressNetworkPolicyRule] = field(default_factory=list)


@dataclass
class Pod(_Named):
    """The parts of a pod the network code looks at."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    host_network: bool = False
    pod_ip: str = ""


@dataclass
class Service(_Named):
    """The parts of a service the network code looks at."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    cluster_ip: str = ""