"""Parsed cluster network configuration and checks shared by master and node."""

from __future__ import annotations

import ipaddress
import json
import logging
import socket
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import psutil

from .api import ClusterNetwork, HostSubnet, Pod, Service
from .errors import AggregateError
from .validation import (
    IPAddress,
    IPNetwork,
    _contains,
    _parse_cidr,
    _parse_ip,
    cidrs_overlap,
    parse_cidr_mask,
)

logger = logging.getLogger(__name__)

DEFAULT_VXLAN_PORT = 4789
DEFAULT_MTU = 1450
_MAX_ERRORS = 10


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _raise_if_any(errors: list[Exception]) -> None:
    aggregate = AggregateError.from_errors(errors)
    if aggregate is not None:
        raise aggregate


def _parse_lenient(cidr: str, what: str, setting: str) -> IPNetwork:
    """Parse a canonical CIDR, falling back to masking a non-canonical one."""
    try:
        return parse_cidr_mask(cidr)
    except ValueError:
        pass
    try:
        _, network = _parse_cidr(cidr)
    except ValueError as exc:
        raise ValueError(f"failed to parse {what} CIDR {cidr}: {exc}") from None
    logger.error(
        "Configured %s value %s is invalid; treating it as %s", setting, _quote(cidr), _quote(str(network))
    )
    return network


@dataclass
class ParsedClusterNetworkEntry:
    """One cluster network CIDR with its per-node subnet size."""

    cluster_cidr: IPNetwork
    host_subnet_length: int


@dataclass
class ParsedClusterNetwork:
    """A ClusterNetwork with its addresses parsed and defaults filled in."""

    cluster_networks: list[ParsedClusterNetworkEntry] = field(default_factory=list)
    service_network: IPNetwork = field(default=ipaddress.ip_network("0.0.0.0/32"))
    plugin_name: str = ""
    vxlan_port: int = DEFAULT_VXLAN_PORT
    mtu: int = DEFAULT_MTU

    def validate_node_ip(self, node_ip: str) -> None:
        """Raise ValueError if the node IP is unusable or inside a managed network."""
        if node_ip in ("", "127.0.0.1"):
            raise ValueError(f"invalid node IP {_quote(node_ip)}")
        # A node IP inside the cluster network could cause a routing loop.
        ipaddr = _parse_ip(node_ip)
        if ipaddr is None:
            raise ValueError(f"failed to parse node IP {node_ip}")
        conflicting = cluster_network_list_contains(self.cluster_networks, ipaddr)
        if conflicting is not None:
            raise ValueError(f"node IP {node_ip} conflicts with cluster network {conflicting}")
        if _contains(self.service_network, ipaddr):
            raise ValueError(f"node IP {node_ip} conflicts with service network {self.service_network}")

    def check_host_networks(self, host_ip_nets: Iterable[IPNetwork]) -> None:
        """Raise AggregateError if any host network overlaps a managed network."""
        errors: list[Exception] = []
        for ip_net in host_ip_nets:
            errors.extend(
                ValueError(
                    f"cluster IP: {entry.cluster_cidr.network_address} conflicts with host network: {ip_net}"
                )
                for entry in self.cluster_networks
                if cidrs_overlap(ip_net, entry.cluster_cidr)
            )
            if cidrs_overlap(ip_net, self.service_network):
                errors.append(
                    ValueError(f"service IP: {self.service_network} conflicts with host network: {ip_net}")
                )
        _raise_if_any(errors)

    def check_cluster_objects(
        self, subnets: Sequence[HostSubnet], pods: Sequence[Pod], services: Sequence[Service]
    ) -> None:
        """Raise AggregateError listing existing objects outside the configured networks."""
        errors: list[Exception] = []

        for subnet in subnets:
            try:
                subnet_ip: IPAddress | None = _parse_cidr(subnet.subnet)[0]
            except ValueError:
                subnet_ip = None
            if subnet_ip is None:
                errors.append(ValueError(f"failed to parse network address: {subnet.subnet}"))
            elif cluster_network_list_contains(self.cluster_networks, subnet_ip) is None:
                errors.append(
                    ValueError(f"existing node subnet: {subnet.subnet} is not part of any cluster network CIDR")
                )
            if len(errors) >= _MAX_ERRORS:
                break

        for pod in pods:
            if pod.host_network or pod.pod_ip == "":
                continue
            if cluster_network_list_contains(self.cluster_networks, pod.pod_ip) is None:
                errors.append(
                    ValueError(
                        f"existing pod {pod.namespace}:{pod.name} with IP {pod.pod_ip} "
                        "is not part of cluster network"
                    )
                )
                if len(errors) >= _MAX_ERRORS:
                    break

        for svc in services:
            svc_ip = _parse_ip(svc.cluster_ip)
            if svc_ip is not None and not _contains(self.service_network, svc_ip):
                errors.append(
                    ValueError(
                        f"existing service {svc.namespace}:{svc.name} with IP {svc.cluster_ip} "
                        f"is not part of service network {self.service_network}"
                    )
                )
                if len(errors) >= _MAX_ERRORS:
                    break

        if len(errors) >= _MAX_ERRORS:
            errors.append(ValueError("too many errors... truncating"))
        _raise_if_any(errors)


def host_subnet_to_string(subnet: HostSubnet) -> str:
    """One-line description of a HostSubnet."""
    return (
        f"{subnet.name} (host: {_quote(subnet.host)}, ip: {_quote(subnet.host_ip)}, "
        f"subnet: {_quote(subnet.subnet)})"
    )


def cluster_network_to_string(n: ClusterNetwork) -> str:
    """One-line description of a ClusterNetwork."""
    return (
        f"{n.name} (network: {_quote(n.network)}, hostSubnetBits: {n.host_subnet_length}, "
        f"serviceNetwork: {_quote(n.service_network)}, pluginName: {_quote(n.plugin_name)})"
    )


def cluster_network_list_contains(
    cluster_networks: Iterable[ParsedClusterNetworkEntry], ipaddr: IPAddress | str | None
) -> IPNetwork | None:
    """Return the first cluster CIDR containing the address, or None."""
    if isinstance(ipaddr, str):
        ipaddr = _parse_ip(ipaddr)
    return next((e.cluster_cidr for e in cluster_networks if _contains(e.cluster_cidr, ipaddr)), None)


def parse_cluster_network(cn: ClusterNetwork) -> ParsedClusterNetwork:
    """Parse a ClusterNetwork, raising ValueError if a CIDR cannot be parsed."""
    entries = [
        ParsedClusterNetworkEntry(_parse_lenient(e.cidr, "ClusterNetwork", "clusterNetworks"), e.host_subnet_length)
        for e in cn.cluster_networks
    ]
    return ParsedClusterNetwork(
        cluster_networks=entries,
        service_network=_parse_lenient(cn.service_network, "ServiceNetwork", "serviceNetworkCIDR"),
        plugin_name=cn.plugin_name,
        vxlan_port=cn.vxlan_port if cn.vxlan_port is not None else DEFAULT_VXLAN_PORT,
        mtu=cn.mtu if cn.mtu is not None else DEFAULT_MTU,
    )


def generate_default_gateway(network: IPNetwork) -> ipaddress.IPv4Address:
    """The default gateway of an IPv4 subnet: its base address with the low bit set."""
    return ipaddress.IPv4Address(int(network.network_address) | 0x1)


def get_host_ip_networks(skip_interfaces: Iterable[str]) -> tuple[list[IPNetwork], list[IPAddress]]:
    """Return the non-loopback IPv4 networks and addresses of the host's interfaces.

    The named interfaces are skipped. Raises AggregateError if some interface
    address could not be parsed.
    """
    skip = set(skip_interfaces)
    errors: list[Exception] = []
    host_ip_nets: list[IPNetwork] = []
    host_ips: list[IPAddress] = []
    for name, addrs in psutil.net_if_addrs().items():
        if name in skip:
            continue
        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            try:
                interface = ipaddress.ip_interface(f"{addr.address}/{addr.netmask}")
            except ValueError as exc:
                errors.append(exc)
                continue
            if not interface.ip.is_loopback:
                host_ip_nets.append(interface.network)
                host_ips.append(interface.ip)
    _raise_if_any(errors)
    return host_ip_nets, host_ips