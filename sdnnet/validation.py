"""Validation of cluster network and host subnet objects."""

from __future__ import annotations

import ipaddress
import re

from .api import (
    ASSIGN_HOST_SUBNET_ANNOTATION,
    CLUSTER_NETWORK_DEFAULT,
    ClusterNetwork,
    HostSubnet,
    ObjectMeta,
)
from .errors import AggregateError, FieldError

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network

_PREFIX_RE = re.compile(r"[0-9]+")
_ANNOTATION_KEY_RE = re.compile(
    r"(?:(?P<prefix>[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*)/)?"
    r"[A-Za-z0-9]([-A-Za-z0-9_.]{0,61}[A-Za-z0-9])?"
)
_TOTAL_ANNOTATION_SIZE_LIMIT = 256 * 1024


def _parse_ip(text: str, unmap: bool = True) -> IPAddress | None:
    """Parse an address strictly; IPv4-mapped IPv6 addresses become IPv4."""
    if "%" in text:
        return None
    try:
        ip = ipaddress.ip_address(text)
    except ValueError:
        return None
    if unmap and isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def _parse_cidr(cidr: str) -> tuple[IPAddress, IPNetwork]:
    """Parse "address/prefix", returning the address and its network."""
    addr, sep, prefix = cidr.partition("/")
    ip = _parse_ip(addr, unmap=False) if sep else None
    if ip is None or not _PREFIX_RE.fullmatch(prefix) or int(prefix) > ip.max_prefixlen:
        raise ValueError(f"invalid CIDR address: {cidr}")
    return ip, ipaddress.ip_network((ip, int(prefix)), strict=False)


def _contains(network: IPNetwork, ip: IPAddress | None) -> bool:
    if ip is None:
        return False
    if network.version == 4 and isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped:
        ip = ip.ipv4_mapped
    return ip.version == network.version and ip in network


def parse_cidr_mask(cidr: str) -> IPNetwork:
    """Parse a CIDR, rejecting one whose address is not the network address."""
    ip, network = _parse_cidr(cidr)
    if ip != network.network_address:
        raise ValueError(
            f'CIDR network specification "{cidr}" is not in canonical form '
            f"(should be {network.network_address}/{network.prefixlen} "
            f"or {ip}/{ip.max_prefixlen}?)"
        )
    return network


def validate_cidr_v4(cidr: str) -> ipaddress.IPv4Network:
    """Parse a canonical IPv4 CIDR or raise ValueError."""
    network = parse_cidr_mask(cidr)
    if network.version != 4:
        raise ValueError("must be an IPv4 network")
    return network


def validate_ipv4(ip: str) -> ipaddress.IPv4Address:
    """Parse an IPv4 address or raise ValueError."""
    parsed = _parse_ip(ip)
    if parsed is None:
        raise ValueError("invalid IP address")
    if parsed.version != 4:
        raise ValueError("must be an IPv4 address")
    return parsed


def cidrs_overlap(cidr1: IPNetwork, cidr2: IPNetwork) -> bool:
    """Whether either network contains the other's base address."""
    return _contains(cidr1, cidr2.network_address) or _contains(cidr2, cidr1.network_address)


def validate_object_meta(meta: ObjectMeta) -> list[FieldError]:
    """Check the metadata of a cluster-scoped object; return the problems found."""
    errors: list[FieldError] = []
    name = meta.name
    if not name:
        errors.append(FieldError.required("metadata.name", "name or generateName is required"))
    elif name in (".", ".."):
        errors.append(FieldError.invalid("metadata.name", name, f"may not be '{name}'"))
    else:
        errors.extend(
            FieldError.invalid("metadata.name", name, f"may not contain '{c}'")
            for c in "/%"
            if c in name
        )

    if meta.namespace:
        errors.append(FieldError("Forbidden", "metadata.namespace", None, "not allowed on this type"))

    for key in meta.annotations:
        match = _ANNOTATION_KEY_RE.fullmatch(key.lower())
        if match is None or len(match.group("prefix") or "") > 253:
            errors.append(FieldError.invalid("metadata.annotations", key, "must be a qualified name"))
    total = sum(len(k) + len(v) for k, v in meta.annotations.items())
    if total > _TOTAL_ANNOTATION_SIZE_LIMIT:
        errors.append(
            FieldError(
                "Too long",
                "metadata.annotations",
                None,
                f"must have at most {_TOTAL_ANNOTATION_SIZE_LIMIT} bytes",
            )
        )
    return errors


def _raise_if_any(errors: list[FieldError]) -> None:
    aggregate = AggregateError.from_errors(errors)
    if aggregate is not None:
        raise aggregate


def _check_subnet_length(errors: list[FieldError], path: str, length: int, net: IPNetwork, what: str) -> None:
    if length > net.max_prefixlen - net.prefixlen:
        errors.append(FieldError.invalid(path, length, f"subnet length is too large for {what}"))
    elif length < 2:
        errors.append(FieldError.invalid(path, length, "subnet length must be at least 2"))


def validate_cluster_network(cluster_net: ClusterNetwork) -> None:
    """Check a ClusterNetwork, raising AggregateError listing every problem."""
    errors = validate_object_meta(cluster_net.metadata)
    service = cluster_net.service_network
    try:
        service_net: IPNetwork | None = validate_cidr_v4(service)
    except ValueError as exc:
        service_net = None
        errors.append(FieldError.invalid("serviceNetwork", service, str(exc)))

    if not cluster_net.cluster_networks:
        # Legacy ClusterNetwork: the old fields must be set.
        if cluster_net.network == "":
            errors.append(FieldError.required("network", "network must be set (if clusterNetworks is empty)"))
        elif cluster_net.host_subnet_length == 0:
            errors.append(
                FieldError.required("hostsubnetlength", "hostsubnetlength must be set (if clusterNetworks is empty)")
            )
        else:
            try:
                legacy_net = validate_cidr_v4(cluster_net.network)
            except ValueError as exc:
                errors.append(FieldError.invalid("network", cluster_net.network, str(exc)))
            else:
                _check_subnet_length(errors, "hostsubnetlength", cluster_net.host_subnet_length, legacy_net, "cidr")
                if service_net is not None and cidrs_overlap(legacy_net, service_net):
                    errors.append(
                        FieldError.invalid("serviceNetwork", service, "service network overlaps with cluster network")
                    )
    else:
        first = cluster_net.cluster_networks[0]
        if cluster_net.name == CLUSTER_NETWORK_DEFAULT:
            if cluster_net.network != first.cidr:
                errors.append(
                    FieldError.invalid(
                        "network", cluster_net.network, "network must be identical to clusterNetworks[0].cidr"
                    )
                )
            if cluster_net.host_subnet_length != first.host_subnet_length:
                errors.append(
                    FieldError.invalid(
                        "hostsubnetlength",
                        cluster_net.host_subnet_length,
                        "hostsubnetlength must be identical to clusterNetworks[0].hostSubnetLength",
                    )
                )
        elif (cluster_net.network != "" or cluster_net.host_subnet_length != 0) and (
            cluster_net.network != first.cidr or cluster_net.host_subnet_length != first.host_subnet_length
        ):
            errors.append(
                FieldError.invalid(
                    "clusterNetworks[0]",
                    first,
                    "network and hostsubnetlength must be unset or identical to clusterNetworks[0]",
                )
            )

    tested: list[IPNetwork] = []
    for index, entry in enumerate(cluster_net.cluster_networks):
        path = f"clusterNetworks[{index}]"
        try:
            net = validate_cidr_v4(entry.cidr)
        except ValueError as exc:
            errors.append(FieldError.invalid(f"{path}.cidr", entry.cidr, str(exc)))
            continue
        _check_subnet_length(errors, f"{path}.hostSubnetLength", entry.host_subnet_length, net, "clusterNetwork ")
        errors.extend(
            FieldError.invalid(f"{path}.cidr", entry.cidr, f'cidr range overlaps with another cidr "{other}"')
            for other in tested
            if cidrs_overlap(net, other)
        )
        tested.append(net)
        if service_net is not None and cidrs_overlap(net, service_net):
            errors.append(
                FieldError.invalid(
                    "serviceNetwork", service, f"service network overlaps with cluster network cidr: {net}"
                )
            )

    if cluster_net.vxlan_port is not None and not 1 <= cluster_net.vxlan_port <= 65535:
        errors.append(
            FieldError.invalid("vxlanPort", cluster_net.vxlan_port, "must be between 1 and 65535, inclusive")
        )
    _raise_if_any(errors)


def validate_host_subnet(hs: HostSubnet) -> None:
    """Check the system-maintained fields of a HostSubnet."""
    errors = validate_object_meta(hs.metadata)
    if hs.host != hs.name:
        errors.append(FieldError.invalid("host", hs.host, f'must be the same as metadata.name: "{hs.name}"'))

    if hs.subnet == "":
        if ASSIGN_HOST_SUBNET_ANNOTATION not in hs.annotations:
            errors.append(FieldError.invalid("subnet", hs.subnet, "field cannot be empty"))
    else:
        try:
            validate_cidr_v4(hs.subnet)
        except ValueError as exc:
            errors.append(FieldError.invalid("subnet", hs.subnet, str(exc)))

    # IPv6 host IPs are tolerated here; only unparsable ones are rejected.
    if _parse_ip(hs.host_ip) is None:
        errors.append(FieldError.invalid("hostIP", hs.host_ip, "invalid IP address"))
    _raise_if_any(errors)


def validate_host_subnet_egress(hs: HostSubnet) -> None:
    """Check the user-maintained egress fields of a HostSubnet."""
    errors = validate_object_meta(hs.metadata)
    for field_name, values, check in (
        ("egressIPs", hs.egress_ips, validate_ipv4),
        ("egressCIDRs", hs.egress_cidrs, validate_cidr_v4),
    ):
        for index, value in enumerate(values):
            try:
                check(value)
            except ValueError as exc:
                errors.append(FieldError.invalid(f"{field_name}[{index}]", value, str(exc)))
    _raise_if_any(errors)