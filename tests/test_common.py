import ipaddress
import socket
from collections import namedtuple
from unittest import mock

import pytest

from sdnnet.api import ClusterNetwork, ClusterNetworkEntry, HostSubnet, ObjectMeta, Pod, Service
from sdnnet.common import (
    ParsedClusterNetwork,
    ParsedClusterNetworkEntry,
    cluster_network_list_contains,
    cluster_network_to_string,
    generate_default_gateway,
    get_host_ip_networks,
    host_subnet_to_string,
    parse_cluster_network,
)
from sdnnet.errors import AggregateError


def net(cidr):
    return ipaddress.ip_network(cidr, strict=False)


def pcn(cluster_cidrs, service):
    return ParsedClusterNetwork(
        cluster_networks=[ParsedClusterNetworkEntry(net(c), 8) for c in cluster_cidrs],
        service_network=net(service),
    )


def test_generate_gateway():
    assert str(generate_default_gateway(net("10.1.0.0/24"))) == "10.1.0.1"


HOST_IP_NETS = [net("10.0.0.0/9"), net("172.20.0.0/16")]


@pytest.mark.parametrize(
    "info, expect_error",
    [
        (pcn(["10.128.0.0/14"], "172.30.0.0/16"), False),
        (pcn(["10.128.0.0/14", "15.128.0.0/14"], "172.30.0.0/16"), False),
        (pcn(["10.0.0.0/8"], "172.30.0.0/16"), True),
        (pcn(["10.1.0.0/16"], "172.30.0.0/16"), True),
        (pcn(["10.128.0.0/14"], "172.0.0.0/8"), True),
        (pcn(["10.128.0.0/14"], "172.20.30.0/8"), True),
    ],
)
def test_check_host_networks(info, expect_error):
    if expect_error:
        with pytest.raises(AggregateError) as exc:
            info.check_host_networks(HOST_IP_NETS)
        assert "conflicts with host network" in str(exc.value)
    else:
        assert info.check_host_networks(HOST_IP_NETS) is None


SUBNETS = [
    HostSubnet(host_ip="192.168.1.2", subnet="10.128.0.0/23"),
    HostSubnet(host_ip="192.168.1.3", subnet="10.129.0.0/23"),
    HostSubnet(host_ip="192.168.1.4", subnet="10.130.0.0/23"),
]
PODS = [
    Pod(pod_ip=ip)
    for ip in [
        "10.128.0.2",
        "10.128.0.4",
        "10.128.0.6",
        "10.128.0.8",
        "10.129.0.3",
        "10.129.0.5",
        "10.129.0.7",
        "10.129.0.9",
        "10.130.0.10",
    ]
]
SERVICES = [
    Service(cluster_ip=ip) for ip in ["172.30.0.1", "172.30.0.128", "172.30.99.99", "None"]
]


@pytest.mark.parametrize(
    "info, errs",
    [
        (pcn(["10.128.0.0/15"], "172.30.0.0/16"), ["10.130.0.0/23", "10.130.0.10"]),
        (pcn(["10.128.0.0/14"], "172.30.0.0/24"), ["172.30.99.99"]),
        (
            pcn(["1.2.3.0/24"], "4.5.6.0/24"),
            [
                "10.128.0.0/23",
                "10.129.0.0/23",
                "10.130.0.0/23",
                "10.128.0.2",
                "10.128.0.4",
                "10.128.0.6",
                "10.128.0.8",
                "10.129.0.3",
                "10.129.0.5",
                "10.129.0.7",
                "172.30.0.1",
                "too many errors",
            ],
        ),
    ],
)
def test_check_cluster_objects_errors(info, errs):
    with pytest.raises(AggregateError) as exc:
        info.check_cluster_objects(SUBNETS, PODS, SERVICES)
    got = exc.value.errors
    assert len(got) == len(errs)
    for err, match in zip(got, errs):
        assert match in str(err)


def test_check_cluster_objects_valid():
    info = pcn(["10.128.0.0/14"], "172.30.0.0/16")
    assert info.check_cluster_objects(SUBNETS, PODS, SERVICES) is None


def test_check_cluster_objects_skips_host_network_pods():
    info = pcn(["10.128.0.0/14"], "172.30.0.0/16")
    pods = [Pod(host_network=True, pod_ip="192.168.1.2")]
    assert info.check_cluster_objects([], pods, []) is None


@pytest.mark.parametrize(
    "cidrs, service",
    [(["10.0.0.0/16"], "172.30.0.0/16"), (["10.0.0.0/16", "10.4.0.0/16"], "172.30.0.0/16")],
)
def test_parse_cluster_network_valid(cidrs, service):
    cn = ClusterNetwork(
        cluster_networks=[ClusterNetworkEntry(cidr=c) for c in cidrs], service_network=service
    )
    parsed = parse_cluster_network(cn)
    assert [e.cluster_cidr for e in parsed.cluster_networks] == [net(c) for c in cidrs]
    assert parsed.service_network == net(service)
    assert parsed.vxlan_port == 4789
    assert parsed.mtu == 1450


@pytest.mark.parametrize(
    "cidr, service, match",
    [
        ("Invalid", "172.30.0.0/16", "Invalid"),
        ("10.0.0.0/16", "172.30.0.0i/16", "172.30.0.0i/16"),
    ],
)
def test_parse_cluster_network_invalid(cidr, service, match):
    cn = ClusterNetwork(
        cluster_networks=[ClusterNetworkEntry(cidr=cidr)], service_network=service
    )
    with pytest.raises(ValueError) as exc:
        parse_cluster_network(cn)
    assert match in str(exc.value)


def test_parse_cluster_network_non_canonical_and_overrides():
    cn = ClusterNetwork(
        cluster_networks=[ClusterNetworkEntry(cidr="10.0.0.1/16", host_subnet_length=9)],
        service_network="172.30.5.0/16",
        plugin_name="redhat/openshift-ovs-subnet",
        vxlan_port=4790,
        mtu=1400,
    )
    parsed = parse_cluster_network(cn)
    assert parsed.cluster_networks[0].cluster_cidr == net("10.0.0.0/16")
    assert parsed.cluster_networks[0].host_subnet_length == 9
    assert parsed.service_network == net("172.30.0.0/16")
    assert parsed.plugin_name == "redhat/openshift-ovs-subnet"
    assert (parsed.vxlan_port, parsed.mtu) == (4790, 1400)


def test_cluster_network_list_contains():
    entries = [ParsedClusterNetworkEntry(net("10.128.0.0/14"), 9)]
    assert cluster_network_list_contains(entries, "10.129.2.3") == net("10.128.0.0/14")
    assert cluster_network_list_contains(entries, ipaddress.ip_address("10.129.2.3")) == net(
        "10.128.0.0/14"
    )
    assert cluster_network_list_contains(entries, "192.168.0.1") is None
    assert cluster_network_list_contains(entries, "bogus") is None


@pytest.mark.parametrize(
    "node_ip, message",
    [
        ("", "invalid node IP"),
        ("127.0.0.1", "invalid node IP"),
        ("not-an-ip", "failed to parse node IP"),
        ("10.128.3.4", "conflicts with cluster network 10.128.0.0/14"),
        ("172.30.0.9", "conflicts with service network 172.30.0.0/16"),
    ],
)
def test_validate_node_ip_errors(node_ip, message):
    info = pcn(["10.128.0.0/14"], "172.30.0.0/16")
    with pytest.raises(ValueError, match=message):
        info.validate_node_ip(node_ip)


def test_validate_node_ip_ok():
    info = pcn(["10.128.0.0/14"], "172.30.0.0/16")
    assert info.validate_node_ip("192.168.1.2") is None


def test_host_subnet_to_string():
    hs = HostSubnet(
        metadata=ObjectMeta(name="node1"),
        host="node1",
        host_ip="192.168.1.2",
        subnet="10.128.0.0/23",
    )
    assert (
        host_subnet_to_string(hs)
        == 'node1 (host: "node1", ip: "192.168.1.2", subnet: "10.128.0.0/23")'
    )


def test_cluster_network_to_string():
    cn = ClusterNetwork(
        metadata=ObjectMeta(name="default"),
        network="10.128.0.0/14",
        host_subnet_length=9,
        service_network="172.30.0.0/16",
        plugin_name="redhat/openshift-ovs-subnet",
    )
    assert cluster_network_to_string(cn) == (
        'default (network: "10.128.0.0/14", hostSubnetBits: 9, '
        'serviceNetwork: "172.30.0.0/16", pluginName: "redhat/openshift-ovs-subnet")'
    )


Addr = namedtuple("Addr", "family address netmask")

FAKE_ADDRS = {
    "lo": [Addr(socket.AF_INET, "127.0.0.1", "255.0.0.0")],
    "eth0": [
        Addr(socket.AF_INET, "192.168.1.5", "255.255.255.0"),
        Addr(socket.AF_INET6, "fe80::1", "ffff:ffff:ffff:ffff::"),
    ],
    "docker0": [Addr(socket.AF_INET, "172.17.0.1", "255.255.0.0")],
}


@mock.patch("psutil.net_if_addrs", return_value=FAKE_ADDRS)
def test_get_host_ip_networks(_mocked):
    nets, ips = get_host_ip_networks(["docker0"])
    assert nets == [net("192.168.1.0/24")]
    assert ips == [ipaddress.ip_address("192.168.1.5")]


@mock.patch("psutil.net_if_addrs", return_value=FAKE_ADDRS)
def test_get_host_ip_networks_skip_all(_mocked):
    assert get_host_ip_networks(["lo", "eth0", "docker0"]) == ([], [])


@mock.patch(
    "psutil.net_if_addrs",
    return_value={"eth0": [Addr(socket.AF_INET, "192.168.1.5", None)]},
)
def test_get_host_ip_networks_bad_address(_mocked):
    with pytest.raises(AggregateError) as exc:
        get_host_ip_networks([])
    assert len(exc.value.errors) == 1