# sdnnet

`sdnnet` holds the network bookkeeping that a software-defined cluster network needs. It
covers the cluster network objects, the checks made on them, and the DNS names used by egress
network policies.

## Modules

- **`sdnnet.api`**: plain dataclasses for the objects involved: `ObjectMeta`,
  `ClusterNetwork` and `ClusterNetworkEntry`, `HostSubnet` (with `deep_copy()`),
  `NetNamespace`, `EgressNetworkPolicy` with its `EgressNetworkPolicyRule` and
  `EgressNetworkPolicyPeer`, `Pod` and `Service`.
- **`sdnnet.errors`**: `FieldError` (built with `FieldError.invalid(...)` or
  `FieldError.required(...)`) and `AggregateError`. An `AggregateError` holds several errors
  in its `errors` list and can be iterated. `AggregateError.from_errors(...)` returns `None`
  when the list is empty.
- **`sdnnet.validation`**: `validate_cluster_network`, `validate_host_subnet` and
  `validate_host_subnet_egress` raise an `AggregateError` that lists every problem found.
  Smaller helpers are `parse_cidr_mask` (it rejects a CIDR that is not in canonical form),
  `validate_cidr_v4`, `validate_ipv4`, `cidrs_overlap` and `validate_object_meta`.
- **`sdnnet.common`**: `parse_cluster_network` turns a `ClusterNetwork` into a
  `ParsedClusterNetwork`. The default VXLAN port is 4789 and the default MTU is 1450. A
  non-canonical CIDR is masked to its network, and the change is logged. The parsed object
  offers three checks:
  - `validate_node_ip` raises `ValueError` for a node IP that is unusable or lies inside a
    managed network.
  - `check_host_networks` raises `AggregateError` for host networks that overlap a managed
    network.
  - `check_cluster_objects` raises `AggregateError` for host subnets, pods and services that
    lie outside the configured ranges. It stops after ten problems and adds a
    "too many errors... truncating" entry.

  The module also provides `generate_default_gateway`, `get_host_ip_networks` (non-loopback
  IPv4 addresses of the host's interfaces, read through psutil), `cluster_network_list_contains`,
  `host_subnet_to_string` and `cluster_network_to_string`.
- **`sdnnet.informers`**: `informer_funcs` builds `ResourceEventHandlers` from an add/update
  callback and a delete callback. The add/update callback receives an `EventType`. Deletions
  that arrive wrapped in a `DeletedFinalStateUnknown` are unwrapped, and objects of the wrong
  type are logged and dropped.
- **`sdnnet.dns`**: `DNS` reads the `nameserver` lines of a `resolv.conf`-style file. It
  resolves names over UDP and queries A records, AAAA records, or both, depending on the
  address families enabled. For each name it caches a `DNSValue` holding the addresses, the
  normalised TTL and the next query time. `add` and `update` raise `LookupError` when a name
  cannot be resolved. `get_next_query_time` returns `(time, name)` or `None`. The module also
  provides `fixup_nameservers`, `normalize_ttl`, `ips_equal` and `remove_duplicate_ips`.
- **`sdnnet.fake_dns`**: `FakeDNS` stands in for `DNS` and answers refreshes from a list of
  scripted `FakeDNSReply` entries. Use it for exercising `EgressDNS` without a network.
- **`sdnnet.egress_dns`**: `EgressDNS` keeps track of which policies use which DNS names. Its
  `sync()` loop refreshes names as they fall due, and it runs until `stop()` is called.
  Whenever the addresses of a name change, it puts a list of `EgressDNSUpdate(uid, namespace)`
  on the `updates` queue. `get_ips` and `get_net_cidrs` return what is currently known for a
  name. `new_egress_dns(ipv4, ipv6)` builds one that resolves through `/etc/resolv.conf`.

## Installation

```
pip install sdnnet
```

To install with the test dependencies:

```
pip install "sdnnet[test]"
```

## Examples

Validate and parse a cluster network:

```python
from sdnnet.api import ClusterNetwork, ClusterNetworkEntry, ObjectMeta
from sdnnet.common import parse_cluster_network
from sdnnet.validation import validate_cluster_network

cn = ClusterNetwork(
    metadata=ObjectMeta(name="default"),
    network="10.128.0.0/14",
    host_subnet_length=9,
    cluster_networks=[ClusterNetworkEntry(cidr="10.128.0.0/14", host_subnet_length=9)],
    service_network="172.30.0.0/16",
)
validate_cluster_network(cn)          # raises AggregateError if invalid
parsed = parse_cluster_network(cn)
parsed.validate_node_ip("192.168.1.10")   # raises ValueError on conflict
```

Follow the DNS names of egress policies:

```python
import threading

from sdnnet.api import (
    EgressNetworkPolicy, EgressNetworkPolicyPeer, EgressNetworkPolicyRule, ObjectMeta,
)
from sdnnet.egress_dns import new_egress_dns

egress_dns = new_egress_dns(ipv4=True, ipv6=False)
egress_dns.add(EgressNetworkPolicy(
    metadata=ObjectMeta(name="enp", namespace="demo", uid="demo-enp"),
    egress=[EgressNetworkPolicyRule(to=EgressNetworkPolicyPeer(dns_name="example.com"))],
))
threading.Thread(target=egress_dns.sync, daemon=True).start()

changed = egress_dns.updates.get()    # list of EgressDNSUpdate
egress_dns.stop()
```

## What it does not do

- The package has no command-line program and no daemon. It does not connect to a cluster
  API server: `informer_funcs` only builds handlers, and you feed them the objects yourself.
- It does not assign egress IPs to nodes and does not balance them across nodes. It only
  validates the egress fields of a `HostSubnet`.
- It sets up no interfaces, routes or firewall rules on the host.

## Running the tests

```
pytest
```