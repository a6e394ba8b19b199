"""A small cache of DNS names resolved to IP addresses, refreshed by TTL."""

from __future__ import annotations

import ipaddress
import logging
import threading
import time
from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field

import dns.message
import dns.query
import dns.rcode
import dns.rdatatype

from .validation import IPAddress

logger = logging.getLogger(__name__)

# TTL in seconds used when a record carries an invalid or zero TTL.
DEFAULT_TTL = 30
DEFAULT_PORT = "53"
DEFAULT_TIMEOUT = 5.0
_MAP_TRACE_THRESHOLD = 0.1
_QUERY_TRACE_THRESHOLD = 0.35


@contextmanager
def _trace(label: str, threshold: float) -> Iterator[None]:
    """Log the operation if it takes longer than threshold seconds."""
    start = time.monotonic()
    try:
        yield
    finally:
        elapsed = time.monotonic() - start
        if elapsed > threshold:
            logger.info("Trace %s took %.3fs", label, elapsed)


@dataclass
class DNSValue:
    """What is known about one DNS name."""

    ips: list[IPAddress] = field(default_factory=list)
    # Normalized TTL, in seconds.
    ttl: float = 0
    # Epoch time of the next refresh, or None if never resolved.
    next_query_time: float | None = None
    # Set while a refresh is in flight, so get_next_query_time skips it.
    updating: bool = False


@dataclass(frozen=True)
class DNSResponseNotification:
    """Result of refreshing one name."""

    name: str
    changed: bool


def _read_nameservers(path: str) -> list[str]:
    try:
        with open(path, encoding="utf-8") as handle:
            lines = handle.readlines()
    except OSError as exc:
        raise ValueError(f"cannot initialize the resolver: {exc}") from exc
    servers = []
    for line in lines:
        fields = line.split()
        if not fields or fields[0][0] in "#;":
            continue
        if fields[0] == "nameserver" and len(fields) > 1:
            servers.append(fields[1])
    return servers


def _split_host_port(hostport: str) -> tuple[str, str]:
    """Split "host:port" or "[host]:port"; raise ValueError if there is no port."""
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address {hostport}")
        rest = hostport[end + 1 :]
        if not rest.startswith(":"):
            raise ValueError(f"missing port in address {hostport}")
        return hostport[1:end], rest[1:]
    host, sep, port = hostport.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {hostport}")
    if ":" in host:
        raise ValueError(f"too many colons in address {hostport}")
    return host, port


def _join_host_port(host: str, port: str) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _is_ipv6_string(text: str) -> bool:
    try:
        ip = ipaddress.ip_address(text)
    except ValueError:
        return False
    return isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is None


def fixup_nameservers(
    nameservers: Iterable[str], default_port: str, ipv4: bool, ipv6: bool
) -> list[str]:
    """Give each nameserver a port and drop those of an unsupported family.

    If no nameserver matches a supported family, all of them are kept.
    """
    good: list[str] = []
    bad: list[str] = []
    for server in nameservers:
        try:
            ip_string, _ = _split_host_port(server)
        except ValueError:
            ip_string = server
            server = _join_host_port(server, default_port)
        supported = ipv6 if _is_ipv6_string(ip_string) else ipv4
        (good if supported else bad).append(server)
    return good if good else bad


def normalize_ttl(ttl: float) -> float:
    """Clamp a TTL in seconds: short ones stay, long ones become 30 minutes, others 30 s."""
    if ttl < 30:
        return ttl
    if ttl >= 30 * 60:
        return 30 * 60
    return 30


def ips_equal(old_ips: Iterable[IPAddress], new_ips: Iterable[IPAddress]) -> bool:
    """Whether the two address lists hold the same addresses, in any order."""
    old_list = list(old_ips)
    new_list = list(new_ips)
    if len(old_list) != len(new_list):
        return False
    return all(old in new_list for old in old_list)


def remove_duplicate_ips(ips: Iterable[IPAddress | str]) -> list[IPAddress]:
    """Return the distinct addresses, ordered by their text form."""
    unique = []
    for text in sorted({str(ip) for ip in ips}):
        try:
            unique.append(ipaddress.ip_address(text))
        except ValueError:
            continue
    return unique


class DNS:
    """Resolves names through the configured nameservers and caches the answers."""

    def __init__(self, resolver_config_file: str, ipv4: bool, ipv6: bool) -> None:
        if not ipv4 and not ipv6:
            raise ValueError("must support at least one of IPv4 or IPv6")
        servers = _read_nameservers(resolver_config_file)
        self._lock = threading.Lock()
        self._map: dict[str, DNSValue] = {}
        self.nameservers = fixup_nameservers(servers, DEFAULT_PORT, ipv4, ipv6)
        self.ipv4 = ipv4
        self.ipv6 = ipv6
        # Per-query timeout in seconds.
        self.timeout = DEFAULT_TIMEOUT

    def size(self) -> int:
        """Number of names being tracked."""
        with self._lock:
            return len(self._map)

    def get(self, name: str) -> DNSValue:
        """A copy of what is known about name; empty if it is not tracked."""
        with self._lock:
            res = self._map.get(name)
            if res is None:
                return DNSValue()
            return DNSValue(ips=list(res.ips), ttl=res.ttl, next_query_time=res.next_query_time)

    def add(self, name: str) -> None:
        """Resolve name and start tracking it; raise LookupError if it cannot be resolved."""
        ips, ttl = self._get_ips_and_min_ttl(name)
        with _trace(f'Update resolved DNS record "{name}"', _MAP_TRACE_THRESHOLD):
            with self._lock:
                self._map[name] = DNSValue(updating=True)
                self._update_value(name, ips, ttl)

    def delete(self, name: str) -> None:
        """Stop tracking name."""
        with _trace(f'Delete DNS record "{name}"', _MAP_TRACE_THRESHOLD):
            with self._lock:
                self._map.pop(name, None)

    def set_updating(self, name: str) -> None:
        """Mark name as being refreshed; raise KeyError if it is not tracked."""
        with _trace(f'SetUpdating DNS record "{name}"', _MAP_TRACE_THRESHOLD):
            with self._lock:
                res = self._map.get(name)
                if res is None:
                    raise KeyError(f'DNS value not found in dnsMap for domain: "{name}"')
                res.updating = True

    def update(self, name: str) -> bool:
        """Re-resolve name; return whether its addresses changed.

        On failure the next query time is still pushed back and LookupError is raised.
        """
        try:
            ips, ttl = self._get_ips_and_min_ttl(name)
        except LookupError:
            with self._lock:
                self._update_next_query_time(name)
            raise
        with _trace(f'Update resolved DNS record "{name}"', _MAP_TRACE_THRESHOLD):
            with self._lock:
                return self._update_value(name, ips, ttl)

    def get_next_query_time(self) -> tuple[float, str] | None:
        """The earliest refresh time and its name, ignoring names being refreshed."""
        with self._lock:
            best: tuple[float, str] | None = None
            for name, res in self._map.items():
                if res.updating or res.next_query_time is None:
                    continue
                if best is None or res.next_query_time < best[0]:
                    best = (res.next_query_time, name)
            return best

    def _update_next_query_time(self, name: str) -> None:
        res = self._map.get(name)
        if res is None:
            logger.error('DNS value not found in dnsMap for domain: "%s"', name)
            return
        res.next_query_time = time.time() + res.ttl
        res.updating = False

    def _update_value(self, name: str, ips: list[IPAddress], ttl: float) -> bool:
        res = self._map.get(name)
        if res is None:
            logger.error('DNS value not found in dnsMap for domain: "%s"', name)
            return False
        changed = not ips_equal(res.ips, ips)
        res.ips = ips
        res.ttl = normalize_ttl(ttl)
        res.next_query_time = time.time() + res.ttl
        res.updating = False
        return changed

    def _do_one_query(
        self, server: str, domain: str, rtype: dns.rdatatype.RdataType
    ) -> tuple[list[IPAddress], int, Exception | None]:
        ips: list[IPAddress] = []
        ttl = DEFAULT_TTL
        try:
            host, port = _split_host_port(server)
            query = dns.message.make_query(domain, rtype)
            response = dns.query.udp(query, host, timeout=self.timeout, port=int(port))
        except Exception as exc:  # any transport or parse failure counts as no answer
            return ips, ttl, exc
        if response.rcode() != dns.rcode.NOERROR:
            return ips, ttl, ValueError(f"failed to get a valid answer: {response}")

        for rrset in response.answer:
            if 0 < rrset.ttl < ttl:
                ttl = rrset.ttl
            if rrset.rdtype != rtype or rtype not in (dns.rdatatype.A, dns.rdatatype.AAAA):
                continue
            ips.extend(ipaddress.ip_address(rdata.address) for rdata in rrset)
        return ips, ttl, None

    def _query_server(
        self, nameserver: str, domain: str
    ) -> tuple[list[IPAddress], int, Exception | None]:
        if self.ipv4 and not self.ipv6:
            return self._do_one_query(nameserver, domain, dns.rdatatype.A)
        if self.ipv6 and not self.ipv4:
            return self._do_one_query(nameserver, domain, dns.rdatatype.AAAA)

        with ThreadPoolExecutor(max_workers=2) as pool:
            v4 = pool.submit(self._do_one_query, nameserver, domain, dns.rdatatype.A)
            v6 = pool.submit(self._do_one_query, nameserver, domain, dns.rdatatype.AAAA)
            v4_ips, v4_ttl, v4_err = v4.result()
            v6_ips, v6_ttl, v6_err = v6.result()

        ips = v4_ips + v6_ips
        ttl = min(DEFAULT_TTL, v4_ttl, v6_ttl)
        if ips:
            return ips, ttl, None
        return ips, ttl, v4_err if v4_err is not None else v6_err

    def _get_ips_and_min_ttl(self, domain: str) -> tuple[list[IPAddress], int]:
        with _trace(f'DNS resolution for "{domain}"', _QUERY_TRACE_THRESHOLD):
            ips: list[IPAddress] = []
            ttl = DEFAULT_TTL
            err: Exception | None = None
            for server in self.nameservers:
                ips, ttl, err = self._query_server(server, domain)
                if ips:
                    break
            if not ips:
                if err is not None:
                    raise LookupError(f'IP address not found for domain "{domain}": {err}')
                raise LookupError(f'IP address not found for domain "{domain}"')
            return remove_duplicate_ips(ips), ttl