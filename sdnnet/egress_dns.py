"""Tracks the DNS names used by egress network policies and reports address changes."""

from __future__ import annotations

import contextlib
import ipaddress
import logging
import queue
import threading
import time
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from .api import EgressNetworkPolicy
from .dns import DNS
from .validation import IPAddress, IPNetwork

logger = logging.getLogger(__name__)

RESOLVER_CONFIG_FILE = "/etc/resolv.conf"
_IDLE_WAIT = 30 * 60.0
_SLOW_OPERATION_THRESHOLD = 0.1

_ADDED = "added"
_RESPONSE = "response"
_STOP = "stop"


@contextlib.contextmanager
def _log_if_slow(description: str, threshold: float) -> Iterator[None]:
    """Log a warning when the enclosed block takes longer than threshold seconds."""
    start = time.monotonic()
    try:
        yield
    finally:
        elapsed = time.monotonic() - start
        if elapsed > threshold:
            logger.warning("%s took %.3fs", description, elapsed)


@dataclass(frozen=True)
class EgressDNSUpdate:
    """A policy whose DNS names now resolve differently."""

    uid: str
    namespace: str


class EgressDNS:
    """Keeps DNS names of egress policies resolved and reports policies to resync.

    Lists of EgressDNSUpdate are put on the ``updates`` queue whenever a name's
    addresses change. ``sync`` runs the refresh loop until ``stop`` is called.
    """

    def __init__(self, dns: Any) -> None:
        self._lock = threading.Lock()
        self._dns = dns
        self._dns_names_to_policies: dict[str, set[str]] = {}
        self._namespaces: dict[str, str] = {}
        self._events: queue.Queue[tuple[str, Any]] = queue.Queue()
        self.updates: queue.Queue[list[EgressDNSUpdate]] = queue.Queue()

    def add(self, policy: EgressNetworkPolicy) -> None:
        """Start tracking the DNS names of a policy."""
        with self._lock:
            for rule in policy.egress:
                name = rule.to.dns_name
                if not name:
                    continue
                uids = self._dns_names_to_policies.get(name)
                if uids is None:
                    self._dns_names_to_policies[name] = {policy.uid}
                    try:
                        self._dns.add(name)
                    except LookupError as exc:
                        logger.error("%s", exc)
                    self._signal_added()
                else:
                    uids.add(policy.uid)
            self._namespaces[policy.uid] = policy.namespace

    def delete(self, policy: EgressNetworkPolicy) -> None:
        """Stop tracking a policy, forgetting names no other policy uses."""
        with self._lock:
            for rule in policy.egress:
                name = rule.to.dns_name
                if not name:
                    continue
                uids = self._dns_names_to_policies.get(name)
                if uids is None:
                    continue
                uids.discard(policy.uid)
                if not uids:
                    self._dns.delete(name)
                    del self._dns_names_to_policies[name]
            self._namespaces.pop(policy.uid, None)

    def sync(self) -> None:
        """Refresh names as they fall due until stop() is called."""
        duration = 0.0
        while True:
            upcoming = self._dns.get_next_query_time()
            if upcoming is None:
                duration = _IDLE_WAIT
            else:
                when, name = upcoming
                now = time.time()
                if when > now:
                    duration = when - now
                else:
                    try:
                        self._dns.set_updating(name)
                    except KeyError as exc:
                        logger.error("%s", exc)
                    threading.Thread(target=self._update, args=(name,), daemon=True).start()

            try:
                kind, payload = self._events.get(timeout=max(duration, 0.0))
            except queue.Empty:
                continue
            if kind == _STOP:
                return
            if kind == _RESPONSE:
                self._handle_dns_response(payload)

    def get_ips(self, dns_name: str) -> list[IPAddress]:
        """The addresses currently known for a name."""
        with self._lock:
            return self._dns.get(dns_name).ips

    def get_net_cidrs(self, dns_name: str) -> list[IPNetwork]:
        """The addresses known for a name, each as a single-host network."""
        return [
            ipaddress.ip_network((ip, ip.max_prefixlen)) for ip in self.get_ips(dns_name)
        ]

    def stop(self) -> None:
        """Make the sync loop return."""
        logger.debug("Stopping EgressDNS")
        self._events.put((_STOP, None))

    def _update(self, name: str) -> None:
        try:
            changed = self._dns.update(name)
        except LookupError as exc:
            logger.error('Unable to update ip addreses for "%s": %s', name, exc)
            changed = False
        with _log_if_slow(
            f'Update egressDNS response channel for "{name}"', _SLOW_OPERATION_THRESHOLD
        ):
            self._events.put((_RESPONSE, (name, changed)))

    def _handle_dns_response(self, response: tuple[str, bool]) -> None:
        name, changed = response
        with _log_if_slow(
            f'Handle DNS response notification for "{name}"', _SLOW_OPERATION_THRESHOLD
        ):
            if changed:
                self.updates.put(self._get_egress_dns_updates(name))

    def _get_egress_dns_updates(self, dns_name: str) -> list[EgressDNSUpdate]:
        with self._lock:
            uids = self._dns_names_to_policies.get(dns_name)
            if uids is None:
                logger.debug("Didn't find any entry for dns name: %s in the dns map.", dns_name)
                return []
            return [EgressDNSUpdate(uid, self._namespaces.get(uid, "")) for uid in uids]

    def _signal_added(self) -> None:
        # Only a wake-up hint; a pending event already wakes the loop.
        if self._events.empty():
            self._events.put((_ADDED, None))


def new_egress_dns(ipv4: bool, ipv6: bool) -> EgressDNS:
    """An EgressDNS resolving through the system resolver configuration."""
    try:
        dns = DNS(RESOLVER_CONFIG_FILE, ipv4, ipv6)
    except ValueError as exc:
        logger.error("%s", exc)
        raise
    return EgressDNS(dns)