"""An in-memory stand-in for the DNS cache that replays scripted replies."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from .dns import DNSValue
from .validation import IPAddress


@dataclass
class FakeDNSReply:
    """One scripted reply: which name it answers, when, and how slowly."""

    name: str
    ips: list[IPAddress] = field(default_factory=list)
    # Not honoured; kept so replies read like real records.
    ttl: float = 0.0
    has_been_updated: bool = False
    # Epoch time at which this reply becomes due.
    next_query_time: float = 0.0
    # Seconds an update answered by this reply takes.
    delay: float = 0.0


class FakeDNS:
    """A DNS cache whose refreshes are answered from a list of scripted replies.

    Each reply is consumed once, in list order per name, and every consumed
    reply counts as a change of addresses. Calls to add, delete and
    set_updating resolve nothing; they are only recorded, in order.
    """

    def __init__(self, dns_replies: list[FakeDNSReply]) -> None:
        self._lock = threading.Lock()
        self.dns_replies = dns_replies
        self.calls: list[tuple[str, str]] = []

    def _record(self, operation: str, name: str) -> None:
        with self._lock:
            self.calls.append((operation, name))

    def add(self, name: str) -> None:
        """Record the name without resolving it."""
        self._record("add", name)

    def size(self) -> int:
        """Always zero: the fake keeps no cache."""
        return 0

    def get(self, name: str) -> DNSValue:
        """Always an empty value."""
        return DNSValue()

    def delete(self, name: str) -> None:
        """Record the deletion."""
        self._record("delete", name)

    def set_updating(self, name: str) -> None:
        """Record that the name is being refreshed."""
        self._record("set_updating", name)

    def update(self, name: str) -> bool:
        """Consume the next unused reply for name, waiting its delay.

        Returns True if a reply was consumed, False if none was left.
        """
        delay = 0.0
        changed = False
        with self._lock:
            for reply in self.dns_replies:
                if reply.name == name and not reply.has_been_updated:
                    reply.has_been_updated = True
                    delay = reply.delay
                    changed = True
                    break
        time.sleep(delay)
        return changed

    def get_next_query_time(self) -> tuple[float, str] | None:
        """The due time and name of the first unused reply, or None if all are used."""
        with self._lock:
            for reply in self.dns_replies:
                if not reply.has_been_updated:
                    return reply.next_query_time, reply.name
        return None