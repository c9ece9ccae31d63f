"""Strategies for picking the event loop that serves a new connection."""

from __future__ import annotations

import enum
import zlib
from abc import ABC, abstractmethod
from typing import Any, Callable

from reactornet.toolkit import string_to_bytes


class LoadBalancing(enum.IntEnum):
    """The algorithm used to assign new connections to event loops."""

    # Hand out event loops in turn.
    ROUND_ROBIN = 0
    # Pick the event loop serving the fewest active connections.
    LEAST_CONNECTIONS = 1
    # Pick an event loop by hashing the remote address.
    SOURCE_ADDR_HASH = 2


class LoadBalancer(ABC):
    """An ordered set of event loops and a rule for choosing among them.

    Registered event loops get an ``idx`` attribute holding their position.
    """

    def __init__(self) -> None:
        self._event_loops: list[Any] = []

    def register(self, el: Any) -> None:
        """Add ``el`` to the set and record its position in ``el.idx``."""
        el.idx = len(self._event_loops)
        self._event_loops.append(el)

    @abstractmethod
    def next(self, addr: Any) -> Any:
        """Return the event loop that should serve a connection from ``addr``."""

    def iterate(self, f: Callable[[int, Any], bool]) -> None:
        """Call ``f(index, event_loop)`` in order until it returns a false value."""
        for i, el in enumerate(self._event_loops):
            if not f(i, el):
                break

    def __len__(self) -> int:
        return len(self._event_loops)

    def _require_loops(self) -> None:
        if not self._event_loops:
            raise IndexError("no event loops registered")


class RoundRobinLoadBalancer(LoadBalancer):
    """Hands out the registered event loops one after another, cyclically."""

    def __init__(self) -> None:
        super().__init__()
        self._next_index = 0

    def next(self, addr: Any = None) -> Any:
        """Return the next event loop in turn; ``addr`` is ignored."""
        self._require_loops()
        el = self._event_loops[self._next_index]
        self._next_index += 1
        if self._next_index >= len(self._event_loops):
            self._next_index = 0
        return el


class LeastConnectionsLoadBalancer(LoadBalancer):
    """Picks the event loop whose ``load_conn()`` is smallest; ties go to the earliest."""

    def next(self, addr: Any = None) -> Any:
        """Return the least loaded event loop; ``addr`` is ignored."""
        self._require_loops()
        return min(self._event_loops, key=lambda el: el.load_conn())


class SourceAddrHashLoadBalancer(LoadBalancer):
    """Picks an event loop from the CRC-32 of the remote address's text form."""

    def hash(self, s: str) -> int:
        """Return the IEEE CRC-32 of ``s`` as a non-negative integer."""
        return zlib.crc32(string_to_bytes(s))

    def next(self, addr: Any) -> Any:
        """Return the event loop chosen by hashing ``str(addr)``."""
        self._require_loops()
        return self._event_loops[self.hash(str(addr)) % len(self._event_loops)]


def new_load_balancer(lb: LoadBalancing) -> LoadBalancer:
    """Create an empty load balancer implementing the algorithm ``lb``."""
    lb = LoadBalancing(lb)
    if lb is LoadBalancing.LEAST_CONNECTIONS:
        return LeastConnectionsLoadBalancer()
    if lb is LoadBalancing.SOURCE_ADDR_HASH:
        return SourceAddrHashLoadBalancer()
    return RoundRobinLoadBalancer()