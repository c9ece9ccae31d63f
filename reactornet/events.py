"""Poller event constants and the resizable event-list sizing policy."""

from __future__ import annotations

import select
import sys

_BSD = sys.platform.startswith(("darwin", "freebsd", "dragonfly"))

if _BSD:
    INIT_POLL_EVENTS_CAP = 64
    MAX_POLL_EVENTS_CAP = 512
    MIN_POLL_EVENTS_CAP = 16
    MAX_ASYNC_TASKS_AT_ONE_TIME = 128
    EV_FILTER_WRITE = select.KQ_FILTER_WRITE
    EV_FILTER_READ = select.KQ_FILTER_READ
    # Exceptional events that are neither read nor write, e.g. a closed socket.
    EV_FILTER_SOCK = -0xD
else:
    INIT_POLL_EVENTS_CAP = 128
    MAX_POLL_EVENTS_CAP = 1024
    MIN_POLL_EVENTS_CAP = 32
    MAX_ASYNC_TASKS_AT_ONE_TIME = 256
    if hasattr(select, "epoll"):
        # Exceptional events that are neither read nor write, e.g. a closed socket.
        ERR_EVENTS = select.EPOLLERR | select.EPOLLHUP | select.EPOLLRDHUP
        OUT_EVENTS = ERR_EVENTS | select.EPOLLOUT
        IN_EVENTS = ERR_EVENTS | select.EPOLLIN | select.EPOLLPRI


class ServerShutdown(Exception):
    """Raised by a callback or task to make the poller stop."""

    def __init__(self, message: str = "server is going to be shutdown") -> None:
        super().__init__(message)


class AcceptSocketError(Exception):
    """Raised when accepting a new connection fails; stops the poller."""

    def __init__(self, message: str = "accept a new connection error") -> None:
        super().__init__(message)


class EventList:
    """Tracks how many events one poll call may return, growing and shrinking by halves."""

    def __init__(
        self,
        size: int = INIT_POLL_EVENTS_CAP,
        min_size: int = MIN_POLL_EVENTS_CAP,
        max_size: int = MAX_POLL_EVENTS_CAP,
    ) -> None:
        self.size = size
        self.min_size = min_size
        self.max_size = max_size

    def expand(self) -> None:
        """Double the size unless that would pass the maximum."""
        new_size = self.size << 1
        if new_size <= self.max_size:
            self.size = new_size

    def shrink(self) -> None:
        """Halve the size unless that would drop below the minimum."""
        new_size = self.size >> 1
        if new_size >= self.min_size:
            self.size = new_size

    def __len__(self) -> int:
        return self.size

    def __repr__(self) -> str:
        return f"EventList(size={self.size}, min_size={self.min_size}, max_size={self.max_size})"