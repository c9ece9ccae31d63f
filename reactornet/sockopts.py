"""Socket options, listener backlog discovery and non-blocking socket creation."""

from __future__ import annotations

import errno
import os
import socket
import sys
from contextlib import contextmanager
from typing import Iterator

_DARWIN = sys.platform == "darwin"

# Where the kernel publishes the maximum accept-queue length; absent outside Linux.
_SOMAXCONN_PATH = "/proc/sys/net/core/somaxconn"

# The kernel stores the backlog in 16 bits; larger values would wrap.
_MAX_BACKLOG = (1 << 16) - 1

# macOS names the idle-time option TCP_KEEPALIVE.
_TCP_KEEPALIVE_DARWIN = getattr(socket, "TCP_KEEPALIVE", 0x10)


@contextmanager
def _socket_for(fd: int) -> Iterator[socket.socket]:
    """Yield a socket object sharing ``fd``'s underlying socket, leaving ``fd`` open."""
    dup_fd = os.dup(fd)
    try:
        sock = socket.socket(fileno=dup_fd)
    except BaseException:
        os.close(dup_fd)
        raise
    with sock:
        yield sock


def _set_int(fd: int, level: int, option: int, value: int) -> None:
    with _socket_for(fd) as sock:
        sock.setsockopt(level, option, value)


def set_no_delay(fd: int, no_delay: int) -> None:
    """Set TCP_NODELAY; non-zero disables Nagle's algorithm so data is sent at once."""
    _set_int(fd, socket.IPPROTO_TCP, socket.TCP_NODELAY, no_delay)


def set_recv_buffer(fd: int, size: int) -> None:
    """Set the size of the kernel receive buffer (SO_RCVBUF)."""
    _set_int(fd, socket.SOL_SOCKET, socket.SO_RCVBUF, size)


def set_send_buffer(fd: int, size: int) -> None:
    """Set the size of the kernel send buffer (SO_SNDBUF)."""
    _set_int(fd, socket.SOL_SOCKET, socket.SO_SNDBUF, size)


def set_reuse_port(fd: int, reuse_port: int) -> None:
    """Set SO_REUSEPORT; raise OSError where the platform lacks it."""
    option = getattr(socket, "SO_REUSEPORT", None)
    if option is None:
        raise OSError(errno.ENOPROTOOPT, "SO_REUSEPORT is not supported")
    _set_int(fd, socket.SOL_SOCKET, option, reuse_port)


def set_reuse_addr(fd: int, reuse_addr: int) -> None:
    """Set SO_REUSEADDR."""
    _set_int(fd, socket.SOL_SOCKET, socket.SO_REUSEADDR, reuse_addr)


def set_ipv6_only(fd: int, ipv6only: int) -> None:
    """Restrict an IPv6 socket to IPv6 traffic (non-zero) or allow IPv4 too (zero)."""
    _set_int(fd, socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, ipv6only)


def set_keep_alive(fd: int, secs: int) -> None:
    """Turn on TCP keep-alive, probing after ``secs`` idle seconds every ``secs`` seconds."""
    if secs <= 0:
        raise ValueError("invalid time duration")
    with _socket_for(fd) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        interval = getattr(socket, "TCP_KEEPINTVL", None)
        if _DARWIN:
            if interval is not None:
                try:
                    sock.setsockopt(socket.IPPROTO_TCP, interval, secs)
                except OSError as exc:
                    # Older macOS releases do not know this option.
                    if exc.errno != errno.ENOPROTOOPT:
                        raise
            sock.setsockopt(socket.IPPROTO_TCP, _TCP_KEEPALIVE_DARWIN, secs)
            return
        if interval is None or not hasattr(socket, "TCP_KEEPIDLE"):
            raise OSError(errno.ENOPROTOOPT, "TCP keep-alive tuning is not supported")
        sock.setsockopt(socket.IPPROTO_TCP, interval, secs)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, secs)


def max_listener_backlog() -> int:
    """Return the largest listen backlog the system allows, capped at 65535.

    Falls back to ``socket.SOMAXCONN`` when the system value cannot be read.
    """
    try:
        with open(_SOMAXCONN_PATH, encoding="ascii", errors="replace") as f:
            line = f.readline()
    except OSError:
        return socket.SOMAXCONN
    if not line.endswith("\n"):
        return socket.SOMAXCONN
    fields = line.split()
    if not fields or "_" in fields[0]:
        return socket.SOMAXCONN
    try:
        n = int(fields[0])
    except ValueError:
        return socket.SOMAXCONN
    if n == 0:
        return socket.SOMAXCONN
    return min(n, _MAX_BACKLOG)


def sys_socket(family: int, sotype: int, proto: int) -> int:
    """Create a non-blocking, close-on-exec socket and return its file descriptor."""
    sock = socket.socket(family, sotype, proto)
    try:
        sock.setblocking(False)
        os.set_inheritable(sock.fileno(), False)
    except BaseException:
        sock.close()
        raise
    return sock.detach()