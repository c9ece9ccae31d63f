"""Configuration of servers and clients, built from option functions."""

from __future__ import annotations

import dataclasses
import enum
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable

from reactornet.load_balancer import LoadBalancing


class TCPSocketOpt(enum.IntEnum):
    """Whether TCP_NODELAY is set on TCP sockets."""

    NO_DELAY = 0
    DELAY = 1


@dataclass
class Options:
    """Settings for the networking engine.

    ``multicore``, ``num_event_loop``, ``lb``, ``reuse_addr`` and ``reuse_port``
    concern servers only; the rest apply to both servers and clients.
    ``num_event_loop`` overrides ``multicore`` when set. ``read_buffer_cap`` is
    rounded up to a power of two by its users. ``logger`` overrides
    ``log_path``/``log_level``.
    """

    multicore: bool = False
    num_event_loop: int = 0
    lb: LoadBalancing = LoadBalancing.ROUND_ROBIN
    reuse_addr: bool = False
    reuse_port: bool = False
    read_buffer_cap: int = 0
    lock_os_thread: bool = False
    ticker: bool = False
    tcp_keep_alive: timedelta = field(default_factory=timedelta)
    tcp_no_delay: TCPSocketOpt = TCPSocketOpt.NO_DELAY
    socket_recv_buffer: int = 0
    socket_send_buffer: int = 0
    codec: Any = None
    log_path: str = ""
    log_level: int = logging.INFO
    logger: Any = None


Option = Callable[[Options], None]


def load_options(*options: Option) -> Options:
    """Return default options with every given option applied in order."""
    opts = Options()
    for option in options:
        option(opts)
    return opts


def _setter(name: str, value: Any) -> Option:
    def apply(opts: Options) -> None:
        setattr(opts, name, value)

    return apply


def with_options(options: Options) -> Option:
    """Replace every setting with those of ``options``."""

    def apply(opts: Options) -> None:
        for f in dataclasses.fields(options):
            setattr(opts, f.name, getattr(options, f.name))

    return apply


def with_multicore(multicore: bool) -> Option:
    """Run one event loop per usable CPU."""
    return _setter("multicore", multicore)


def with_lock_os_thread(lock_os_thread: bool) -> Option:
    """Pin each event loop to its own OS thread."""
    return _setter("lock_os_thread", lock_os_thread)


def with_read_buffer_cap(read_buffer_cap: int) -> Option:
    """Set the most bytes read from a peer per readable event."""
    return _setter("read_buffer_cap", read_buffer_cap)


def with_load_balancing(lb: LoadBalancing) -> Option:
    """Set the load-balancing algorithm."""
    return _setter("lb", lb)


def with_num_event_loop(num_event_loop: int) -> Option:
    """Set the number of event loops."""
    return _setter("num_event_loop", num_event_loop)


def with_reuse_port(reuse_port: bool) -> Option:
    """Set SO_REUSEPORT on listeners."""
    return _setter("reuse_port", reuse_port)


def with_reuse_addr(reuse_addr: bool) -> Option:
    """Set SO_REUSEADDR on listeners."""
    return _setter("reuse_addr", reuse_addr)


def with_tcp_keep_alive(tcp_keep_alive: timedelta) -> Option:
    """Set the TCP keep-alive period."""
    return _setter("tcp_keep_alive", tcp_keep_alive)


def with_tcp_no_delay(tcp_no_delay: TCPSocketOpt) -> Option:
    """Enable or disable TCP_NODELAY."""
    return _setter("tcp_no_delay", tcp_no_delay)


def with_socket_recv_buffer(recv_buf: int) -> Option:
    """Set the socket receive buffer size in bytes."""
    return _setter("socket_recv_buffer", recv_buf)


def with_socket_send_buffer(send_buf: int) -> Option:
    """Set the socket send buffer size in bytes."""
    return _setter("socket_send_buffer", send_buf)


def with_ticker(ticker: bool) -> Option:
    """Turn the ticker on or off."""
    return _setter("ticker", ticker)


def with_codec(codec: Any) -> Option:
    """Set the codec that frames the TCP stream."""
    return _setter("codec", codec)


def with_log_path(file_name: str) -> Option:
    """Set the file logs are written to."""
    return _setter("log_path", file_name)


def with_log_level(lvl: int) -> Option:
    """Set the logging level."""
    return _setter("log_level", lvl)


def with_logger(logger: Any) -> Option:
    """Set a custom logger."""
    return _setter("logger", logger)