"""Server listeners: a bound, listening (or bound UDP) socket and its lifecycle."""

from __future__ import annotations

import logging
import os
import shutil
import threading
from typing import Any

from reactornet.options import Options, TCPSocketOpt
from reactornet.polldata import PollAttachment, PollEventHandler
from reactornet.polldata import dup as _dup_fd
from reactornet.sockets import (
    SocketOption,
    UnsupportedProtocolError,
    tcp_socket,
    udp_socket,
    unix_socket,
)
from reactornet.sockopts import (
    set_no_delay,
    set_recv_buffer,
    set_reuse_addr,
    set_reuse_port,
    set_send_buffer,
)

logger = logging.getLogger(__name__)


def _remove_all(path: str) -> None:
    """Remove ``path`` and anything under it; a missing path is not an error."""
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        else:
            os.remove(path)
    except FileNotFoundError:
        pass


class Listener:
    """A socket a server accepts connections or datagrams on."""

    def __init__(self, network: str, address: str, sock_opts: list[SocketOption] | None = None) -> None:
        self.network = network
        self.address = address
        self.sock_opts: list[SocketOption] = list(sock_opts or [])
        self.fd = -1
        self.addr: Any = None
        self.poll_attachment: PollAttachment | None = None
        self._close_lock = threading.Lock()
        self._closed = False

    def pack_poll_attachment(self, handler: PollEventHandler) -> PollAttachment:
        """Bind the listener's descriptor to ``handler`` for the poller."""
        self.poll_attachment = PollAttachment(self.fd, handler)
        return self.poll_attachment

    def dup(self) -> int:
        """Return a close-on-exec duplicate of the listener's descriptor."""
        return _dup_fd(self.fd)

    def normalize(self) -> None:
        """Open the socket for ``network``; TCP and UDP names lose their version suffix."""
        if self.network in ("tcp", "tcp4", "tcp6"):
            self.fd, self.addr = tcp_socket(self.network, self.address, True, *self.sock_opts)
            self.network = "tcp"
        elif self.network in ("udp", "udp4", "udp6"):
            self.fd, self.addr = udp_socket(self.network, self.address, False, *self.sock_opts)
            self.network = "udp"
        elif self.network == "unix":
            _remove_all(self.address)
            self.fd, self.addr = unix_socket(self.network, self.address, True, *self.sock_opts)
        else:
            raise UnsupportedProtocolError()

    def close(self) -> None:
        """Close the socket and remove a Unix socket file; only the first call acts."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        if self.fd >= 0:
            try:
                os.close(self.fd)
            except OSError as exc:
                logger.error("close: %s", exc)
        if self.network == "unix":
            try:
                _remove_all(self.address)
            except OSError as exc:
                logger.error("%s", exc)

    def __enter__(self) -> Listener:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def init_listener(network: str, addr: str, options: Options) -> Listener:
    """Create and open a listener on ``addr`` with socket options taken from ``options``."""
    sock_opts: list[SocketOption] = []
    if options.reuse_port or network.startswith("udp"):
        sock_opts.append(SocketOption(set_reuse_port, 1))
    if options.reuse_addr:
        sock_opts.append(SocketOption(set_reuse_addr, 1))
    if options.tcp_no_delay == TCPSocketOpt.NO_DELAY and network.startswith("tcp"):
        sock_opts.append(SocketOption(set_no_delay, 1))
    if options.socket_recv_buffer > 0:
        sock_opts.append(SocketOption(set_recv_buffer, options.socket_recv_buffer))
    if options.socket_send_buffer > 0:
        sock_opts.append(SocketOption(set_send_buffer, options.socket_send_buffer))
    listener = Listener(network, addr, sock_opts)
    listener.normalize()
    return listener