import ipaddress
import os
import shutil
import socket
import tempfile

import pytest

from reactornet.listener import Listener, init_listener
from reactornet.options import Options, TCPSocketOpt
from reactornet.sockets import UnsupportedProtocolError


def _sockopt(fd, level, option):
    sock = socket.socket(fileno=os.dup(fd))
    try:
        return sock.getsockopt(level, option)
    finally:
        sock.close()


def _sockname(fd):
    sock = socket.socket(fileno=os.dup(fd))
    try:
        return sock.getsockname()
    finally:
        sock.close()


@pytest.fixture
def short_dir():
    path = tempfile.mkdtemp(prefix="rn", dir="/tmp")
    yield path
    shutil.rmtree(path, ignore_errors=True)


def test_tcp_listener_normalizes_network():
    ln = init_listener("tcp4", "127.0.0.1:0", Options())
    try:
        assert ln.network == "tcp"
        assert ln.addr.ip == ipaddress.ip_address("127.0.0.1")
        assert _sockname(ln.fd)[0] == "127.0.0.1"
        assert _sockopt(ln.fd, socket.SOL_SOCKET, socket.SO_ACCEPTCONN) != 0
    finally:
        ln.close()


def test_tcp_no_delay_follows_option():
    ln = init_listener("tcp", "127.0.0.1:0", Options())
    try:
        assert _sockopt(ln.fd, socket.IPPROTO_TCP, socket.TCP_NODELAY) != 0
    finally:
        ln.close()
    ln = init_listener("tcp", "127.0.0.1:0", Options(tcp_no_delay=TCPSocketOpt.DELAY))
    try:
        assert _sockopt(ln.fd, socket.IPPROTO_TCP, socket.TCP_NODELAY) == 0
    finally:
        ln.close()


def test_reuse_addr_and_recv_buffer_applied():
    opts = Options(reuse_addr=True, socket_recv_buffer=65536)
    ln = init_listener("tcp", "127.0.0.1:0", opts)
    try:
        assert _sockopt(ln.fd, socket.SOL_SOCKET, socket.SO_REUSEADDR) != 0
        assert _sockopt(ln.fd, socket.SOL_SOCKET, socket.SO_RCVBUF) >= 65536
    finally:
        ln.close()


def test_udp_listener():
    ln = init_listener("udp4", "127.0.0.1:0", Options())
    try:
        assert ln.network == "udp"
        assert _sockopt(ln.fd, socket.SOL_SOCKET, socket.SO_TYPE) == socket.SOCK_DGRAM
        assert _sockopt(ln.fd, socket.SOL_SOCKET, socket.SO_REUSEPORT) != 0
    finally:
        ln.close()


def test_unsupported_network_raises():
    with pytest.raises(UnsupportedProtocolError):
        init_listener("ip", "127.0.0.1:0", Options())


def test_unix_listener_replaces_stale_file_and_removes_on_close(short_dir):
    path = os.path.join(short_dir, "s.sock")
    with open(path, "w") as f:
        f.write("stale")
    ln = init_listener("unix", path, Options())
    assert ln.network == "unix"
    assert ln.addr.name == path
    assert _sockname(ln.fd) == path
    ln.close()
    assert not os.path.exists(path)


def test_close_is_idempotent_and_closes_fd():
    ln = init_listener("tcp", "127.0.0.1:0", Options())
    fd = ln.fd
    ln.close()
    ln.close()
    with pytest.raises(OSError):
        os.fstat(fd)


def test_context_manager_closes():
    with init_listener("tcp", "127.0.0.1:0", Options()) as ln:
        fd = ln.fd
        assert os.fstat(fd) is not None
    with pytest.raises(OSError):
        os.fstat(fd)


def test_dup_returns_new_non_inheritable_descriptor():
    ln = init_listener("tcp", "127.0.0.1:0", Options())
    try:
        new_fd = ln.dup()
        try:
            assert new_fd != ln.fd
            assert os.get_inheritable(new_fd) is False
            assert _sockname(new_fd) == _sockname(ln.fd)
        finally:
            os.close(new_fd)
    finally:
        ln.close()


def test_pack_poll_attachment():
    ln = Listener("tcp", "127.0.0.1:0", [])

    def handler(fd, ev):
        return None

    pa = ln.pack_poll_attachment(handler)
    assert pa.fd == ln.fd
    assert pa.callback is handler
    assert ln.poll_attachment is pa