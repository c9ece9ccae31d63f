"""Address resolution and creation of listening or connected TCP, UDP and Unix sockets."""

from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass
from typing import Callable, Union

from reactornet.sockopts import max_listener_backlog, set_ipv6_only, sys_socket

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_TCP_NETWORKS = ("tcp", "tcp4", "tcp6")
_UDP_NETWORKS = ("udp", "udp4", "udp6")
_UNIX_NETWORKS = ("unix", "unixgram", "unixpacket")

_LISTENER_BACKLOG_MAX_SIZE = max_listener_backlog()


class UnsupportedProtocolError(ValueError):
    """The network name is not one this package can serve."""

    def __init__(self, message: str = "only unix, tcp/tcp4/tcp6, udp/udp4/udp6 are supported") -> None:
        super().__init__(message)


class UnsupportedTCPProtocolError(UnsupportedProtocolError):
    """The TCP network name is not tcp, tcp4 or tcp6."""

    def __init__(self, message: str = "only tcp/tcp4/tcp6 are supported") -> None:
        super().__init__(message)


class UnsupportedUDPProtocolError(UnsupportedProtocolError):
    """The UDP network name is not udp, udp4 or udp6."""

    def __init__(self, message: str = "only udp/udp4/udp6 are supported") -> None:
        super().__init__(message)


class UnsupportedUDSProtocolError(UnsupportedProtocolError):
    """The Unix-domain network name is not unix."""

    def __init__(self, message: str = "only unix is supported") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class SocketOption:
    """A socket option setter and the value it is applied with."""

    set_sock_opt: Callable[[int, int], object]
    opt: int

    def apply(self, fd: int) -> None:
        """Apply this option to the socket behind ``fd``."""
        self.set_sock_opt(fd, self.opt)


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass(frozen=True)
class _InetAddr:
    ip: IPAddress | None = None
    port: int = 0
    zone: str = ""

    def __str__(self) -> str:
        host = "" if self.ip is None else str(self.ip)
        if self.zone:
            host = f"{host}%{self.zone}"
        return _join_host_port(host, self.port)


@dataclass(frozen=True)
class TCPAddr(_InetAddr):
    """The address of a TCP endpoint."""

    @property
    def network(self) -> str:
        return "tcp"


@dataclass(frozen=True)
class UDPAddr(_InetAddr):
    """The address of a UDP endpoint."""

    @property
    def network(self) -> str:
        return "udp"


@dataclass(frozen=True)
class UnixAddr:
    """The address of a Unix-domain socket."""

    name: str
    net: str = "unix"

    @property
    def network(self) -> str:
        return self.net

    def __str__(self) -> str:
        return self.name


def _split_host_port(hostport: str) -> tuple[str, str]:
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address {hostport!r}")
        rest = hostport[end + 1:]
        if not rest:
            raise ValueError(f"missing port in address {hostport!r}")
        if rest[0] != ":":
            raise ValueError(f"unexpected characters after ']' in address {hostport!r}")
        host, port = hostport[1:end], rest[1:]
        if "[" in host or "]" in host:
            raise ValueError(f"unexpected brackets in address {hostport!r}")
        return host, port
    i = hostport.rfind(":")
    if i < 0:
        raise ValueError(f"missing port in address {hostport!r}")
    host = hostport[:i]
    if ":" in host:
        raise ValueError(f"too many colons in address {hostport!r}")
    if "[" in host or "]" in hostport:
        raise ValueError(f"unexpected brackets in address {hostport!r}")
    return host, hostport[i + 1:]


def _parse_port(port: str, kind: str) -> int:
    if port == "":
        return 0
    if port.isascii() and port.isdigit():
        value = int(port)
        if value > 0xFFFF:
            raise ValueError(f"invalid port {port!r}")
        return value
    try:
        return socket.getservbyname(port, kind)
    except OSError as exc:
        raise ValueError(f"unknown port {port!r}") from exc


def _is_v4(ip: IPAddress) -> bool:
    return ip.version == 4 or ip.ipv4_mapped is not None  # type: ignore[union-attr]


def _suits(proto: str, ip: IPAddress) -> bool:
    if proto.endswith("4"):
        return _is_v4(ip)
    if proto.endswith("6"):
        return not _is_v4(ip)
    return True


def _lookup(proto: str, kind: str, host: str) -> IPAddress:
    family = socket.AF_UNSPEC
    if proto.endswith("4"):
        family = socket.AF_INET
    elif proto.endswith("6"):
        family = socket.AF_INET6
    socktype = socket.SOCK_STREAM if kind == "tcp" else socket.SOCK_DGRAM
    infos = socket.getaddrinfo(host, None, family, socktype)
    candidates = [
        ipaddress.ip_address(str(info[4][0]).split("%", 1)[0]) for info in infos
    ]
    candidates = [ip for ip in candidates if _suits(proto, ip)]
    if not candidates:
        raise ValueError(f"no suitable address found for {host!r}")
    # A plain "tcp"/"udp" network prefers an IPv4 address when one exists.
    return next((ip for ip in candidates if _is_v4(ip)), candidates[0])


def _resolve(proto: str, addr: str, kind: str) -> tuple[IPAddress | None, int, str]:
    host, port_text = _split_host_port(addr)
    port = _parse_port(port_text, kind)
    if not host:
        return None, port, ""
    literal, zone = host, ""
    if ":" in host and "%" in host:
        literal, zone = host.rsplit("%", 1)
    try:
        ip = ipaddress.ip_address(literal)
    except ValueError:
        return _lookup(proto, kind, host), port, ""
    if not _suits(proto, ip):
        raise ValueError(f"no suitable address found for {host!r}")
    return ip, port, zone


def _determine_proto(kind: str, proto: str, ip: IPAddress | None, networks: tuple[str, ...],
                     unsupported: type[UnsupportedProtocolError]) -> str:
    if ip is not None:
        return kind + ("4" if _is_v4(ip) else "6")
    if proto in networks:
        return proto
    raise unsupported()


def _inet_sock_addr(proto, addr, kind, networks, addr_cls, unsupported):
    if proto not in networks:
        raise UnsupportedProtocolError(f"unknown network {proto!r}")
    ip, port, zone = _resolve(proto, addr, kind)
    net_addr = addr_cls(ip, port, zone)
    version = _determine_proto(kind, proto, ip, networks, unsupported)

    if version == kind + "4":
        if ip is None:
            host = "0.0.0.0"
        elif ip.version == 6:
            host = str(ip.ipv4_mapped)
        else:
            host = str(ip)
        return (host, port), socket.AF_INET, net_addr, False

    if version in (kind + "6", kind):
        ipv6only = version == kind + "6"
        if ip is None:
            host = "::"
        elif ip.version == 4:
            host = f"::ffff:{ip}"
        else:
            host = ip.compressed
        zone_id = socket.if_nametoindex(zone) if zone else 0
        return (host, port, 0, zone_id), socket.AF_INET6, net_addr, ipv6only

    raise UnsupportedProtocolError()


def get_tcp_sock_addr(proto: str, addr: str):
    """Resolve ``addr`` for ``proto``; return ``(sockaddr, family, TCPAddr, ipv6only)``."""
    return _inet_sock_addr(proto, addr, "tcp", _TCP_NETWORKS, TCPAddr, UnsupportedTCPProtocolError)


def get_udp_sock_addr(proto: str, addr: str):
    """Resolve ``addr`` for ``proto``; return ``(sockaddr, family, UDPAddr, ipv6only)``."""
    return _inet_sock_addr(proto, addr, "udp", _UDP_NETWORKS, UDPAddr, UnsupportedUDPProtocolError)


def get_unix_sock_addr(proto: str, addr: str):
    """Resolve a Unix socket path; return ``(sockaddr, family, UnixAddr)``."""
    if proto not in _UNIX_NETWORKS:
        raise UnsupportedProtocolError(f"unknown network {proto!r}")
    unix_addr = UnixAddr(addr, proto)
    if unix_addr.network != "unix":
        raise UnsupportedUDSProtocolError()
    return unix_addr.name, socket.AF_UNIX, unix_addr


def _open(family: int, sotype: int, proto: int) -> socket.socket:
    fd = sys_socket(family, sotype, proto)
    try:
        return socket.socket(family, sotype, proto, fileno=fd)
    except BaseException:
        import os

        os.close(fd)
        raise


def _apply_options(fd: int, sock_opts: tuple[SocketOption, ...]) -> None:
    for sock_opt in sock_opts:
        sock_opt.apply(fd)


def tcp_socket(proto: str, addr: str, passive: bool, *sock_opts: SocketOption):
    """Create a non-blocking TCP socket bound to ``addr``.

    A passive socket listens with the largest allowed backlog; otherwise it connects
    to ``addr``. Return ``(fd, TCPAddr)``.
    """
    sa, family, net_addr, ipv6only = get_tcp_sock_addr(proto, addr)
    sock = _open(family, socket.SOCK_STREAM, socket.IPPROTO_TCP)
    try:
        fd = sock.fileno()
        if family == socket.AF_INET6 and ipv6only:
            set_ipv6_only(fd, 1)
        _apply_options(fd, sock_opts)
        sock.bind(sa)
        if passive:
            sock.listen(_LISTENER_BACKLOG_MAX_SIZE)
        else:
            sock.connect(sa)
    except BaseException:
        sock.close()
        raise
    return sock.detach(), net_addr


def udp_socket(proto: str, addr: str, connect: bool, *sock_opts: SocketOption):
    """Create a non-blocking, broadcast-enabled UDP socket bound to ``addr``.

    When ``connect`` is true the socket is also connected to ``addr``.
    Return ``(fd, UDPAddr)``.
    """
    sa, family, net_addr, ipv6only = get_udp_sock_addr(proto, addr)
    sock = _open(family, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        fd = sock.fileno()
        if family == socket.AF_INET6 and ipv6only:
            set_ipv6_only(fd, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        _apply_options(fd, sock_opts)
        sock.bind(sa)
        if connect:
            sock.connect(sa)
    except BaseException:
        sock.close()
        raise
    return sock.detach(), net_addr


def unix_socket(proto: str, addr: str, passive: bool, *sock_opts: SocketOption):
    """Create a non-blocking Unix stream socket bound to the path ``addr``.

    A passive socket listens; otherwise it connects. Return ``(fd, UnixAddr)``.
    """
    sa, family, net_addr = get_unix_sock_addr(proto, addr)
    sock = _open(family, socket.SOCK_STREAM, 0)
    try:
        _apply_options(sock.fileno(), sock_opts)
        sock.bind(sa)
        if passive:
            sock.listen(_LISTENER_BACKLOG_MAX_SIZE)
        else:
            sock.connect(sa)
    except BaseException:
        sock.close()
        raise
    return sock.detach(), net_addr


def ip6_zone_to_string(zone: int) -> str:
    """Return the interface name for an IPv6 zone index, its decimal form, or "" for 0."""
    if zone == 0:
        return ""
    try:
        return socket.if_indextoname(zone)
    except (OSError, OverflowError, ValueError):
        return str(zone)


def _inet_parts(sa) -> tuple[IPAddress, int, str] | None:
    if not isinstance(sa, tuple):
        return None
    if len(sa) == 2:
        try:
            ip = ipaddress.ip_address(str(sa[0]))
        except ValueError:
            return None
        if ip.version != 4:
            return None
        return ip, int(sa[1]), ""
    if len(sa) == 4:
        try:
            ip = ipaddress.ip_address(str(sa[0]).split("%", 1)[0])
        except ValueError:
            return None
        if ip.version != 6:
            return None
        return ip, int(sa[1]), ip6_zone_to_string(int(sa[3]))
    return None


def sockaddr_to_tcp_or_unix_addr(sa):
    """Convert a socket-module address to a TCPAddr or UnixAddr, or ``None``."""
    if isinstance(sa, (str, bytes)):
        name = sa.decode("utf-8", "surrogateescape") if isinstance(sa, bytes) else sa
        return UnixAddr(name, "unix")
    parts = _inet_parts(sa)
    return None if parts is None else TCPAddr(*parts)


def sockaddr_to_udp_addr(sa):
    """Convert a socket-module address to a UDPAddr, or ``None``."""
    parts = _inet_parts(sa)
    return None if parts is None else UDPAddr(*parts)