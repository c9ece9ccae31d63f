# reactornet

Low-level pieces for building an event-driven network server on POSIX
systems: an epoll/kqueue poller with wake-up task queues, helpers for creating
non-blocking TCP, UDP and Unix-domain sockets, socket-option setters, a
listener wrapper, server options and connection load balancers.

The package has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Overview

| Module | What it holds |
| --- | --- |
| `reactornet.toolkit` | `is_power_of_two`, `ceil_to_power_of_two`, `floor_to_power_of_two`, `bytes_to_string`, `string_to_bytes` |
| `reactornet.queue` | `Task` and the thread-safe FIFO `TaskQueue` |
| `reactornet.vectored` | `writev` and `readv` over lists of buffers |
| `reactornet.events` | `EventList`, `ServerShutdown`, `AcceptSocketError` and the poller sizing constants |
| `reactornet.polldata` | `PollAttachment` and close-on-exec `dup` |
| `reactornet.poller` | `Poller`, the event loop core |
| `reactornet.sockopts` | `set_no_delay`, `set_recv_buffer`, `set_send_buffer`, `set_reuse_port`, `set_reuse_addr`, `set_ipv6_only`, `set_keep_alive`, `max_listener_backlog`, `sys_socket` |
| `reactornet.sockets` | `tcp_socket`, `udp_socket`, `unix_socket`, `get_tcp_sock_addr`, `get_udp_sock_addr`, `get_unix_sock_addr`, `sockaddr_to_tcp_or_unix_addr`, `sockaddr_to_udp_addr`, `ip6_zone_to_string`, the `TCPAddr`/`UDPAddr`/`UnixAddr` address types, `SocketOption` and the `Unsupported*ProtocolError` exceptions |
| `reactornet.load_balancer` | `LoadBalancing`, `RoundRobinLoadBalancer`, `LeastConnectionsLoadBalancer`, `SourceAddrHashLoadBalancer`, `new_load_balancer` |
| `reactornet.options` | `Options`, `TCPSocketOpt`, `load_options` and the `with_*` option functions |
| `reactornet.listener` | `Listener` and `init_listener` |

## Example

Build options, open a listening socket and watch it with a poller:

```python
from reactornet.options import load_options, with_reuse_addr, with_tcp_no_delay, TCPSocketOpt
from reactornet.listener import init_listener
from reactornet.poller import Poller
from reactornet.events import ServerShutdown

opts = load_options(with_reuse_addr(True), with_tcp_no_delay(TCPSocketOpt.NO_DELAY))
listener = init_listener("tcp", "127.0.0.1:9000", opts)

def on_event(fd, events):
    print("event on", fd, events)

with Poller() as poller:
    poller.add_read(listener.pack_poll_attachment(on_event))

    def stop(_arg):
        raise ServerShutdown()

    poller.urgent_trigger(stop, None)
    try:
        poller.polling(on_event)
    except ServerShutdown:
        pass

listener.close()
```

`Poller` uses epoll where it is available and kqueue otherwise; it raises
`OSError` when neither exists. Every event is passed to the single callback
given to `polling` as `callback(fd, events)`; on kqueue, end-of-file and error
events are reported with the filter value `-0xD`.

Tasks queued with `Poller.urgent_trigger` all run at the next wake-up;
tasks queued with `Poller.trigger` run in bounded batches
(`MAX_ASYNC_TASKS_AT_ONE_TIME` per wake-up) so that network events are never
starved. A task or callback that raises `ServerShutdown` (or, for callbacks,
`AcceptSocketError`) ends `polling` by propagating that exception; any other
exception is logged and the loop carries on. `polling` returns only by raising.

## Sockets and listeners

`tcp_socket`, `udp_socket` and `unix_socket` return `(fd, address)` for a
non-blocking, close-on-exec socket. TCP and Unix sockets listen when
`passive` is true (with the backlog from `max_listener_backlog`) and connect
otherwise; UDP sockets are bound, broadcast-enabled and connected only when
asked. A `tcp6`/`udp6` network sets `IPV6_V6ONLY`.

`init_listener(network, addr, options)` opens a `Listener` for `tcp`,
`tcp4`, `tcp6`, `udp`, `udp4`, `udp6` or `unix`, adding `SO_REUSEPORT` (when
asked, and always for UDP), `SO_REUSEADDR`, `TCP_NODELAY` and buffer sizes
from `Options`. Any other network raises `UnsupportedProtocolError`. For
`unix`, an existing file at the path is removed first and again on `close`.

## Load balancing

```python
from reactornet.load_balancer import LoadBalancing, new_load_balancer

lb = new_load_balancer(LoadBalancing.ROUND_ROBIN)
```

Event loops registered with `register` get an `idx` attribute holding their
position; `next(addr)` picks one by round robin, by the smallest
`load_conn()` value, or by the CRC-32 of `str(addr)`. Calling `next` with no
event loops registered raises `IndexError`.

## Options

`load_options(*options)` starts from the defaults of `Options` and applies
each `with_*` function in order; `with_options` replaces every field at once.
`Options` is a plain record: apart from the socket settings read by
`init_listener`, nothing in this package acts on its fields.

## What this package does not do

It does not provide a complete server or client. There is no accept loop,
no connection object, no read/write buffering, no codec and no ticker; the
`Options` fields for those (`codec`, `ticker`, `multicore`,
`num_event_loop`, `read_buffer_cap`, `lock_os_thread`, `log_path`,
`log_level`, `logger`) are only stored. There is no command-line program.
Only POSIX systems are supported.