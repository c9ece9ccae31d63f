import ipaddress

import pytest

from reactornet.load_balancer import (
    LeastConnectionsLoadBalancer,
    LoadBalancing,
    RoundRobinLoadBalancer,
    SourceAddrHashLoadBalancer,
    new_load_balancer,
)
from reactornet.sockets import TCPAddr


class FakeLoop:
    def __init__(self, conns=0):
        self.conns = conns
        self.idx = None

    def load_conn(self):
        return self.conns


def _filled(lb, loops):
    for el in loops:
        lb.register(el)
    return lb


def test_register_assigns_indices_and_length():
    loops = [FakeLoop() for _ in range(3)]
    lb = _filled(RoundRobinLoadBalancer(), loops)
    assert [el.idx for el in loops] == [0, 1, 2]
    assert len(lb) == 3


def test_round_robin_cycles():
    loops = [FakeLoop() for _ in range(3)]
    lb = _filled(RoundRobinLoadBalancer(), loops)
    picked = [lb.next(None) for _ in range(7)]
    assert picked == loops + loops + loops[:1]


def test_least_connections_picks_minimum():
    loops = [FakeLoop(5), FakeLoop(2), FakeLoop(7)]
    lb = _filled(LeastConnectionsLoadBalancer(), loops)
    assert lb.next(None) is loops[1]
    loops[2].conns = 0
    assert lb.next(None) is loops[2]


def test_least_connections_tie_goes_to_first():
    loops = [FakeLoop(1), FakeLoop(1), FakeLoop(1)]
    lb = _filled(LeastConnectionsLoadBalancer(), loops)
    assert lb.next(None) is loops[0]


def test_hash_matches_crc32_check_value():
    assert SourceAddrHashLoadBalancer().hash("123456789") == 0xCBF43926


def test_source_hash_is_stable_and_in_range():
    loops = [FakeLoop() for _ in range(4)]
    lb = _filled(SourceAddrHashLoadBalancer(), loops)
    addr = TCPAddr(ipaddress.ip_address("127.0.0.1"), 8080)
    first = lb.next(addr)
    assert first in loops
    assert all(lb.next(addr) is first for _ in range(5))
    assert first is loops[lb.hash(str(addr)) % len(lb)]


def test_iterate_stops_when_callback_returns_false():
    loops = [FakeLoop() for _ in range(5)]
    lb = _filled(RoundRobinLoadBalancer(), loops)
    seen = []

    def visit(i, el):
        seen.append((i, el))
        return i < 1

    lb.iterate(visit)
    assert seen == [(0, loops[0]), (1, loops[1])]
    assert lb.next(None) is loops[0]


def test_iterate_visits_all_when_true():
    loops = [FakeLoop() for _ in range(3)]
    lb = _filled(LeastConnectionsLoadBalancer(), loops)
    seen = []
    lb.iterate(lambda i, el: seen.append(el) or True)
    assert seen == loops


@pytest.mark.parametrize(
    "kind, cls",
    [
        (LoadBalancing.ROUND_ROBIN, RoundRobinLoadBalancer),
        (LoadBalancing.LEAST_CONNECTIONS, LeastConnectionsLoadBalancer),
        (LoadBalancing.SOURCE_ADDR_HASH, SourceAddrHashLoadBalancer),
    ],
)
def test_new_load_balancer_factory(kind, cls):
    lb = new_load_balancer(kind)
    assert type(lb) is cls
    assert len(lb) == 0


@pytest.mark.parametrize(
    "cls", [RoundRobinLoadBalancer, LeastConnectionsLoadBalancer, SourceAddrHashLoadBalancer]
)
def test_next_on_empty_raises(cls):
    with pytest.raises(IndexError):
        cls().next(TCPAddr(ipaddress.ip_address("127.0.0.1"), 1))