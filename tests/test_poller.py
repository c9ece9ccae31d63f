import logging
import socket
import threading

import pytest

from reactornet.events import AcceptSocketError, ServerShutdown
from reactornet.polldata import PollAttachment
from reactornet.poller import Poller


def _shutdown(_arg):
    raise ServerShutdown()


@pytest.fixture
def poller():
    p = Poller()
    yield p
    p.close()


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    a.setblocking(False)
    b.setblocking(False)
    yield a, b
    a.close()
    b.close()


def test_urgent_tasks_run_before_normal_tasks(poller):
    results = []
    poller.trigger(results.append, "low")
    poller.urgent_trigger(results.append, "high")
    poller.trigger(_shutdown, None)
    with pytest.raises(ServerShutdown):
        poller.polling(lambda fd, ev: None)
    assert results == ["high", "low"]


def test_many_tasks_all_run_across_batches(poller):
    counter = []
    for i in range(600):
        poller.trigger(counter.append, i)
    poller.trigger(_shutdown, None)
    with pytest.raises(ServerShutdown):
        poller.polling(lambda fd, ev: None)
    assert counter == list(range(600))


def test_task_returning_shutdown_stops_polling(poller):
    poller.trigger(lambda _: ServerShutdown("done"), None)
    with pytest.raises(ServerShutdown, match="done"):
        poller.polling(lambda fd, ev: None)


def test_failing_task_is_logged_and_polling_continues(poller, caplog):
    ran = []

    def boom(_):
        raise ValueError("bad task")

    poller.trigger(boom, None)
    poller.trigger(ran.append, "after")
    poller.trigger(_shutdown, None)
    with caplog.at_level(logging.WARNING), pytest.raises(ServerShutdown):
        poller.polling(lambda fd, ev: None)
    assert ran == ["after"]
    assert "bad task" in caplog.text


def test_readable_socket_reaches_callback(poller, pair):
    a, b = pair
    b.send(b"ping")
    poller.add_read(PollAttachment(fd=a.fileno()))
    seen = []

    def callback(fd, ev):
        seen.append(fd)
        raise ServerShutdown()

    with pytest.raises(ServerShutdown):
        poller.polling(callback)
    assert seen == [a.fileno()]


def test_writable_socket_reaches_callback(poller, pair):
    a, _ = pair
    poller.add_write(PollAttachment(fd=a.fileno()))
    seen = []

    def callback(fd, ev):
        seen.append(fd)
        raise ServerShutdown()

    with pytest.raises(ServerShutdown):
        poller.polling(callback)
    assert seen == [a.fileno()]


def test_accept_error_from_callback_stops_polling(poller, pair):
    a, b = pair
    b.send(b"x")
    poller.add_read(PollAttachment(fd=a.fileno()))
    err = AcceptSocketError()

    def callback(fd, ev):
        raise err

    with pytest.raises(AcceptSocketError) as info:
        poller.polling(callback)
    assert info.value is err


def test_callback_error_is_logged_and_polling_continues(poller, pair, caplog):
    a, b = pair
    b.send(b"x")
    poller.add_read(PollAttachment(fd=a.fileno()))
    calls = []

    def callback(fd, ev):
        calls.append(fd)
        if len(calls) == 1:
            raise RuntimeError("flaky handler")
        raise ServerShutdown()

    with caplog.at_level(logging.WARNING), pytest.raises(ServerShutdown):
        poller.polling(callback)
    assert calls == [a.fileno(), a.fileno()]
    assert "flaky handler" in caplog.text


def test_mod_read_drops_writable_interest(poller, pair):
    a, _ = pair
    pa = PollAttachment(fd=a.fileno())
    poller.add_read_write(pa)
    poller.mod_read(pa)
    seen = []
    poller.trigger(_shutdown, None)
    with pytest.raises(ServerShutdown):
        poller.polling(lambda fd, ev: seen.append(fd))
    assert seen == []


def test_mod_read_write_restores_writable_interest(poller, pair):
    a, _ = pair
    pa = PollAttachment(fd=a.fileno())
    poller.add_read(pa)
    poller.mod_read_write(pa)
    seen = []

    def callback(fd, ev):
        seen.append(fd)
        raise ServerShutdown()

    with pytest.raises(ServerShutdown):
        poller.polling(callback)
    assert seen == [a.fileno()]


def test_trigger_from_another_thread_wakes_poller(poller):
    outcome = []
    results = []

    def run():
        try:
            poller.polling(lambda fd, ev: None)
        except ServerShutdown as exc:
            outcome.append(exc)

    worker = threading.Thread(target=run, daemon=True)
    worker.start()
    poller.trigger(results.append, 7)
    poller.trigger(_shutdown, None)
    worker.join(timeout=10)
    assert not worker.is_alive()
    assert results == [7]
    assert len(outcome) == 1
    assert str(outcome[0]) == "server is going to be shutdown"


def test_closed_poller_rejects_registration(pair):
    a, _ = pair
    with Poller() as p:
        p.add_read(PollAttachment(fd=a.fileno()))
    with pytest.raises(ValueError):
        p.add_read(PollAttachment(fd=a.fileno()))