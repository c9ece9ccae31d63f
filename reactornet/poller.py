"""An epoll/kqueue poller that dispatches I/O events and queued tasks."""

from __future__ import annotations

import errno
import logging
import os
import select
import threading
from typing import Any, Callable

from reactornet.events import (
    MAX_ASYNC_TASKS_AT_ONE_TIME,
    AcceptSocketError,
    EventList,
    ServerShutdown,
)
from reactornet.polldata import PollAttachment
from reactornet.queue import Task, TaskQueue

logger = logging.getLogger(__name__)

EV_FILTER_SOCK = -0xD


def _outcome(fn: Callable[..., Any], *args: Any) -> BaseException | None:
    """Call ``fn``; return the exception it raised or returned, else ``None``."""
    try:
        result = fn(*args)
    except Exception as exc:  # noqa: BLE001 - every failure is classified by the caller
        return exc
    if isinstance(result, BaseException):
        return result
    return None


class _Waker:
    """A non-blocking descriptor that becomes readable when woken."""

    def __init__(self) -> None:
        if hasattr(os, "eventfd"):
            self.fd = os.eventfd(0, os.EFD_NONBLOCK | os.EFD_CLOEXEC)
            self._write_fd: int | None = None
        else:
            self.fd, self._write_fd = os.pipe()
            os.set_blocking(self.fd, False)
            os.set_blocking(self._write_fd, False)

    def wake(self) -> None:
        if self._write_fd is None:
            while True:
                try:
                    os.eventfd_write(self.fd, 1)
                    return
                except BlockingIOError:
                    continue
        try:
            os.write(self._write_fd, b"\x01")
        except BlockingIOError:
            pass  # the pipe is full, so a wake-up is already pending

    def drain(self) -> None:
        if self._write_fd is None:
            try:
                os.eventfd_read(self.fd)
            except BlockingIOError:
                pass
            return
        while True:
            try:
                if not os.read(self.fd, 4096):
                    return
            except BlockingIOError:
                return

    def close(self) -> None:
        try:
            os.close(self.fd)
        finally:
            if self._write_fd is not None:
                os.close(self._write_fd)


class _EpollBackend:
    def __init__(self) -> None:
        self._ep = select.epoll()
        self._read = select.EPOLLPRI | select.EPOLLIN
        self._write = select.EPOLLOUT

    def add_read_write(self, fd: int) -> None:
        self._ep.register(fd, self._read | self._write)

    def add_read(self, fd: int) -> None:
        self._ep.register(fd, self._read)

    def add_write(self, fd: int) -> None:
        self._ep.register(fd, self._write)

    def mod_read(self, fd: int) -> None:
        self._ep.modify(fd, self._read)

    def mod_read_write(self, fd: int) -> None:
        self._ep.modify(fd, self._read | self._write)

    def delete(self, fd: int) -> None:
        self._ep.unregister(fd)

    def wait(self, max_events: int, block: bool) -> list[tuple[int, int]]:
        return self._ep.poll(-1 if block else 0, max_events)

    def close(self) -> None:
        self._ep.close()


class _KqueueBackend:
    def __init__(self) -> None:
        self._kq = select.kqueue()

    def _change(self, fd: int, filters: tuple[int, ...], flags: int) -> None:
        self._kq.control([select.kevent(fd, f, flags) for f in filters], 0, 0)

    def add_read_write(self, fd: int) -> None:
        self._change(fd, (select.KQ_FILTER_READ, select.KQ_FILTER_WRITE), select.KQ_EV_ADD)

    def add_read(self, fd: int) -> None:
        self._change(fd, (select.KQ_FILTER_READ,), select.KQ_EV_ADD)

    def add_write(self, fd: int) -> None:
        self._change(fd, (select.KQ_FILTER_WRITE,), select.KQ_EV_ADD)

    def mod_read(self, fd: int) -> None:
        self._change(fd, (select.KQ_FILTER_WRITE,), select.KQ_EV_DELETE)

    def mod_read_write(self, fd: int) -> None:
        self._change(fd, (select.KQ_FILTER_WRITE,), select.KQ_EV_ADD)

    def delete(self, fd: int) -> None:
        """Closing the descriptor removes its kevents, so nothing is done here."""

    def wait(self, max_events: int, block: bool) -> list[tuple[int, int]]:
        ready = self._kq.control(None, max_events, None if block else 0)
        broken = select.KQ_EV_EOF | select.KQ_EV_ERROR
        return [
            (ev.ident, EV_FILTER_SOCK if ev.flags & broken else ev.filter)
            for ev in ready
        ]

    def close(self) -> None:
        self._kq.close()


class Poller:
    """Watches file descriptors and runs tasks handed over from other threads."""

    def __init__(self) -> None:
        if hasattr(select, "epoll"):
            self._backend: _EpollBackend | _KqueueBackend = _EpollBackend()
        elif hasattr(select, "kqueue"):
            self._backend = _KqueueBackend()
        else:
            raise OSError(errno.ENOSYS, "neither epoll nor kqueue is available")
        try:
            self._waker = _Waker()
        except OSError:
            self._backend.close()
            raise
        try:
            self._backend.add_read(self._waker.fd)
        except OSError:
            self._backend.close()
            self._waker.close()
            raise
        self._closed = False
        self._wake_lock = threading.Lock()
        self._wake_pending = False
        self._tasks = TaskQueue()
        self._urgent_tasks = TaskQueue()

    def close(self) -> None:
        """Release the poller's descriptors; later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        try:
            self._backend.close()
        finally:
            self._waker.close()

    def __enter__(self) -> Poller:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _wake(self) -> None:
        with self._wake_lock:
            if self._wake_pending:
                return
            self._wake_pending = True
        self._waker.wake()

    def urgent_trigger(self, fn: Callable[[Any], Any], arg: Any) -> None:
        """Queue ``fn(arg)`` with high priority and wake the poller."""
        self._urgent_tasks.enqueue(Task(fn, arg))
        self._wake()

    def trigger(self, fn: Callable[[Any], Any], arg: Any) -> None:
        """Queue ``fn(arg)`` with low priority and wake the poller."""
        self._tasks.enqueue(Task(fn, arg))
        self._wake()

    @staticmethod
    def _run_task(task: Task) -> None:
        err = _outcome(task.execute)
        if err is None:
            return
        if isinstance(err, ServerShutdown):
            raise err
        logger.warning("error occurs in user-defined function, %s", err)

    def _run_tasks(self) -> None:
        while (task := self._urgent_tasks.dequeue()) is not None:
            self._run_task(task)
        for _ in range(MAX_ASYNC_TASKS_AT_ONE_TIME):
            task = self._tasks.dequeue()
            if task is None:
                break
            self._run_task(task)
        with self._wake_lock:
            self._wake_pending = False
        if not self._tasks.is_empty() or not self._urgent_tasks.is_empty():
            self._wake()

    def polling(self, callback: Callable[[int, int], Any]) -> None:
        """Block, dispatching events to ``callback(fd, events)`` and running queued tasks.

        Returns only by raising: ``ServerShutdown`` or ``AcceptSocketError`` from a
        callback, ``ServerShutdown`` from a task, or ``OSError`` from the wait itself.
        Other failures are logged and polling goes on.
        """
        events = EventList()
        block = True
        while True:
            try:
                ready = self._backend.wait(events.size, block)
            except OSError as exc:
                logger.error("error occurs in poller: %s", exc)
                raise
            n = len(ready)
            if n == 0:
                block = True
                continue
            block = False

            woken = False
            for fd, ev in ready:
                if fd == self._waker.fd:
                    woken = True
                    self._waker.drain()
                    continue
                err = _outcome(callback, fd, ev)
                if err is None:
                    continue
                if isinstance(err, (AcceptSocketError, ServerShutdown)):
                    raise err
                logger.warning("error occurs in event-loop: %s", err)

            if woken:
                self._run_tasks()

            if n == events.size:
                events.expand()
            elif n < events.size >> 1:
                events.shrink()

    def add_read_write(self, pa: PollAttachment) -> None:
        """Watch ``pa.fd`` for readable and writable events."""
        self._backend.add_read_write(pa.fd)

    def add_read(self, pa: PollAttachment) -> None:
        """Watch ``pa.fd`` for readable events."""
        self._backend.add_read(pa.fd)

    def add_write(self, pa: PollAttachment) -> None:
        """Watch ``pa.fd`` for writable events."""
        self._backend.add_write(pa.fd)

    def mod_read(self, pa: PollAttachment) -> None:
        """Watch an already registered ``pa.fd`` for readable events only."""
        self._backend.mod_read(pa.fd)

    def mod_read_write(self, pa: PollAttachment) -> None:
        """Watch an already registered ``pa.fd`` for readable and writable events."""
        self._backend.mod_read_write(pa.fd)

    def delete(self, fd: int) -> None:
        """Stop watching ``fd``."""
        self._backend.delete(fd)