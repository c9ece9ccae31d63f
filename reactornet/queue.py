"""Tasks and a thread-safe FIFO queue of pending tasks."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Optional

TaskFunc = Callable[[Any], Optional[BaseException]]


@dataclass
class Task:
    """A callable together with the single argument it is run with."""

    run: Callable[[Any], Any] | None = None
    arg: Any = None

    def execute(self) -> Any:
        """Run the task's function with its argument and return the result."""
        if self.run is None:
            raise RuntimeError("task has no function to run")
        return self.run(self.arg)


class TaskQueue:
    """A FIFO of tasks that may be shared between threads."""

    def __init__(self) -> None:
        self._items: deque[Task] = deque()
        self._lock = threading.Lock()

    def enqueue(self, task: Task) -> None:
        """Put ``task`` at the tail of the queue."""
        with self._lock:
            self._items.append(task)

    def dequeue(self) -> Task | None:
        """Remove and return the task at the head, or ``None`` if empty."""
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def is_empty(self) -> bool:
        """Report whether the queue holds no tasks."""
        return not self._items

    def __len__(self) -> int:
        return len(self._items)