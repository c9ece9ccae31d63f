"""Per-descriptor poller attachments and close-on-exec descriptor duplication."""

from __future__ import annotations

import errno
import os
from dataclasses import dataclass
from typing import Any, Callable, Optional

try:
    import fcntl
except ImportError:  # non-POSIX platforms
    fcntl = None  # type: ignore[assignment]

PollEventHandler = Callable[[int, int], Optional[Any]]

_try_dup_cloexec = fcntl is not None and hasattr(fcntl, "F_DUPFD_CLOEXEC")


@dataclass
class PollAttachment:
    """A file descriptor and the handler the poller calls for its events."""

    fd: int = 0
    callback: PollEventHandler | None = None


def dup(fd: int) -> int:
    """Duplicate ``fd`` and mark the copy close-on-exec; raise OSError on failure."""
    global _try_dup_cloexec
    if _try_dup_cloexec:
        try:
            return fcntl.fcntl(fd, fcntl.F_DUPFD_CLOEXEC, 0)
        except OSError as exc:
            if exc.errno not in (errno.EINVAL, errno.ENOSYS):
                raise
            # Kernel lacks F_DUPFD_CLOEXEC: use the portable path from now on.
            _try_dup_cloexec = False
    new_fd = os.dup(fd)
    os.set_inheritable(new_fd, False)
    return new_fd