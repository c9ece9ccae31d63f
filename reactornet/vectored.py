"""Scatter/gather I/O on raw file descriptors."""

from __future__ import annotations

import os
from typing import Sequence


def writev(fd: int, buffers: Sequence[bytes | bytearray | memoryview]) -> int:
    """Write all ``buffers`` to ``fd`` in one call; return the number of bytes written."""
    if not buffers:
        return 0
    return os.writev(fd, list(buffers))


def readv(fd: int, buffers: Sequence[bytearray | memoryview]) -> int:
    """Fill the writable ``buffers`` in order from ``fd``; return the bytes read."""
    if not buffers:
        return 0
    return os.readv(fd, list(buffers))