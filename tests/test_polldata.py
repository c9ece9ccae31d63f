import os

import pytest

from reactornet.polldata import PollAttachment, dup


@pytest.fixture
def pipe():
    r, w = os.pipe()
    yield r, w
    for fd in (r, w):
        try:
            os.close(fd)
        except OSError:
            pass


def test_dup_returns_distinct_descriptor(pipe):
    r, _ = pipe
    new_fd = dup(r)
    try:
        assert new_fd != r
    finally:
        os.close(new_fd)


def test_dup_shares_underlying_file(pipe):
    r, w = pipe
    new_w = dup(w)
    try:
        os.write(new_w, b"ping")
        assert os.read(r, 4) == b"ping"
    finally:
        os.close(new_w)


def test_dup_is_not_inheritable(pipe):
    r, _ = pipe
    new_fd = dup(r)
    try:
        assert os.get_inheritable(new_fd) is False
    finally:
        os.close(new_fd)


def test_dup_survives_closing_original(pipe):
    r, w = pipe
    new_r = dup(r)
    os.close(r)
    try:
        os.write(w, b"x")
        assert os.read(new_r, 1) == b"x"
    finally:
        os.close(new_r)


def test_dup_invalid_descriptor_raises(pipe):
    r, _ = pipe
    os.close(r)
    with pytest.raises(OSError):
        dup(r)


def test_poll_attachment_defaults():
    pa = PollAttachment()
    assert pa.fd == 0
    assert pa.callback is None


def test_poll_attachment_keeps_fd_and_callback():
    def handler(fd, event):
        return None

    pa = PollAttachment(fd=7, callback=handler)
    assert pa.fd == 7
    assert pa.callback is handler


def test_poll_attachment_equality():
    assert PollAttachment(fd=3) == PollAttachment(fd=3)
    assert PollAttachment(fd=3) != PollAttachment(fd=4)