import os
import threading
import time

import pytest

from domains.inspection_routing.processors.stability import (
    FileVanishedError,
    GateCancelled,
    StabilityGate,
    StabilityTimeout,
)

posix_only = pytest.mark.skipif(os.name == "nt", reason="uses fcntl locks to simulate a writer")


def hold_exclusive_lock(path):
    import fcntl

    handle = open(path, "ab")
    fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
    return handle


def test_unlocked_file_is_read_immediately(tmp_path):
    image = tmp_path / "img1.jpg"
    image.write_bytes(b"complete")

    gate = StabilityGate(poll_interval=0.01)

    assert gate.wait_until_stable(image) == 0
    assert gate.read(image) == b"complete"


@posix_only
def test_locked_file_is_not_read_until_released(tmp_path):
    image = tmp_path / "img1.jpg"
    image.write_bytes(b"partial")
    writer = hold_exclusive_lock(image)

    gate = StabilityGate(poll_interval=0.01)
    result = {}

    def reader():
        result["content"] = gate.read(image)
        result["at"] = time.monotonic()

    thread = threading.Thread(target=reader)
    thread.start()

    time.sleep(0.2)
    assert "content" not in result

    writer.write(b"-and-finished")
    writer.flush()
    released_at = time.monotonic()
    writer.close()

    thread.join(timeout=5)
    assert result["content"] == b"partial-and-finished"
    assert result["at"] >= released_at


@posix_only
def test_max_wait_gives_up(tmp_path):
    image = tmp_path / "img1.jpg"
    image.write_bytes(b"partial")
    writer = hold_exclusive_lock(image)

    try:
        gate = StabilityGate(poll_interval=0.01, max_wait=0.1)
        with pytest.raises(StabilityTimeout):
            gate.wait_until_stable(image)
    finally:
        writer.close()


@posix_only
def test_stop_event_cancels_wait(tmp_path):
    image = tmp_path / "img1.jpg"
    image.write_bytes(b"partial")
    writer = hold_exclusive_lock(image)
    stop = threading.Event()

    try:
        gate = StabilityGate(poll_interval=0.01, stop_event=stop)
        threading.Timer(0.1, stop.set).start()
        with pytest.raises(GateCancelled):
            gate.wait_until_stable(image)
    finally:
        writer.close()


def test_missing_file_is_reported(tmp_path):
    gate = StabilityGate(poll_interval=0.01)

    with pytest.raises(FileVanishedError):
        gate.read(tmp_path / "gone.jpg")


def test_unlocked_writer_is_waited_out(tmp_path):
    image = tmp_path / "img1.jpg"
    chunks = [b"chunk%02d-" % n for n in range(15)]
    handle = open(image, "wb")
    handle.write(chunks[0])
    handle.flush()

    def writer():
        # Appends without ever taking a lock, like most camera software.
        for chunk in chunks[1:]:
            time.sleep(0.02)
            handle.write(chunk)
            handle.flush()
            os.utime(image)
        handle.close()

    thread = threading.Thread(target=writer)
    thread.start()

    gate = StabilityGate(poll_interval=0.15)
    content = gate.read(image)
    thread.join(timeout=5)

    assert content == b"".join(chunks)


def test_change_between_checks_forces_a_retry(tmp_path):
    image = tmp_path / "img1.jpg"
    image.write_bytes(b"HEAD-")
    stop = threading.Event()
    gate = StabilityGate(poll_interval=0.2, stop_event=stop)

    threading.Timer(0.05, lambda: image.write_bytes(b"HEAD-TAIL")).start()

    assert gate.wait_until_stable(image) >= 1
    assert image.read_bytes() == b"HEAD-TAIL"
