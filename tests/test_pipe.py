import threading

import pytest

from xvfs.pipe import PIPESIZE, Pipe, PipeClosed


def test_write_then_read_round_trip():
    p = Pipe()
    assert p.write(b"hello") == 5
    assert p.read(10) == b"hello"


def test_partial_reads_preserve_order():
    p = Pipe()
    p.write(b"abcdef")
    assert p.read(3) == b"abc"
    assert p.read(3) == b"def"


def test_read_after_writer_closed_returns_empty():
    p = Pipe()
    p.write(b"xy")
    p.close(True)
    assert p.read(10) == b"xy"
    assert p.read(10) == b""


def test_write_to_full_pipe_without_reader_raises():
    p = Pipe()
    p.close(False)
    with pytest.raises(PipeClosed):
        p.write(bytes(PIPESIZE + 1))


def test_buffer_fills_exactly_to_capacity_without_blocking():
    p = Pipe()
    p.close(False)
    assert p.write(bytes(PIPESIZE)) == PIPESIZE
    assert p.nwrite - p.nread == PIPESIZE


def test_large_transfer_through_threads():
    p = Pipe()
    payload = bytes(i % 251 for i in range(4 * PIPESIZE + 17))

    def writer():
        p.write(payload)
        p.close(True)

    t = threading.Thread(target=writer)
    t.start()
    received = bytearray()
    while chunk := p.read(100):
        received += chunk
    t.join(timeout=5)
    assert bytes(received) == payload


def test_reader_waits_for_data():
    p = Pipe()
    result = []
    t = threading.Thread(target=lambda: result.append(p.read(10)))
    t.start()
    assert p.write(b"late") == 4
    t.join(timeout=5)
    assert result == [b"late"]
    p.close(True)
    assert p.read(10) == b""