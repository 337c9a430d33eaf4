from __future__ import annotations

import itertools
import os

import pytest

from udpxfer.errors import ProtocolError
from udpxfer.packet import encode_content, encode_metadata
from udpxfer.receiver import Receiver, resolve_output_path


def units_of(data: bytes, size: int = 512) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


def test_out_of_order_and_corrupted_delivery(scripted, corrupt, tmp_path):
    data = os.urandom(1050)
    units = units_of(data)
    assert [len(u) for u in units] == [512, 512, 26]

    udp = scripted(
        [
            encode_metadata("copy.bin", 3),
            encode_content(2, units[2]),
            encode_content(0, units[0]),
            corrupt(encode_content(1, units[1]), 20),
            encode_content(1, units[1]),
        ]
    )
    recv = Receiver(udp, tmp_path)
    metrics = recv.run()

    assert udp.sent_indices() == [-1, 2, 0, -2, 1]
    assert recv.output_path == tmp_path / "copy.bin"
    assert (tmp_path / "copy.bin").read_bytes() == data
    assert metrics.bytes_transferred == 1050
    assert metrics.corrupted == 1
    assert all(addr == udp.peer for _, addr in udp.sent)


@pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
def test_reordering_with_duplicates(scripted, tmp_path, order):
    data = os.urandom(512 * 2 + 100)
    units = units_of(data)
    frames = [encode_metadata("out", 3)]
    for i in order:
        frames.append(encode_content(i, units[i]))
        frames.append(encode_content(order[0], units[order[0]]))
    udp = scripted(frames)
    Receiver(udp, tmp_path).run()
    assert (tmp_path / "out").read_bytes() == data


def test_duplicate_frames_are_acked_but_written_once(scripted, tmp_path):
    udp = scripted(
        [
            encode_metadata("f", 2),
            encode_content(0, b"A" * 512),
            encode_content(0, b"A" * 512),
            encode_content(1, b"B"),
        ]
    )
    metrics = Receiver(udp, tmp_path).run()
    assert udp.sent_indices() == [-1, 0, 0, 1]
    assert (tmp_path / "f").read_bytes() == b"A" * 512 + b"B"
    assert metrics.duplicates == 1


def test_zero_length_file(scripted, tmp_path):
    udp = scripted([encode_metadata("empty.txt", 0)])
    Receiver(udp, tmp_path).run()
    assert udp.sent_indices() == [-1]
    assert (tmp_path / "empty.txt").read_bytes() == b""


def test_late_metadata_and_bad_frames_during_transfer(scripted, tmp_path):
    meta = encode_metadata("f", 2)
    udp = scripted(
        [
            meta,
            encode_content(0, b"a"),
            meta,
            b"short",
            encode_content(7, b"beyond"),
            encode_content(1, b"b"),
        ]
    )
    Receiver(udp, tmp_path).run()
    assert udp.sent_indices() == [-1, 0, -1, 1]
    assert (tmp_path / "f").read_bytes() == b"ab"


def test_receive_loop_stops_at_completion(scripted, tmp_path):
    extra = encode_content(0, b"a")
    udp = scripted([encode_metadata("f", 1), encode_content(0, b"a"), extra])
    Receiver(udp, tmp_path).run()
    assert udp.inbound == [extra]


def test_linger_reacks_retransmissions(scripted, tmp_path):
    udp = scripted([encode_metadata("f", 1), encode_content(0, b"a"), encode_content(0, b"a"), None])
    metrics = Receiver(udp, tmp_path, linger_ms=50).run()
    assert udp.sent_indices() == [-1, 0, 0]
    assert udp.timeouts[-2:] == [50, None]
    assert metrics.duplicates == 1


def test_output_path_drops_directories(tmp_path):
    assert resolve_output_path(tmp_path, "../../etc/passwd") == tmp_path / "passwd"
    assert resolve_output_path(tmp_path, "dir\\name.txt") == tmp_path / "name.txt"


@pytest.mark.parametrize("name", ["", ".", "..", "a/.."])
def test_output_path_rejects_unusable_names(tmp_path, name):
    with pytest.raises(ProtocolError):
        resolve_output_path(tmp_path, name)
