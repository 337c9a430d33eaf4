from __future__ import annotations

import io
import os
import threading

from udpxfer.arq import RetryPolicy
from udpxfer.bench import run_benchmark
from udpxfer.packet import FrameKind, decode
from udpxfer.receiver import Receiver
from udpxfer.sender import StopAndWaitSender


def transfer(link, tmp_path, data, on_sender_send=None, on_receiver_send=None, linger_ms=0):
    send_ep, recv_ep = link(on_sender_send, on_receiver_send)
    recv = Receiver(recv_ep, tmp_path, linger_ms=linger_ms)
    result = {}
    t = threading.Thread(target=lambda: result.setdefault("m", recv.run()), daemon=True)
    t.start()

    sender = StopAndWaitSender(send_ep, recv_ep.name, io.BytesIO(data), "out.bin", RetryPolicy(timeout_ms=100, max_retries=20))
    metrics = sender.run()
    t.join(timeout=5)
    assert not t.is_alive()
    return metrics, send_ep, result["m"]


def test_clean_transfer(link, tmp_path):
    data = os.urandom(5000)
    metrics, _, recv_metrics = transfer(link, tmp_path, data)
    assert (tmp_path / "out.bin").read_bytes() == data
    assert metrics.retransmits == 0
    assert recv_metrics.bytes_transferred == 5000


def test_corrupted_unit_is_retransmitted(link, corrupt, tmp_path):
    data = os.urandom(1500)
    damaged = []

    def corrupt_first_unit_one(raw):
        frame = decode(raw)
        if frame.kind is FrameKind.CONTENT and frame.index == 1 and not damaged:
            damaged.append(raw)
            return corrupt(raw, 30)
        return raw

    metrics, send_ep, _ = transfer(link, tmp_path, data, on_sender_send=corrupt_first_unit_one)
    assert (tmp_path / "out.bin").read_bytes() == data
    assert [decode(raw).index for raw in send_ep.sent] == [-1, 0, 1, 1, 2]
    assert metrics.retransmits == 1


def test_lost_acks_are_recovered(link, tmp_path):
    data = os.urandom(2000)
    dropped = set()

    def drop_each_ack_once(raw):
        index = decode(raw).index
        if index not in dropped:
            dropped.add(index)
            return None
        return raw

    metrics, _, _ = transfer(link, tmp_path, data, on_receiver_send=drop_each_ack_once, linger_ms=500)
    assert (tmp_path / "out.bin").read_bytes() == data
    assert metrics.timeouts >= 1


def test_loopback_benchmark():
    r = run_benchmark(size_bytes=20_000, linger_ms=100)
    assert r.bytes_transferred == 20_000
    assert r.throughput_mbps > 0
