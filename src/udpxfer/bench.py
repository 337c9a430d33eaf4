from __future__ import annotations

import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path

from .arq import RetryPolicy
from .errors import ProtocolError
from .net import Impairment, UdpEndpoint
from .receiver import Receiver
from .sender import StopAndWaitSender


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    bytes_transferred: int
    duration_s: float
    throughput_mbps: float
    retransmits: int
    timeouts: int
    corrupted: int


def run_benchmark(
    *,
    size_bytes: int,
    loss_rate: float = 0.0,
    delay_ms: int = 0,
    corrupt_rate: float = 0.0,
    policy: RetryPolicy | None = None,
    linger_ms: int = 500,
    join_timeout_s: float = 10.0,
) -> BenchmarkResult:
    payload = os.urandom(size_bytes)
    impair = Impairment(loss_rate=loss_rate, delay_ms=delay_ms, corrupt_rate=corrupt_rate)

    with tempfile.TemporaryDirectory() as out_dir:
        recv_ep = UdpEndpoint.listening("127.0.0.1", 0, impairment=impair)
        recv_host, recv_port = recv_ep.sock.getsockname()
        recv = Receiver(recv_ep, Path(out_dir), linger_ms=linger_ms)

        errors: list[Exception] = []

        def recv_runner() -> None:
            try:
                recv.run()
            except Exception as exc:  # re-raised after join
                errors.append(exc)
            finally:
                recv_ep.close()

        t = threading.Thread(target=recv_runner, daemon=True)
        t.start()

        send_ep = UdpEndpoint.sending(impairment=impair)
        try:
            with tempfile.TemporaryFile() as send_f:
                send_f.write(payload)
                send_f.seek(0)
                sender = StopAndWaitSender(
                    send_ep,
                    (recv_host, recv_port),
                    send_f,
                    "bench.bin",
                    policy=policy or RetryPolicy(timeout_ms=50, max_retries=100),
                )
                send_metrics = sender.run()
        finally:
            send_ep.close()

        t.join(timeout=join_timeout_s)
        if errors:
            raise errors[0]
        if t.is_alive():
            raise ProtocolError("receiver did not finish")

        received = (Path(out_dir) / "bench.bin").read_bytes()
        if received != payload:
            raise ProtocolError(f"output mismatch: sent {size_bytes} bytes, got {len(received)}")

    duration_s = max(0.001, send_metrics.duration_s)
    throughput_mbps = (size_bytes * 8 / 1_000_000) / duration_s

    return BenchmarkResult(
        bytes_transferred=size_bytes,
        duration_s=duration_s,
        throughput_mbps=throughput_mbps,
        retransmits=send_metrics.retransmits,
        timeouts=send_metrics.timeouts,
        corrupted=send_metrics.corrupted,
    )
