from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(slots=True)
class Metrics:
    frames_sent: int = 0
    frames_received: int = 0
    bytes_transferred: int = 0
    timeouts: int = 0
    retransmits: int = 0
    corrupted: int = 0
    duplicates: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    def finish(self) -> "Metrics":
        self.end_ts = time.monotonic()
        return self

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_transferred * 8 / 1_000_000) / self.duration_s

    def summary(self, role: str) -> dict:
        return {
            "role": role,
            "bytes": self.bytes_transferred,
            "seconds": self.duration_s,
            "mbps": self.throughput_mbps,
            "frames_sent": self.frames_sent,
            "frames_received": self.frames_received,
            "timeouts": self.timeouts,
            "retransmits": self.retransmits,
            "corrupted": self.corrupted,
            "duplicates": self.duplicates,
        }
