"""Stop-and-wait delivery of single frames.

Every frame the sender puts on the wire, metadata included, goes through
``StopAndWaitChannel.deliver``: transmit, wait a bounded time for the
matching ack, retransmit the identical bytes on anything else. Only one
frame is ever outstanding.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass, field

from .constants import DEFAULT_MAX_TIMEOUT_MS, DEFAULT_TIMEOUT_MS
from .errors import RetryLimitExceeded
from .metrics import Metrics
from .net import Address, UdpEndpoint
from .packet import FrameKind, decode


class AckOutcome(enum.Enum):
    ACKED = "acked"
    TIMEOUT = "timeout"
    CORRUPTED = "corrupted"
    MISMATCH = "mismatch"
    MALFORMED = "malformed"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retransmission tuning.

    The defaults retry forever with a fixed 200 ms timeout. ``backoff``
    multiplies the timeout after each failed attempt, capped at
    ``max_timeout_ms``; ``max_retries`` bounds the retransmissions of a
    single frame.
    """

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_retries: int | None = None
    backoff: float = 1.0
    max_timeout_ms: int = DEFAULT_MAX_TIMEOUT_MS

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError("max_retries must be >= 0 or None")
        if self.backoff < 1.0:
            raise ValueError("backoff must be >= 1.0")

    def timeout_for(self, retries: int) -> float:
        """Timeout in milliseconds for the attempt following ``retries`` failures."""
        cap = max(self.max_timeout_ms, self.timeout_ms)
        if self.backoff == 1.0 or retries <= 0:
            return float(min(self.timeout_ms, cap))
        steps = math.ceil(math.log(cap / self.timeout_ms) / math.log(self.backoff)) if cap > self.timeout_ms else 0
        return min(self.timeout_ms * self.backoff ** min(retries, steps), cap)

    def allows(self, retries: int) -> bool:
        return self.max_retries is None or retries <= self.max_retries


@dataclass(slots=True)
class StopAndWaitChannel:
    udp: UdpEndpoint
    dest: Address
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    metrics: Metrics = field(default_factory=Metrics)

    def deliver(self, raw: bytes, index: int) -> int:
        """Send ``raw`` until an ack carrying ``index`` comes back.

        Returns the number of transmissions it took.
        """
        retries = 0
        while True:
            self.udp.settimeout(self.policy.timeout_for(retries))
            self.udp.sendto(raw, self.dest)
            self.metrics.frames_sent += 1

            outcome = self.await_ack(index)
            if outcome is AckOutcome.ACKED:
                return retries + 1

            retries += 1
            if not self.policy.allows(retries):
                raise RetryLimitExceeded(index, retries)
            self.metrics.retransmits += 1
            logging.debug("index=%d %s; retransmit #%d", index, outcome.value, retries)

    def await_ack(self, index: int) -> AckOutcome:
        try:
            raw, _ = self.udp.recvfrom()
        except TimeoutError:
            self.metrics.timeouts += 1
            return AckOutcome.TIMEOUT

        self.metrics.frames_received += 1
        try:
            frame = decode(raw)
        except ValueError:
            return AckOutcome.MALFORMED

        if frame.corrupted:
            self.metrics.corrupted += 1
            return AckOutcome.CORRUPTED
        if frame.kind is not FrameKind.ACK:
            return AckOutcome.MALFORMED
        if frame.index != index:
            return AckOutcome.MISMATCH
        return AckOutcome.ACKED
