from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import BinaryIO


@dataclass(slots=True)
class Reassembly:
    """Puts content units back in order on their way to ``out``.

    Units below ``cursor`` have been written exactly once and in order.
    Units at or above it that have arrived wait in ``pending`` until the
    gap before them closes.
    """

    total_units: int
    out: BinaryIO
    cursor: int = 0
    bytes_written: int = 0
    received: bytearray = field(init=False)
    pending: dict[int, bytes] = field(init=False, default_factory=dict)

    def __post_init__(self) -> None:
        if self.total_units < 0:
            raise ValueError("total_units must be >= 0")
        self.received = bytearray(self.total_units)

    @property
    def complete(self) -> bool:
        return self.cursor == self.total_units

    def accept(self, index: int, payload: bytes) -> bool:
        """Record unit ``index``; returns False if it was already seen."""
        if not 0 <= index < self.total_units:
            raise IndexError(f"unit index {index} outside 0..{self.total_units - 1}")
        if self.received[index]:
            return False

        self.received[index] = 1
        self.pending[index] = payload
        self._drain()
        return True

    def _drain(self) -> None:
        while self.cursor < self.total_units and self.received[self.cursor]:
            payload = self.pending.pop(self.cursor)
            self.out.write(payload)
            self.bytes_written += len(payload)
            self.cursor += 1
        if self.pending:
            logging.debug("cursor=%d, %d unit(s) buffered", self.cursor, len(self.pending))
