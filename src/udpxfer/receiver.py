from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .constants import CORRUPT_INDEX, DEFAULT_LINGER_MS, META_INDEX
from .errors import ProtocolError
from .handshake import Handshake, await_metadata
from .metrics import Metrics
from .net import Address, UdpEndpoint
from .packet import Frame, FrameKind, decode, encode_ack
from .reassembly import Reassembly


def resolve_output_path(out_dir: Path, file_name: str) -> Path:
    """Place the requested name inside ``out_dir``, dropping any directories."""
    name = Path(file_name.replace("\\", "/")).name
    if name in ("", ".", ".."):
        raise ProtocolError(f"unusable destination file name: {file_name!r}")
    return Path(out_dir) / name


@dataclass(slots=True)
class Receiver:
    udp: UdpEndpoint
    out_dir: Path = Path(".")
    linger_ms: int = DEFAULT_LINGER_MS
    output_path: Path | None = field(init=False, default=None)

    def run(self) -> Metrics:
        metrics = Metrics()
        self.udp.settimeout(None)
        hs = await_metadata(self.udp, metrics)
        self.output_path = resolve_output_path(self.out_dir, hs.metadata.file_name)
        logging.info("receiving %d units into %s", hs.metadata.total_units, self.output_path)

        with open(self.output_path, "wb") as out:
            session = Reassembly(hs.metadata.total_units, out)
            self._reassemble(session, hs, metrics)
            metrics.bytes_transferred = session.bytes_written

        logging.info("wrote %d bytes to %s", metrics.bytes_transferred, self.output_path)
        if self.linger_ms > 0:
            self._linger(hs.metadata.total_units, metrics)
        return metrics.finish()

    def _reassemble(self, session: Reassembly, hs: Handshake, metrics: Metrics) -> None:
        if hs.first is not None:
            self._handle(session, hs.first, hs.peer, metrics)

        while not session.complete:
            raw, addr = self.udp.recvfrom()
            metrics.frames_received += 1
            try:
                frame = decode(raw)
            except ValueError as exc:
                logging.debug("dropping malformed datagram from %s: %s", addr, exc)
                continue
            self._handle(session, frame, addr, metrics)

    def _handle(self, session: Reassembly, frame: Frame, addr: Address, metrics: Metrics) -> None:
        if frame.corrupted:
            metrics.corrupted += 1
            logging.debug("corrupted frame (claimed index %s) from %s", frame.index, addr)
            self._ack(CORRUPT_INDEX, addr, metrics)
            return

        if frame.kind is FrameKind.METADATA:
            # sender missed our metadata ack and is still retrying
            metrics.duplicates += 1
            self._ack(META_INDEX, addr, metrics)
            return

        if frame.kind is not FrameKind.CONTENT or frame.index is None:
            return

        if frame.index >= session.total_units:
            logging.warning("index %d beyond %d units from %s; dropped", frame.index, session.total_units, addr)
            return

        self._ack(frame.index, addr, metrics)
        if not session.accept(frame.index, frame.payload):
            metrics.duplicates += 1
            logging.debug("duplicate index=%d ignored", frame.index)

    def _linger(self, total_units: int, metrics: Metrics) -> None:
        """Keep answering retransmissions until the link goes quiet."""
        self.udp.settimeout(self.linger_ms)
        try:
            while True:
                try:
                    raw, addr = self.udp.recvfrom()
                except TimeoutError:
                    return
                metrics.frames_received += 1
                try:
                    frame = decode(raw)
                except ValueError:
                    continue
                if frame.corrupted:
                    self._ack(CORRUPT_INDEX, addr, metrics)
                elif frame.kind is FrameKind.METADATA:
                    self._ack(META_INDEX, addr, metrics)
                elif frame.kind is FrameKind.CONTENT and frame.index is not None and frame.index < total_units:
                    metrics.duplicates += 1
                    self._ack(frame.index, addr, metrics)
        finally:
            self.udp.settimeout(None)

    def _ack(self, index: int, addr: Address, metrics: Metrics) -> None:
        self.udp.sendto(encode_ack(index), addr)
        metrics.frames_sent += 1
