"""Metadata exchange that opens every transfer.

The sender pushes one metadata frame (destination name and unit count)
through the stop-and-wait channel under the sentinel index -1. The
receiver acknowledges every clean copy of it and leaves the handshake as
soon as the first content frame shows up, which proves the sender saw an
ack; that frame is handed on rather than discarded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .arq import StopAndWaitChannel
from .constants import CORRUPT_INDEX, META_INDEX
from .metrics import Metrics
from .net import Address, UdpEndpoint
from .packet import Frame, FrameKind, decode, encode_ack, encode_metadata


@dataclass(frozen=True, slots=True)
class Metadata:
    file_name: str
    total_units: int


@dataclass(frozen=True, slots=True)
class Handshake:
    metadata: Metadata
    peer: Address
    first: Frame | None = None


def send_metadata(channel: StopAndWaitChannel, file_name: str, total_units: int) -> Metadata:
    raw = encode_metadata(file_name, total_units)
    logging.info("offering %r (%d units) to %s:%d", file_name, total_units, *channel.dest)
    channel.deliver(raw, META_INDEX)
    return Metadata(file_name, total_units)


def await_metadata(udp: UdpEndpoint, metrics: Metrics) -> Handshake:
    metadata: Metadata | None = None

    while True:
        raw, addr = udp.recvfrom()
        metrics.frames_received += 1
        try:
            frame = decode(raw)
        except ValueError as exc:
            logging.debug("dropping malformed datagram from %s: %s", addr, exc)
            continue

        if frame.corrupted:
            metrics.corrupted += 1
            udp.sendto(encode_ack(CORRUPT_INDEX), addr)
            metrics.frames_sent += 1
            continue

        if frame.kind is FrameKind.METADATA:
            offered = Metadata(frame.file_name, frame.total_units)
            if metadata is None:
                logging.info("metadata from %s: %r (%d units)", addr, offered.file_name, offered.total_units)
            elif offered != metadata:
                logging.warning("metadata from %s replaced: %r -> %r", addr, metadata, offered)
            else:
                metrics.duplicates += 1
            metadata = offered
            udp.sendto(encode_ack(META_INDEX), addr)
            metrics.frames_sent += 1
            if metadata.total_units == 0:
                return Handshake(metadata, addr)
            continue

        if frame.kind is FrameKind.CONTENT:
            if metadata is None:
                logging.warning("content index=%d from %s before any metadata; dropped", frame.index, addr)
                continue
            return Handshake(metadata, addr, frame)
