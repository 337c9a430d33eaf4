from __future__ import annotations

import enum
import struct
import zlib
from dataclasses import dataclass

from .constants import (
    ACK_LEN,
    CHECKSUM_FORMAT,
    CHECKSUM_LEN,
    CORRUPT_INDEX,
    COUNT_FORMAT,
    HEADER_LEN,
    INDEX_FORMAT,
    MAX_DATAGRAM,
    META_INDEX,
    METADATA_HEADER_LEN,
    NAME_ENCODING,
    UNIT_SIZE,
)

INT32_MAX = 2**31 - 1


class FrameKind(enum.IntEnum):
    CONTENT = 0
    METADATA = 1
    ACK = 2


def checksum(data: bytes) -> int:
    """CRC-32 of ``data`` as an unsigned value."""
    return zlib.crc32(data) & 0xFFFFFFFF


def unit_count(size: int) -> int:
    """Number of content units needed to carry ``size`` bytes."""
    return -(-size // UNIT_SIZE)


def _seal(body: bytes) -> bytes:
    buf = bytearray(CHECKSUM_LEN)
    buf += body
    struct.pack_into(CHECKSUM_FORMAT, buf, 0, checksum(buf[CHECKSUM_LEN:]))
    return bytes(buf)


def _classify(length: int, index: int | None) -> FrameKind:
    if length == ACK_LEN:
        return FrameKind.ACK
    if index == META_INDEX and length >= METADATA_HEADER_LEN:
        return FrameKind.METADATA
    return FrameKind.CONTENT


@dataclass(frozen=True, slots=True)
class Frame:
    """One datagram on the wire.

    ``index`` is ``None`` only for corrupted datagrams too short to carry
    one. Fields of a corrupted frame are whatever the damaged bytes claim
    and must not be trusted.
    """

    kind: FrameKind
    index: int | None
    payload: bytes = b""
    total_units: int = 0
    file_name: str = ""
    corrupted: bool = False

    def to_bytes(self) -> bytes:
        if self.index is None:
            raise ValueError("frame has no index")
        header = struct.pack(INDEX_FORMAT, self.index)
        if self.kind is FrameKind.METADATA:
            body = header + struct.pack(COUNT_FORMAT, self.total_units)
            body += self.file_name.encode(NAME_ENCODING)
        elif self.kind is FrameKind.ACK:
            body = header
        else:
            body = header + self.payload
        return _seal(body)

    @staticmethod
    def content(index: int, payload: bytes) -> "Frame":
        if not 0 <= index <= INT32_MAX:
            raise ValueError(f"content index out of range: {index}")
        if not 1 <= len(payload) <= UNIT_SIZE:
            raise ValueError(f"payload must be 1..{UNIT_SIZE} bytes, got {len(payload)}")
        return Frame(kind=FrameKind.CONTENT, index=index, payload=bytes(payload))

    @staticmethod
    def metadata(file_name: str, total_units: int) -> "Frame":
        if not 0 <= total_units <= INT32_MAX:
            raise ValueError(f"unit count out of range: {total_units}")
        encoded = file_name.encode(NAME_ENCODING)
        if METADATA_HEADER_LEN + len(encoded) > MAX_DATAGRAM:
            raise ValueError("file name does not fit in one datagram")
        return Frame(
            kind=FrameKind.METADATA,
            index=META_INDEX,
            total_units=total_units,
            file_name=file_name,
        )

    @staticmethod
    def make_ack(index: int) -> "Frame":
        if not CORRUPT_INDEX <= index <= INT32_MAX:
            raise ValueError(f"ack index out of range: {index}")
        return Frame(kind=FrameKind.ACK, index=index)

    @staticmethod
    def from_bytes(raw: bytes) -> "Frame":
        if len(raw) < CHECKSUM_LEN:
            raise ValueError("datagram too small to carry a checksum")

        (stored,) = struct.unpack_from(CHECKSUM_FORMAT, raw)
        index = struct.unpack_from(INDEX_FORMAT, raw, CHECKSUM_LEN)[0] if len(raw) >= HEADER_LEN else None

        if checksum(bytes(raw[CHECKSUM_LEN:])) != stored:
            return Frame(kind=_classify(len(raw), index), index=index, corrupted=True)

        if index is None:
            raise ValueError("datagram too small to carry a header")

        kind = _classify(len(raw), index)
        if kind is FrameKind.ACK:
            return Frame(kind=kind, index=index)

        if kind is FrameKind.METADATA:
            name = bytes(raw[METADATA_HEADER_LEN:])
            if len(name) % 2:
                raise ValueError("metadata file name is not whole code units")
            (total_units,) = struct.unpack_from(COUNT_FORMAT, raw, HEADER_LEN)
            if total_units < 0:
                raise ValueError(f"negative unit count: {total_units}")
            return Frame(
                kind=kind,
                index=index,
                total_units=total_units,
                file_name=name.decode(NAME_ENCODING, errors="replace"),
            )

        if index < 0:
            raise ValueError(f"negative content index: {index}")
        payload = bytes(raw[HEADER_LEN:])
        if len(payload) > UNIT_SIZE:
            raise ValueError(f"payload exceeds {UNIT_SIZE} bytes")
        return Frame(kind=kind, index=index, payload=payload)


def encode_content(index: int, payload: bytes) -> bytes:
    return Frame.content(index, payload).to_bytes()


def encode_metadata(file_name: str, total_units: int) -> bytes:
    return Frame.metadata(file_name, total_units).to_bytes()


def encode_ack(index: int) -> bytes:
    return Frame.make_ack(index).to_bytes()


def decode(raw: bytes) -> Frame:
    """Parse a datagram.

    Raises ``ValueError`` for malformed datagrams, which callers drop
    without a response. Checksum mismatches are reported through
    ``Frame.corrupted`` instead.
    """
    return Frame.from_bytes(raw)
