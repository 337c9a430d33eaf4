from __future__ import annotations

CHECKSUM_FORMAT = "!Q"  # crc32 widened to 8 bytes, top half zero
INDEX_FORMAT = "!i"
COUNT_FORMAT = "!i"

CHECKSUM_LEN = 8
HEADER_LEN = 12  # checksum + index
METADATA_HEADER_LEN = 16  # checksum + index + unit count
ACK_LEN = HEADER_LEN

UNIT_SIZE = 512
NAME_ENCODING = "utf-16-be"
MAX_DATAGRAM = 65507

META_INDEX = -1
CORRUPT_INDEX = -2

DEFAULT_TIMEOUT_MS = 200
DEFAULT_MAX_TIMEOUT_MS = 5000
DEFAULT_LINGER_MS = 0
