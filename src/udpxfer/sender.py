from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import BinaryIO

from .arq import RetryPolicy, StopAndWaitChannel
from .constants import UNIT_SIZE
from .errors import SourceTruncated
from .handshake import send_metadata
from .metrics import Metrics
from .net import Address, UdpEndpoint
from .packet import encode_content, unit_count


def remaining_size(f: BinaryIO) -> int:
    start = f.tell()
    end = f.seek(0, os.SEEK_END)
    f.seek(start)
    return end - start


@dataclass(slots=True)
class StopAndWaitSender:
    udp: UdpEndpoint
    dest: Address
    f: BinaryIO
    file_name: str
    policy: RetryPolicy = field(default_factory=RetryPolicy)

    def run(self) -> Metrics:
        metrics = Metrics()
        channel = StopAndWaitChannel(self.udp, self.dest, self.policy, metrics)

        total_units = unit_count(remaining_size(self.f))
        send_metadata(channel, self.file_name, total_units)

        for index in range(total_units):
            chunk = self.f.read(UNIT_SIZE)
            if not chunk:
                raise SourceTruncated(f"source ended before unit {index} of {total_units}")

            # the encoded frame is resent verbatim; the source is never re-read
            channel.deliver(encode_content(index, chunk), index)
            metrics.bytes_transferred += len(chunk)

        logging.info(
            "sent %d units (%d bytes), %d retransmits",
            total_units,
            metrics.bytes_transferred,
            metrics.retransmits,
        )
        return metrics.finish()
