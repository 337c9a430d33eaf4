from __future__ import annotations

import logging
import random
import socket
import time
from dataclasses import dataclass
from typing import Tuple

Address = Tuple[str, int]


@dataclass(frozen=True, slots=True)
class Impairment:
    loss_rate: float = 0.0
    delay_ms: int = 0
    corrupt_rate: float = 0.0

    def should_drop(self) -> bool:
        return random.random() < self.loss_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)

    def maybe_corrupt(self, data: bytes) -> bytes:
        if not data or random.random() >= self.corrupt_rate:
            return data
        damaged = bytearray(data)
        pos = random.randrange(len(damaged))
        damaged[pos] ^= 1 << random.randrange(8)
        return bytes(damaged)


class UdpEndpoint:
    def __init__(self, sock: socket.socket, impairment: Impairment | None = None):
        self.sock = sock
        self.impairment = impairment or Impairment()

    @classmethod
    def listening(
        cls,
        host: str,
        port: int,
        timeout_ms: int = 0,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((host, port))
        except OSError:
            sock.close()
            raise
        if timeout_ms > 0:
            sock.settimeout(timeout_ms / 1000.0)
        return cls(sock, impairment)

    @classmethod
    def sending(
        cls,
        timeout_ms: int = 0,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        if timeout_ms > 0:
            sock.settimeout(timeout_ms / 1000.0)
        return cls(sock, impairment)

    def settimeout(self, timeout_ms: float | None) -> None:
        """Bound the next receives; ``None`` blocks indefinitely."""
        self.sock.settimeout(None if timeout_ms is None else timeout_ms / 1000.0)

    def sendto(self, data: bytes, addr: Address) -> None:
        if self.impairment.should_drop():
            logging.debug("impairment dropped outbound %d bytes", len(data))
            return
        self.impairment.sleep_if_needed()
        self.sock.sendto(self.impairment.maybe_corrupt(data), addr)

    def recvfrom(self, bufsize: int = 65535) -> Tuple[bytes, Address]:
        while True:
            data, addr = self.sock.recvfrom(bufsize)
            if self.impairment.should_drop():
                logging.debug("impairment dropped inbound %d bytes", len(data))
                continue
            self.impairment.sleep_if_needed()
            return self.impairment.maybe_corrupt(data), addr

    def close(self) -> None:
        self.sock.close()
