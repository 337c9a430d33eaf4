from __future__ import annotations

import queue

import pytest

from udpxfer.packet import decode

PEER = ("127.0.0.1", 40000)


class ScriptedEndpoint:
    """Replays canned datagrams; a ``None`` entry stands for a receive timeout."""

    def __init__(self, inbound, peer=PEER):
        self.inbound = list(inbound)
        self.peer = peer
        self.sent: list[tuple[bytes, tuple]] = []
        self.timeouts: list[float | None] = []

    def settimeout(self, timeout_ms):
        self.timeouts.append(timeout_ms)

    def sendto(self, data, addr):
        self.sent.append((bytes(data), addr))

    def recvfrom(self, bufsize=65535):
        if not self.inbound:
            raise EOFError("script exhausted")
        item = self.inbound.pop(0)
        if item is None:
            raise TimeoutError
        return item, self.peer

    def sent_frames(self):
        return [decode(data) for data, _ in self.sent]

    def sent_indices(self):
        return [frame.index for frame in self.sent_frames()]


class MemoryEndpoint:
    def __init__(self, name, inbox, outbox, on_send=None):
        self.name = name
        self.inbox = inbox
        self.outbox = outbox
        self.on_send = on_send
        self.timeout = None
        self.sent: list[bytes] = []

    def settimeout(self, timeout_ms):
        self.timeout = None if timeout_ms is None else timeout_ms / 1000.0

    def sendto(self, data, addr):
        self.sent.append(data)
        if self.on_send is not None:
            data = self.on_send(data)
            if data is None:
                return
        self.outbox.put((data, self.name))

    def recvfrom(self, bufsize=65535):
        try:
            return self.inbox.get(timeout=self.timeout)
        except queue.Empty:
            raise TimeoutError from None


def memory_link(on_sender_send=None, on_receiver_send=None):
    to_receiver: queue.Queue = queue.Queue()
    to_sender: queue.Queue = queue.Queue()
    sender = MemoryEndpoint(("sender", 1), to_sender, to_receiver, on_sender_send)
    receiver = MemoryEndpoint(("receiver", 2), to_receiver, to_sender, on_receiver_send)
    return sender, receiver


def flip(raw: bytes, pos: int = -1) -> bytes:
    damaged = bytearray(raw)
    damaged[pos] ^= 0x01
    return bytes(damaged)


@pytest.fixture
def scripted():
    return ScriptedEndpoint


@pytest.fixture
def link():
    return memory_link


@pytest.fixture
def corrupt():
    return flip
