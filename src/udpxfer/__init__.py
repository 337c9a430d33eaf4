"""Stop-and-wait file transfer over UDP.

One file per session: a metadata handshake announces the destination name
and unit count, then 512-byte units travel one at a time, each CRC-32
checked and individually acknowledged. The receiver buffers out-of-order
units and writes them strictly in index order.
"""

__all__ = []
