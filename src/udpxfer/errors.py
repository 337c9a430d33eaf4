from __future__ import annotations


class ProtocolError(Exception):
    pass


class RetryLimitExceeded(ProtocolError):
    def __init__(self, index: int, attempts: int):
        super().__init__(f"no ack for index {index} after {attempts} attempts")
        self.index = index
        self.attempts = attempts


class SourceTruncated(ProtocolError):
    pass
