from __future__ import annotations

from typing import Protocol

import simpy

# bool: synchronous outcome. simpy Event: resolves later to the success flag.
SendResult = bool | simpy.events.Event


class Transport(Protocol):
    """
    Best-effort delivery of one encoded payload. Implementations report
    failure by returning False (or resolving to False); raising is tolerated
    by the dispatcher and treated as a failure.
    """

    def send(self, endpoint: str, body: bytes) -> SendResult: ...


class ReliableTransport(Protocol):
    def send_reliable(self, endpoint: str, body: bytes) -> SendResult: ...
