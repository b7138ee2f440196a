from __future__ import annotations

import logging

import httpx
import simpy

from pulse.core.clock import ms_to_s
from pulse.core.logging import get_logger
from pulse.features.transport.types import ReliableTransport, Transport

JSON_HEADERS = {"content-type": "application/json"}
DEFAULT_RELIABLE_ATTEMPTS = 3


class HttpTransport:
    """
    POSTs encoded batches with httpx. Any 2xx is a delivery; everything else
    (non-2xx, connect/read errors, timeouts) is reported as False.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        timeout_s: float = 5.0,
        reliable_attempts: int = DEFAULT_RELIABLE_ATTEMPTS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client or httpx.Client(timeout=timeout_s)
        self.timeout_s = timeout_s
        self.reliable_attempts = max(1, int(reliable_attempts))
        self._logger = logger or get_logger(__name__)

    def send(self, endpoint: str, body: bytes) -> bool:
        try:
            resp = self.client.post(endpoint, content=body, headers=JSON_HEADERS, timeout=self.timeout_s)
        except httpx.HTTPError as e:
            self._logger.warning(
                f"post failed: {type(e).__name__}: {e}", extra={"endpoint": endpoint}
            )
            return False

        if resp.is_success:
            return True
        self._logger.warning(
            "collector rejected batch",
            extra={"endpoint": endpoint, "status": resp.status_code},
        )
        return False

    def send_reliable(self, endpoint: str, body: bytes) -> bool:
        for _ in range(self.reliable_attempts):
            if self.send(endpoint, body):
                return True
        return False

    def close(self) -> None:
        self.client.close()


class TieredTransport:
    """Best-effort primary first; the reliable path of the fallback only when it fails."""

    def __init__(self, primary: Transport, fallback: ReliableTransport) -> None:
        self.primary = primary
        self.fallback = fallback

    def send(self, endpoint: str, body: bytes) -> bool:
        if self.primary.send(endpoint, body):
            return True
        return bool(self.fallback.send_reliable(endpoint, body))


class DeferredTransport:
    """
    Wraps a synchronous transport so delivery completes latency_ms later in
    simulated time. The returned process resolves to the inner result.
    """

    def __init__(self, env: simpy.Environment, inner: Transport, latency_ms: float) -> None:
        self.env = env
        self.inner = inner
        self.latency_s = ms_to_s(latency_ms)

    def send(self, endpoint: str, body: bytes) -> simpy.events.Process:
        return self.env.process(self._deliver(endpoint, body))

    def _deliver(self, endpoint: str, body: bytes):
        yield self.env.timeout(self.latency_s)
        return bool(self.inner.send(endpoint, body))
