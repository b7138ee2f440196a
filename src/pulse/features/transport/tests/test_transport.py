from __future__ import annotations

import json

import httpx
import simpy

from pulse.features.transport.service import DeferredTransport, HttpTransport, TieredTransport

ENDPOINT = "https://collect.example/api"
BODY = json.dumps({"user_id": "u1", "events": []}).encode("utf-8")


def mock_client(statuses: list[int], seen: list[httpx.Request] | None = None) -> httpx.Client:
    remaining = list(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        status = remaining.pop(0) if remaining else 500
        return httpx.Response(status)

    return httpx.Client(transport=httpx.MockTransport(handler))


def test_http_send_posts_json_and_accepts_2xx():
    seen: list[httpx.Request] = []
    t = HttpTransport(mock_client([204], seen))

    assert t.send(ENDPOINT, BODY) is True
    req = seen[0]
    assert req.method == "POST"
    assert str(req.url) == ENDPOINT
    assert req.headers["content-type"] == "application/json"
    assert json.loads(req.content) == {"user_id": "u1", "events": []}


def test_http_send_non_2xx_is_failure():
    assert HttpTransport(mock_client([500])).send(ENDPOINT, BODY) is False
    assert HttpTransport(mock_client([400])).send(ENDPOINT, BODY) is False


def test_http_network_error_is_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    t = HttpTransport(httpx.Client(transport=httpx.MockTransport(handler)))
    assert t.send(ENDPOINT, BODY) is False


def test_send_reliable_retries_until_success():
    seen: list[httpx.Request] = []
    t = HttpTransport(mock_client([503, 503, 200], seen), reliable_attempts=3)

    assert t.send_reliable(ENDPOINT, BODY) is True
    assert len(seen) == 3


def test_send_reliable_gives_up():
    seen: list[httpx.Request] = []
    t = HttpTransport(mock_client([500] * 5, seen), reliable_attempts=2)

    assert t.send_reliable(ENDPOINT, BODY) is False
    assert len(seen) == 2


# ----------------------------
# Tiered / deferred
# ----------------------------


class FixedTransport:
    def __init__(self, ok: bool) -> None:
        self.ok = ok
        self.calls: list[str] = []

    def send(self, endpoint: str, body: bytes) -> bool:
        self.calls.append("send")
        return self.ok

    def send_reliable(self, endpoint: str, body: bytes) -> bool:
        self.calls.append("send_reliable")
        return self.ok


def test_tiered_skips_fallback_when_primary_succeeds():
    primary, fallback = FixedTransport(True), FixedTransport(True)
    assert TieredTransport(primary, fallback).send(ENDPOINT, BODY) is True
    assert fallback.calls == []


def test_tiered_falls_back_to_reliable_path():
    primary, fallback = FixedTransport(False), FixedTransport(True)
    assert TieredTransport(primary, fallback).send(ENDPOINT, BODY) is True
    assert fallback.calls == ["send_reliable"]


def test_tiered_both_fail():
    assert TieredTransport(FixedTransport(False), FixedTransport(False)).send(ENDPOINT, BODY) is False


def test_deferred_resolves_after_latency():
    env = simpy.Environment()
    inner = FixedTransport(True)
    proc = DeferredTransport(env, inner, latency_ms=1500).send(ENDPOINT, BODY)

    env.run(until=1.0)
    assert inner.calls == []
    env.run(until=2.0)
    assert proc.value is True
    assert inner.calls == ["send"]
