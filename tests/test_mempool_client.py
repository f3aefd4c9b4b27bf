from __future__ import annotations

import pytest
import requests

from ordinals_sdk.config import MempoolConfig
from ordinals_sdk.mempool_client import (
    BroadcastError,
    MempoolClient,
    MempoolTransportError,
    format_broadcast_hint,
)


class StubResponse:
    def __init__(self, status_code: int, text: str = "", payload=None) -> None:
        self.status_code = status_code
        self.text = text
        self.url = "https://mempool.example/api"
        self._payload = payload

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class StubSession:
    def __init__(self, response: StubResponse | None = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[tuple] = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def _client(session: StubSession) -> MempoolClient:
    client = MempoolClient(MempoolConfig(base_url="https://mempool.example/api", timeout=3))
    client._session = session  # type: ignore[assignment]
    return client


def test_broadcast_posts_raw_hex_and_returns_txid() -> None:
    session = StubSession(StubResponse(200, text="ab" * 32 + "\n"))

    txid = _client(session).broadcast("0200")

    assert txid == "ab" * 32
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "https://mempool.example/api/tx")
    assert kwargs["data"] == "0200"
    assert kwargs["timeout"] == 3


def test_broadcast_rejection_raises_broadcast_error() -> None:
    session = StubSession(StubResponse(400, text="sendrawtransaction RPC error: min relay fee not met"))

    with pytest.raises(BroadcastError) as excinfo:
        _client(session).broadcast("0200")

    assert format_broadcast_hint(excinfo.value) is not None


def test_server_error_raises_transport_error_with_status() -> None:
    session = StubSession(StubResponse(503, text="busy"))

    with pytest.raises(MempoolTransportError) as excinfo:
        _client(session).broadcast("0200")

    assert excinfo.value.status_code == 503


def test_connection_failure_raises_transport_error() -> None:
    session = StubSession(error=requests.ConnectionError("refused"))

    with pytest.raises(MempoolTransportError) as excinfo:
        _client(session).recommended_fees()

    assert excinfo.value.status_code is None


def test_recommended_fees_returns_payload() -> None:
    fees = {"fastestFee": 20, "halfHourFee": 10, "hourFee": 5, "economyFee": 2, "minimumFee": 1}
    session = StubSession(StubResponse(200, payload=fees))

    assert _client(session).recommended_fees() == fees
    assert session.calls[0][1] == "https://mempool.example/api/v1/fees/recommended"


def test_recommended_fees_rejects_malformed_json() -> None:
    session = StubSession(StubResponse(200, text="<html>"))

    with pytest.raises(MempoolTransportError):
        _client(session).recommended_fees()


def test_unknown_rejection_has_no_hint() -> None:
    assert format_broadcast_hint(BroadcastError("something odd")) is None
