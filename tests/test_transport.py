from __future__ import annotations

import asyncio

import pytest
import requests

from pipeline_dashboard import transport as transport_module
from pipeline_dashboard.errors import DecodeError, TransportError
from pipeline_dashboard.transport import RequestsTransport


class _DummyResponse:
    def __init__(self, *, status_code: int = 200, payload=None, invalid_json: bool = False) -> None:
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    def json(self):  # type: ignore[override]
        if self._invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload

    def raise_for_status(self) -> None:  # mimic requests.Response
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


class _DummySession:
    def __init__(self, outcome) -> None:
        self.outcome = outcome
        self.requests: list[tuple[str, object]] = []
        self.closed = False

    def get(self, url, headers=None, timeout=None):
        self.requests.append((url, timeout))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome

    def close(self) -> None:
        self.closed = True


def test_get_json_builds_url_and_uses_connect_read_timeout() -> None:
    session = _DummySession(_DummyResponse(payload=[{"name": "a"}]))
    transport = RequestsTransport("http://ci.local:8080/", timeout_s=12.0, session=session)

    payload = asyncio.run(transport.get_json("/pipelines"))

    assert payload == [{"name": "a"}]
    assert session.requests == [("http://ci.local:8080/pipelines", (5.0, 12.0))]


def test_timeout_surfaces_as_transport_error() -> None:
    session = _DummySession(requests.Timeout("read timed out"))
    transport = RequestsTransport("http://ci.local", session=session)

    with pytest.raises(TransportError) as info:
        asyncio.run(transport.get_json("/pipeline/a"))

    assert info.value.endpoint == "/pipeline/a"
    assert isinstance(info.value.cause, requests.Timeout)
    assert len(session.requests) == 1  # no retry


def test_http_error_status_surfaces_as_transport_error() -> None:
    transport = RequestsTransport("http://ci.local", session=_DummySession(_DummyResponse(status_code=503)))

    with pytest.raises(TransportError) as info:
        asyncio.run(transport.get_json("/pipelines"))

    assert "503" in str(info.value)


def test_invalid_json_surfaces_as_decode_error() -> None:
    transport = RequestsTransport("http://ci.local", session=_DummySession(_DummyResponse(invalid_json=True)))

    with pytest.raises(DecodeError) as info:
        asyncio.run(transport.get_json("/pipelines"))

    assert "invalid JSON" in str(info.value)


def test_close_releases_session() -> None:
    session = _DummySession(_DummyResponse(payload=[]))
    RequestsTransport("http://ci.local", session=session).close()
    assert session.closed


def test_default_transport_uses_one_shot_requests_get(monkeypatch) -> None:
    calls: list[tuple[str, object]] = []

    def _fake_get(url, headers=None, timeout=None):
        calls.append((url, timeout))
        return _DummyResponse(payload={"stageStates": []})

    monkeypatch.setattr(transport_module.requests, "get", _fake_get)
    transport = RequestsTransport("http://ci.local", timeout_s=3.0)

    async def fan_out():
        return await asyncio.gather(transport.get_json("/pipeline/a"), transport.get_json("/pipeline/b"))

    payloads = asyncio.run(fan_out())

    assert payloads == [{"stageStates": []}, {"stageStates": []}]
    assert sorted(calls) == [
        ("http://ci.local/pipeline/a", (3.0, 3.0)),
        ("http://ci.local/pipeline/b", (3.0, 3.0)),
    ]
    transport.close()  # nothing to release without an injected session


def test_default_transport_wraps_connection_errors(monkeypatch) -> None:
    def _refuse(*_, **__):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(transport_module.requests, "get", _refuse)

    with pytest.raises(TransportError) as info:
        asyncio.run(RequestsTransport("http://ci.local").get_json("/pipelines"))

    assert isinstance(info.value.cause, requests.ConnectionError)
