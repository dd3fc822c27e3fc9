from __future__ import annotations

from collections.abc import Mapping

import pytest

from cronbeats.client import PingClient, PingResult
from cronbeats.errors import ApiError, ApiErrorCode, ValidationError
from cronbeats.http_client import ClosableTransport, HttpResponse, HttpTransport, HttpxTransport
from cronbeats.json_utils import load_json_str
from cronbeats.testing import FakeTransport, fake_response, make_fake_env, make_fake_sleep

_OK_BODY = {
    "status": "success",
    "message": "OK",
    "action": "ping",
    "job_key": "abc123de",
    "timestamp": "2026-02-25 12:00:00",
    "processing_time_ms": 8.25,
}


def _client(transport: FakeTransport, *, max_retries: int = 2) -> PingClient:
    return PingClient(
        "abc123de",
        base_url="https://cronbeats.test",
        max_retries=max_retries,
        transport=transport,
    )


@pytest.mark.parametrize(
    "job_key",
    ["", "abc123d", "abc123def", "invalid-key", "abc 123d", "abc_123d", "abcdéfgh", "ABC123\n8"],
)
def test_rejects_invalid_job_key(job_key: str) -> None:
    with pytest.raises(ValidationError):
        PingClient(job_key, transport=FakeTransport([fake_response(200, {})]))


def test_rejects_non_string_job_key() -> None:
    bad: str = 12345678  # type: ignore[assignment]
    with pytest.raises(ValidationError):
        PingClient(bad, transport=FakeTransport([fake_response(200, {})]))


def test_accepts_base62_job_key_and_strips_base_url() -> None:
    client = PingClient(
        "AbC123xZ",
        base_url="https://cronbeats.test///",
        transport=FakeTransport([fake_response(200, {})]),
    )
    assert client.job_key == "AbC123xZ"
    assert client.base_url == "https://cronbeats.test"


@pytest.mark.parametrize(
    "options",
    [
        {"timeout_ms": -1},
        {"max_retries": -1},
        {"retry_backoff_ms": -1},
        {"retry_jitter_ms": -5},
    ],
)
def test_rejects_negative_options(options: dict[str, int]) -> None:
    transport = FakeTransport([fake_response(200, {})])
    with pytest.raises(ValidationError):
        PingClient("abc123de", transport=transport, **options)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_default_transport_is_httpx() -> None:
    client = PingClient("abc123de")
    assert isinstance(client._transport, HttpxTransport)
    await client.aclose()


@pytest.mark.asyncio
async def test_ping_normalizes_success_response() -> None:
    transport = FakeTransport([fake_response(200, _OK_BODY)])
    client = _client(transport)
    res = await client.ping()
    assert isinstance(res, PingResult)
    assert res.ok is True
    assert res.action == "ping"
    assert res.job_key == "abc123de"
    assert res.timestamp == "2026-02-25 12:00:00"
    assert res.processing_time_ms == 8.25
    assert res.next_expected is None
    assert res.raw == _OK_BODY
    assert res["processing_time_ms"] == 8.25
    assert res["ok"] is True
    with pytest.raises(KeyError):
        _ = res["unknown"]


@pytest.mark.asyncio
async def test_ping_sends_post_with_standard_headers_and_no_body() -> None:
    transport = FakeTransport([fake_response(200, _OK_BODY)])
    client = PingClient(
        "abc123de",
        base_url="https://cronbeats.test/",
        timeout_ms=1234,
        user_agent="nightly-backup/2.0",
        transport=transport,
    )
    await client.ping()
    call = transport.calls[0]
    assert call.method == "POST"
    assert call.url == "https://cronbeats.test/ping/abc123de"
    assert call.body is None
    assert call.timeout_ms == 1234
    assert call.headers == {
        "content-type": "application/json",
        "accept": "application/json",
        "user-agent": "nightly-backup/2.0",
    }


@pytest.mark.asyncio
async def test_default_user_agent_header() -> None:
    transport = FakeTransport([fake_response(200, {})])
    await PingClient("abc123de", transport=transport).ping()
    assert transport.calls[0].headers["user-agent"] == "cronbeats-python-sdk/0.1.0"
    assert transport.calls[0].url == "https://cronbeats.io/ping/abc123de"
    assert transport.calls[0].timeout_ms == 5000


@pytest.mark.asyncio
async def test_lifecycle_paths() -> None:
    transport = FakeTransport([fake_response(200, {})])
    client = _client(transport)
    start = await client.start()
    success = await client.success()
    fail = await client.fail()
    end_default = await client.end()
    end_fail = await client.end("fail")
    assert [c.url for c in transport.calls] == [
        "https://cronbeats.test/ping/abc123de/start",
        "https://cronbeats.test/ping/abc123de/end/success",
        "https://cronbeats.test/ping/abc123de/end/fail",
        "https://cronbeats.test/ping/abc123de/end/success",
        "https://cronbeats.test/ping/abc123de/end/fail",
    ]
    assert all(c.body is None for c in transport.calls)
    assert start.action == "start"
    assert success.action == "end" and fail.action == "end"
    assert end_default.action == "end" and end_fail.action == "end"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["Success", "FAIL", "ok", "", "success ", "failed"])
async def test_end_rejects_invalid_status_without_request(status: str) -> None:
    transport = FakeTransport([fake_response(200, {})])
    client = _client(transport)
    with pytest.raises(ValidationError):
        await client.end(status)  # type: ignore[arg-type]
    assert transport.call_count == 0


@pytest.mark.asyncio
async def test_normalize_defaults_for_empty_object() -> None:
    transport = FakeTransport([fake_response(200, {})])
    res = await _client(transport).start()
    assert res.action == "start"
    assert res.job_key == "abc123de"
    assert res.timestamp == ""
    assert res.processing_time_ms == 0.0
    assert res.next_expected is None
    assert res.raw == {}


@pytest.mark.asyncio
async def test_normalize_defaults_for_wrong_types() -> None:
    body = {
        "action": 5,
        "job_key": None,
        "timestamp": 1700000000,
        "processing_time_ms": {"nested": True},
        "next_expected": 42,
    }
    res = await _client(FakeTransport([fake_response(200, body)])).ping()
    assert res.action == "ping"
    assert res.job_key == "abc123de"
    assert res.timestamp == ""
    assert res.processing_time_ms == 0.0
    assert res.next_expected is None
    assert res.raw == body


@pytest.mark.asyncio
async def test_normalize_keeps_server_fields_and_next_expected() -> None:
    body = {
        "action": "end",
        "job_key": "zzz999yy",
        "timestamp": "2026-02-25 12:00:00",
        "processing_time_ms": 3,
        "next_expected": "2026-02-26 12:00:00",
        "extra": {"grace": 60},
    }
    res = await _client(FakeTransport([fake_response(201, body)])).success()
    assert res.action == "end"
    assert res.job_key == "zzz999yy"
    assert res.processing_time_ms == 3.0
    assert res.next_expected == "2026-02-26 12:00:00"
    assert res.raw["extra"] == {"grace": 60}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("12.5", 12.5),
        (" 7 ", 7.0),
        ("", 0.0),
        ("fast", 0.0),
        ("nan", 0.0),
        (None, 0.0),
        (True, 1.0),
        (False, 0.0),
    ],
)
async def test_processing_time_coercion(value: str | bool | None, expected: float) -> None:
    body = {"processing_time_ms": value}
    res = await _client(FakeTransport([fake_response(200, body)])).ping()
    assert res.processing_time_ms == expected


@pytest.mark.asyncio
async def test_success_with_invalid_json_body_still_normalizes() -> None:
    transport = FakeTransport([fake_response(200, text="OK")])
    res = await _client(transport).ping()
    assert res.ok is True
    assert res.action == "ping"
    assert res.raw == {"message": "Invalid JSON response"}


@pytest.mark.asyncio
async def test_success_with_non_object_json_body() -> None:
    transport = FakeTransport([fake_response(200, ["not", "an", "object"])])
    res = await _client(transport).ping()
    assert res.raw == {}
    assert res.job_key == "abc123de"


_UNDECODABLE_BODIES = ["1" * 5000, "[" * 200000 + "]" * 200000]


@pytest.mark.asyncio
@pytest.mark.parametrize("text", _UNDECODABLE_BODIES, ids=["long-integer", "deep-nesting"])
async def test_success_with_undecodable_body_still_normalizes(text: str) -> None:
    res = await _client(FakeTransport([fake_response(200, text=text)])).ping()
    assert res.ok is True
    assert res.action == "ping"
    assert res.raw == {"message": "Invalid JSON response"}


@pytest.mark.asyncio
@pytest.mark.parametrize("text", _UNDECODABLE_BODIES, ids=["long-integer", "deep-nesting"])
async def test_server_error_with_undecodable_body_raises_api_error(text: str) -> None:
    sleeper = make_fake_sleep(random_unit=0.0)
    transport = FakeTransport([fake_response(503, text=text)])
    with pytest.raises(ApiError) as exc:
        await _client(transport).ping()
    assert exc.value.code is ApiErrorCode.SERVER_ERROR
    assert exc.value.http_status == 503
    assert exc.value.message == "Invalid JSON response"
    assert transport.call_count == 3
    assert sleeper.delays == [0.25, 0.5]


@pytest.mark.asyncio
async def test_404_maps_to_not_found_without_retry() -> None:
    transport = FakeTransport(
        [fake_response(404, {"status": "error", "message": "Job not found or disabled"})]
    )
    client = _client(transport)
    with pytest.raises(ApiError) as exc:
        await client.ping()
    assert exc.value.code is ApiErrorCode.NOT_FOUND
    assert exc.value.retryable is False
    assert exc.value.http_status == 404
    assert exc.value.message == "Job not found or disabled"
    assert exc.value.raw == {"status": "error", "message": "Job not found or disabled"}
    assert transport.call_count == 1


@pytest.mark.asyncio
async def test_error_message_fallbacks() -> None:
    transport = FakeTransport([fake_response(418, {"status": "error"})])
    with pytest.raises(ApiError) as exc:
        await _client(transport).ping()
    assert exc.value.code is ApiErrorCode.UNKNOWN_ERROR
    assert exc.value.message == "Request failed"

    transport = FakeTransport([fake_response(404, text="<html>Not Found</html>")])
    with pytest.raises(ApiError) as exc:
        await _client(transport).ping()
    assert exc.value.message == "Invalid JSON response"
    assert exc.value.raw == {"message": "Invalid JSON response"}


@pytest.mark.asyncio
async def test_context_manager_closes_owned_transport_only() -> None:
    borrowed = FakeTransport([fake_response(200, {})])
    async with PingClient("abc123de", transport=borrowed) as client:
        await client.ping()
    assert borrowed.closed is False

    owned = PingClient("abc123de")
    await owned.aclose()


class _RequestOnlyTransport:
    """Transport exposing just ``request``, with nothing to close."""

    def __init__(self) -> None:
        self.urls: list[str] = []

    async def request(
        self,
        *,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str | None,
        timeout_ms: int,
    ) -> HttpResponse:
        self.urls.append(url)
        return fake_response(200, {"action": "ping"})


@pytest.mark.asyncio
async def test_request_only_transport_is_accepted() -> None:
    transport = _RequestOnlyTransport()
    assert isinstance(transport, HttpTransport)
    assert not isinstance(transport, ClosableTransport)
    async with PingClient("abc123de", base_url="https://cronbeats.test", transport=transport) as client:
        res = await client.ping()
    assert res.action == "ping"
    assert transport.urls == ["https://cronbeats.test/ping/abc123de"]


@pytest.mark.asyncio
async def test_from_env_reads_settings() -> None:
    make_fake_env(
        {
            "CRONBEATS_BASE_URL": "https://self-hosted.example/",
            "CRONBEATS_TIMEOUT_MS": "900",
            "CRONBEATS_MAX_RETRIES": "0",
            "CRONBEATS_USER_AGENT": "etl/1.0",
        }
    )
    transport = FakeTransport([fake_response(503, {"message": "down"})])
    client = PingClient.from_env("abc123de", transport=transport)
    assert client.base_url == "https://self-hosted.example"
    with pytest.raises(ApiError) as exc:
        await client.ping()
    assert exc.value.code is ApiErrorCode.SERVER_ERROR
    assert transport.call_count == 1
    assert transport.calls[0].timeout_ms == 900
    assert transport.calls[0].headers["user-agent"] == "etl/1.0"


def test_from_env_validates_job_key() -> None:
    make_fake_env()
    with pytest.raises(ValidationError):
        PingClient.from_env("short", transport=FakeTransport([fake_response(200, {})]))


@pytest.mark.asyncio
async def test_request_body_is_compact_json() -> None:
    transport = FakeTransport([fake_response(200, {})])
    await _client(transport).progress(None, "hello")
    body = transport.calls[0].body
    assert body == '{"message":"hello"}'
    assert load_json_str(body) == {"message": "hello"}
