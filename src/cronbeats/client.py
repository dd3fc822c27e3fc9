from __future__ import annotations

import math
import re
from collections.abc import Mapping
from types import TracebackType
from typing import Literal, TypedDict

from cronbeats import _test_hooks
from cronbeats.config import (
    DEFAULT_BASE_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BACKOFF_MS,
    DEFAULT_RETRY_JITTER_MS,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_USER_AGENT,
    load_client_settings,
)
from cronbeats.errors import ApiError, ApiErrorCode, ValidationError, classify_status
from cronbeats.http_client import ClosableTransport, HttpResponse, HttpTransport, HttpxTransport
from cronbeats.json_utils import JSONObject, JSONValue, dump_json_str, load_json_object_or_default
from cronbeats.logging import PingLogFields, get_logger

_logger = get_logger(__name__)

_JOB_KEY_RE = re.compile(r"[A-Za-z0-9]{8}")

MAX_MESSAGE_LENGTH = 255

EndStatus = Literal["success", "fail"]


class ProgressOptions(TypedDict, total=False):
    seq: int
    message: str


class PingResult:
    """Normalized outcome of a successful lifecycle call."""

    __slots__ = (
        "action",
        "job_key",
        "next_expected",
        "ok",
        "processing_time_ms",
        "raw",
        "timestamp",
    )

    def __init__(
        self,
        *,
        action: str,
        job_key: str,
        timestamp: str,
        processing_time_ms: float,
        next_expected: str | None,
        raw: JSONObject,
    ) -> None:
        self.ok: Literal[True] = True
        self.action = action
        self.job_key = job_key
        self.timestamp = timestamp
        self.processing_time_ms = processing_time_ms
        self.next_expected = next_expected
        self.raw = raw

    def __getitem__(self, key: str) -> bool | str | float | JSONObject | None:
        if key == "ok":
            return self.ok
        if key == "action":
            return self.action
        if key == "job_key":
            return self.job_key
        if key == "timestamp":
            return self.timestamp
        if key == "processing_time_ms":
            return self.processing_time_ms
        if key == "next_expected":
            return self.next_expected
        if key == "raw":
            return self.raw
        raise KeyError(key)

    def __repr__(self) -> str:
        return (
            f"PingResult(action={self.action!r}, job_key={self.job_key!r}, "
            f"timestamp={self.timestamp!r}, processing_time_ms={self.processing_time_ms!r}, "
            f"next_expected={self.next_expected!r})"
        )


class PingClient:
    """Reports the lifecycle of one scheduled job to CronBeats.

    Each call POSTs to ``{base_url}/ping/{job_key}[...]`` and retries network
    faults, 429 and 5xx responses with exponential backoff plus jitter, up to
    ``max_retries`` extra attempts. 400, 404 and other statuses fail at once.

    Usage:
        async with PingClient("abc123de") as client:
            await client.start()
            await client.progress(50, "halfway")
            await client.success()
    """

    def __init__(
        self,
        job_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff_ms: int = DEFAULT_RETRY_BACKOFF_MS,
        retry_jitter_ms: int = DEFAULT_RETRY_JITTER_MS,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: HttpTransport | None = None,
    ) -> None:
        _require_job_key(job_key)
        self._job_key = job_key
        self._base_url = base_url.rstrip("/")
        self._timeout_ms = _require_non_negative("timeout_ms", timeout_ms)
        self._max_retries = _require_non_negative("max_retries", max_retries)
        self._retry_backoff_ms = _require_non_negative("retry_backoff_ms", retry_backoff_ms)
        self._retry_jitter_ms = _require_non_negative("retry_jitter_ms", retry_jitter_ms)
        self._user_agent = user_agent
        self._owned_transport: ClosableTransport | None = None
        if transport is None:
            self._owned_transport = HttpxTransport()
            transport = self._owned_transport
        self._transport: HttpTransport = transport

    @classmethod
    def from_env(cls, job_key: str, *, transport: HttpTransport | None = None) -> PingClient:
        """Build a client whose options come from CRONBEATS_* environment variables."""
        settings = load_client_settings()
        return cls(
            job_key,
            base_url=settings["base_url"],
            timeout_ms=settings["timeout_ms"],
            max_retries=settings["max_retries"],
            retry_backoff_ms=settings["retry_backoff_ms"],
            retry_jitter_ms=settings["retry_jitter_ms"],
            user_agent=settings["user_agent"],
            transport=transport,
        )

    @property
    def job_key(self) -> str:
        return self._job_key

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        if self._owned_transport is not None:
            await self._owned_transport.aclose()

    async def __aenter__(self) -> PingClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def ping(self) -> PingResult:
        return await self._request("ping", f"/ping/{self._job_key}")

    async def start(self) -> PingResult:
        return await self._request("start", f"/ping/{self._job_key}/start")

    async def end(self, status: EndStatus = "success") -> PingResult:
        if status != "success" and status != "fail":
            raise ValidationError('Status must be "success" or "fail".')
        return await self._request("end", f"/ping/{self._job_key}/end/{status}")

    async def success(self) -> PingResult:
        return await self.end("success")

    async def fail(self) -> PingResult:
        return await self.end("fail")

    async def progress(
        self,
        seq_or_options: int | ProgressOptions | None = None,
        message: str | None = None,
    ) -> PingResult:
        """Report progress as a sequence number, a message, or both.

        ``progress(50, "msg")`` and ``progress({"seq": 50, "message": "msg"})``
        send the same request. Without a sequence the message-only endpoint is
        used. Messages longer than 255 characters are truncated.
        """
        seq, msg = _resolve_progress(seq_or_options, message)
        body: JSONObject = {"message": msg[:MAX_MESSAGE_LENGTH]}
        if seq is not None:
            return await self._request("progress", f"/ping/{self._job_key}/progress/{seq}", body)
        return await self._request("progress", f"/ping/{self._job_key}/progress", body)

    async def _request(
        self,
        action: str,
        path: str,
        body: JSONObject | None = None,
    ) -> PingResult:
        url = f"{self._base_url}{path}"
        payload = dump_json_str(body) if body else None
        headers = self._headers()

        attempt = 0
        while True:
            _logger.debug(
                "cronbeats %s attempt %d: POST %s",
                action,
                attempt + 1,
                url,
                extra=self._log_fields(action, attempt + 1),
            )
            try:
                resp: HttpResponse = await self._transport.request(
                    method="POST",
                    url=url,
                    headers=headers,
                    body=payload,
                    timeout_ms=self._timeout_ms,
                )
            except ValidationError:
                raise
            except ApiError as exc:
                if exc.code is not ApiErrorCode.NETWORK_ERROR:
                    raise
                if attempt >= self._max_retries:
                    self._log_exhausted(action, attempt, exc)
                    raise
                attempt += 1
                await self._sleep_with_backoff(action, attempt, exc.code, None)
                continue
            except Exception as exc:
                if attempt >= self._max_retries:
                    wrapped = ApiError(
                        ApiErrorCode.NETWORK_ERROR,
                        str(exc) or "Network error",
                        retryable=True,
                        raw=exc,
                    )
                    self._log_exhausted(action, attempt, wrapped)
                    raise wrapped from exc
                attempt += 1
                await self._sleep_with_backoff(action, attempt, ApiErrorCode.NETWORK_ERROR, None)
                continue

            parsed = load_json_object_or_default(resp.body)
            if 200 <= resp.status < 300:
                return self._normalize_success(action, parsed)

            code, retryable = classify_status(resp.status)
            if retryable and attempt < self._max_retries:
                attempt += 1
                await self._sleep_with_backoff(action, attempt, code, resp.status)
                continue

            server_message = parsed.get("message")
            error = ApiError(
                code,
                server_message if isinstance(server_message, str) else "Request failed",
                http_status=resp.status,
                retryable=retryable,
                raw=parsed,
            )
            if retryable:
                self._log_exhausted(action, attempt, error)
            raise error

    def _headers(self) -> dict[str, str]:
        return {
            "content-type": "application/json",
            "accept": "application/json",
            "user-agent": self._user_agent,
        }

    def _normalize_success(self, action: str, payload: JSONObject) -> PingResult:
        action_val = payload.get("action")
        job_key_val = payload.get("job_key")
        timestamp_val = payload.get("timestamp")
        next_expected_val = payload.get("next_expected")
        return PingResult(
            action=action_val if isinstance(action_val, str) else action,
            job_key=job_key_val if isinstance(job_key_val, str) else self._job_key,
            timestamp=timestamp_val if isinstance(timestamp_val, str) else "",
            processing_time_ms=_coerce_ms(payload.get("processing_time_ms")),
            next_expected=next_expected_val if isinstance(next_expected_val, str) else None,
            raw=payload,
        )

    def _backoff_ms(self, attempt: int) -> int:
        base = self._retry_backoff_ms * 2 ** max(0, attempt - 1)
        jitter_span = self._retry_jitter_ms + 1
        jitter = min(int(_test_hooks.random_unit() * jitter_span), self._retry_jitter_ms)
        return base + jitter

    async def _sleep_with_backoff(
        self,
        action: str,
        attempt: int,
        code: ApiErrorCode,
        http_status: int | None,
    ) -> None:
        wait_ms = self._backoff_ms(attempt)
        fields = self._log_fields(action, attempt)
        fields["error_code"] = code.value
        fields["delay_ms"] = wait_ms
        if http_status is not None:
            fields["http_status"] = http_status
        _logger.warning(
            "cronbeats %s failed with %s; retry %d/%d in %dms",
            action,
            code.value,
            attempt,
            self._max_retries,
            wait_ms,
            extra=fields,
        )
        await _test_hooks.sleep(wait_ms / 1000.0)

    def _log_exhausted(self, action: str, attempt: int, error: ApiError) -> None:
        fields = self._log_fields(action, attempt + 1)
        fields["error_code"] = error.code.value
        if error.http_status is not None:
            fields["http_status"] = error.http_status
        _logger.warning(
            "cronbeats %s gave up after %d attempt(s): %s",
            action,
            attempt + 1,
            error.message,
            extra=fields,
        )

    def _log_fields(self, action: str, attempt: int) -> PingLogFields:
        return {"job_key": self._job_key, "action": action, "attempt": attempt}


def _require_job_key(job_key: str) -> None:
    if not isinstance(job_key, str) or _JOB_KEY_RE.fullmatch(job_key) is None:
        raise ValidationError("job_key must be exactly 8 Base62 characters.")


def _require_non_negative(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer.")
    return value


def _resolve_progress(
    seq_or_options: int | float | Mapping[str, object] | None,
    message: str | None,
) -> tuple[int | None, str]:
    seq: int | float | None = None
    msg = message if message is not None else ""

    if isinstance(seq_or_options, bool):
        raise ValidationError("Progress seq must be a non-negative integer.")
    if isinstance(seq_or_options, (int, float)):
        seq = seq_or_options
    elif isinstance(seq_or_options, Mapping):
        seq_val = seq_or_options.get("seq")
        if isinstance(seq_val, (int, float)) and not isinstance(seq_val, bool):
            seq = seq_val
        msg_val = seq_or_options.get("message")
        if isinstance(msg_val, str):
            msg = msg_val
    elif seq_or_options is not None:
        raise ValidationError("Progress seq must be a non-negative integer.")

    if seq is None:
        return None, msg
    if isinstance(seq, float):
        if not seq.is_integer():
            raise ValidationError("Progress seq must be a non-negative integer.")
        seq = int(seq)
    if seq < 0:
        raise ValidationError("Progress seq must be a non-negative integer.")
    return seq, msg


def _coerce_ms(value: JSONValue) -> float:
    if value is None:
        return 0.0
    if isinstance(value, (bool, int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip()) if value.strip() != "" else 0.0
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


__all__ = [
    "MAX_MESSAGE_LENGTH",
    "EndStatus",
    "PingClient",
    "PingResult",
    "ProgressOptions",
]
