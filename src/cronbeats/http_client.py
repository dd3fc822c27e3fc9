from __future__ import annotations

from collections.abc import Mapping
from types import ModuleType
from typing import Protocol, runtime_checkable

from cronbeats.errors import ApiError, ApiErrorCode
from cronbeats.logging import get_logger

_logger = get_logger(__name__)


class HttpResponse:
    """Status, text body and lower-cased headers of a completed HTTP exchange."""

    __slots__ = ("body", "headers", "status")

    def __init__(self, *, status: int, body: str, headers: Mapping[str, str]) -> None:
        self.status = int(status)
        self.body = body
        self.headers: dict[str, str] = {k.lower(): v for k, v in headers.items()}

    def __getitem__(self, key: str) -> int | str | dict[str, str]:
        if key == "status":
            return self.status
        if key == "body":
            return self.body
        if key == "headers":
            return self.headers
        raise KeyError(key)

    def __repr__(self) -> str:
        return f"HttpResponse(status={self.status!r}, body={self.body!r})"


@runtime_checkable
class HttpTransport(Protocol):
    """The one capability PingClient needs from the network.

    Implementations issue a single HTTP request bounded by ``timeout_ms`` and
    return the response whatever its status. On timeout or connection-level
    failure they raise ApiError with code NETWORK_ERROR and retryable=True.
    """

    async def request(
        self,
        *,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str | None,
        timeout_ms: int,
    ) -> HttpResponse: ...


@runtime_checkable
class ClosableTransport(HttpTransport, Protocol):
    """An HttpTransport that holds a connection pool released by ``aclose``."""

    async def aclose(self) -> None: ...


class HttpxResponse(Protocol):
    status_code: int
    text: str
    headers: Mapping[str, str]


class Timeout(Protocol):
    def __repr__(self) -> str: ...


class _TimeoutCtor(Protocol):
    def __call__(self, timeout: float) -> Timeout: ...


class HttpxAsyncClient(Protocol):
    async def aclose(self) -> None: ...

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        content: str | None = None,
        timeout: Timeout,
    ) -> HttpxResponse: ...


class _AsyncClientCtor(Protocol):
    def __call__(self, *, timeout: Timeout) -> HttpxAsyncClient: ...


def _load_httpx() -> tuple[_TimeoutCtor, _AsyncClientCtor, type[Exception]]:
    mod: ModuleType = __import__("httpx")
    timeout_ctor: _TimeoutCtor = object.__getattribute__(mod, "Timeout")
    async_ctor: _AsyncClientCtor = object.__getattribute__(mod, "AsyncClient")
    http_error: type[Exception] = object.__getattribute__(mod, "HTTPError")
    return timeout_ctor, async_ctor, http_error


def build_async_client(timeout_seconds: float) -> HttpxAsyncClient:
    timeout_ctor, async_ctor, _ = _load_httpx()
    return async_ctor(timeout=timeout_ctor(float(timeout_seconds)))


class HttpxTransport(ClosableTransport):
    """HttpTransport backed by httpx.AsyncClient.

    A client passed in is borrowed and left open by ``aclose``; a client built
    here is owned and closed by it.
    """

    def __init__(self, *, client: HttpxAsyncClient | None = None) -> None:
        timeout_ctor, _, http_error = _load_httpx()
        self._timeout_ctor = timeout_ctor
        self._http_error = http_error
        self._owns_client = client is None
        self._client: HttpxAsyncClient = build_async_client(5.0) if client is None else client

    async def request(
        self,
        *,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str | None,
        timeout_ms: int,
    ) -> HttpResponse:
        timeout = self._timeout_ctor(max(0, int(timeout_ms)) / 1000.0)
        try:
            resp = await self._client.request(
                method,
                url,
                headers=dict(headers),
                content=body,
                timeout=timeout,
            )
        except self._http_error as exc:
            _logger.debug("transport failure for %s %s: %s", method, url, exc)
            message = str(exc) or "Network error"
            raise ApiError(
                ApiErrorCode.NETWORK_ERROR,
                message,
                retryable=True,
                raw=exc,
            ) from exc
        return HttpResponse(
            status=resp.status_code,
            body=resp.text,
            headers=dict(resp.headers.items()),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = [
    "ClosableTransport",
    "HttpResponse",
    "HttpTransport",
    "HttpxAsyncClient",
    "HttpxResponse",
    "HttpxTransport",
    "Timeout",
    "build_async_client",
]
