"""Public test fakes for code that reports through cronbeats.

The transport fakes satisfy HttpTransport structurally, so they can be passed
straight to ``PingClient(transport=...)``. ``make_fake_env`` and
``make_fake_sleep`` install themselves into ``cronbeats._test_hooks``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from cronbeats import _test_hooks
from cronbeats.http_client import HttpResponse
from cronbeats.json_utils import JSONValue, dump_json_str


class RecordedRequest:
    __slots__ = ("body", "headers", "method", "timeout_ms", "url")

    def __init__(
        self,
        *,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str | None,
        timeout_ms: int,
    ) -> None:
        self.method = method
        self.url = url
        self.headers: dict[str, str] = dict(headers)
        self.body = body
        self.timeout_ms = timeout_ms


def fake_response(
    status: int,
    json_body: JSONValue | None = None,
    *,
    text: str | None = None,
    headers: Mapping[str, str] | None = None,
) -> HttpResponse:
    """Build an HttpResponse from either a JSON value or raw text."""
    if text is None:
        text = "" if json_body is None else dump_json_str(json_body)
    return HttpResponse(status=status, body=text, headers=headers or {})


class FakeTransport:
    """Replays scripted responses in order and records every request.

    Once the script is exhausted the last entry repeats. An entry that is an
    exception is raised instead of returned.
    """

    def __init__(self, responses: Sequence[HttpResponse | BaseException]) -> None:
        if len(responses) == 0:
            raise ValueError("FakeTransport needs at least one scripted response")
        self._responses = list(responses)
        self._idx = 0
        self.calls: list[RecordedRequest] = []
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def request(
        self,
        *,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str | None,
        timeout_ms: int,
    ) -> HttpResponse:
        self.calls.append(
            RecordedRequest(
                method=method, url=url, headers=headers, body=body, timeout_ms=timeout_ms
            )
        )
        entry = self._responses[min(self._idx, len(self._responses) - 1)]
        self._idx += 1
        if isinstance(entry, BaseException):
            raise entry
        return entry

    async def aclose(self) -> None:
        self.closed = True


class FakeTransportRaises(FakeTransport):
    """Transport whose every request raises the given exception."""

    def __init__(self, exc: BaseException) -> None:
        super().__init__([exc])


class FakeEnv:
    """In-memory environment installed as ``_test_hooks.get_env``."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def unset(self, key: str) -> None:
        self._values.pop(key, None)

    def get(self, key: str) -> str | None:
        return self._values.get(key)


def make_fake_env(values: Mapping[str, str] | None = None) -> FakeEnv:
    env = FakeEnv()
    for key, value in (values or {}).items():
        env.set(key, value)
    _test_hooks.get_env = env.get
    return env


class FakeSleep:
    """Records requested backoff delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_fake_sleep(*, random_unit: float | None = None) -> FakeSleep:
    """Install a recording sleep hook and, optionally, a fixed jitter source."""
    sleeper = FakeSleep()
    _test_hooks.sleep = sleeper
    if random_unit is not None:
        fixed = float(random_unit)
        _test_hooks.random_unit = lambda: fixed
    return sleeper


__all__ = [
    "FakeEnv",
    "FakeSleep",
    "FakeTransport",
    "FakeTransportRaises",
    "RecordedRequest",
    "fake_response",
    "make_fake_env",
    "make_fake_sleep",
]
