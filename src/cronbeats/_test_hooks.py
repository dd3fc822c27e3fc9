"""Test hooks for cronbeats - allows injecting test dependencies.

Production code calls these module-level callables directly; tests assign
fakes before running the code under test (see cronbeats.testing) and the
conftest restores the originals afterwards.

Usage in production code:
    from cronbeats import _test_hooks
    await _test_hooks.sleep(0.25)

Usage in tests:
    from cronbeats import _test_hooks
    _test_hooks.random_unit = lambda: 0.0
"""

from __future__ import annotations

import asyncio
import os
import random
from collections.abc import Awaitable, Callable
from typing import Protocol


class SleepProtocol(Protocol):
    """Protocol for the backoff sleep (seconds)."""

    def __call__(self, seconds: float) -> Awaitable[None]: ...


def _default_get_env(key: str) -> str | None:
    """Production implementation - reads from os.environ."""
    return os.getenv(key)


async def _default_sleep(seconds: float) -> None:
    """Production implementation - yields to the event loop for ``seconds``."""
    await asyncio.sleep(seconds)


def _default_random_unit() -> float:
    """Production implementation - uniform float in [0.0, 1.0)."""
    return random.random()  # noqa: S311


# Hook for environment variable access. Tests can override to provide fake values.
get_env: Callable[[str], str | None] = _default_get_env

# Hook for the delay between retry attempts.
sleep: SleepProtocol = _default_sleep

# Hook for the jitter randomness source.
random_unit: Callable[[], float] = _default_random_unit


__all__ = ["SleepProtocol", "get_env", "random_unit", "sleep"]
