"""Shared test fixtures for cronbeats tests."""

from __future__ import annotations

from collections.abc import Generator

import pytest

from cronbeats import _test_hooks


@pytest.fixture(autouse=True)
def _restore_test_hooks() -> Generator[None, None, None]:
    """Restore _test_hooks after each test."""
    original_get_env = _test_hooks.get_env
    original_sleep = _test_hooks.sleep
    original_random_unit = _test_hooks.random_unit
    yield
    _test_hooks.get_env = original_get_env
    _test_hooks.sleep = original_sleep
    _test_hooks.random_unit = original_random_unit
