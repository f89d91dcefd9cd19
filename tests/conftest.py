"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from serverwarden.config import get_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings are cached process-wide; isolate each test from the others."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
