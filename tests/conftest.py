from __future__ import annotations

import os

import pytest

# app.main reads settings at import time; give it a key before any test imports it.
os.environ.setdefault("OPENROUTER_API_KEY", "test-key")

from config.settings import get_settings  # noqa: E402


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
