"""Pytest configuration and fixtures for spancanvas tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def clear_spancanvas_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove SPANCANVAS_* variables so every test starts from defaults.

    Tests that need a setting override it with monkeypatch.setenv.
    """
    for key in list(os.environ):
        if key.startswith("SPANCANVAS_"):
            monkeypatch.delenv(key, raising=False)
