"""Tests for environment-driven log levels."""

import pytest
from ordering.utils.logging import get_log_level


@pytest.mark.parametrize(
    "env, level",
    [("production", "INFO"), ("development", "DEBUG"), ("test", "WARNING"), ("unknown", "INFO")],
)
def test_level_follows_environment(monkeypatch, env, level):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    monkeypatch.setenv("PROTEAN_ENV", env)
    assert get_log_level() == level


def test_explicit_level_wins(monkeypatch):
    monkeypatch.setenv("PROTEAN_ENV", "production")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    assert get_log_level() == "DEBUG"
