"""Shared pytest fixtures."""

import os

import pytest

import ratecounter.config as config_mod
from ratecounter.config import Settings

# 2017-05-17 19:20:10 UTC, second 10 of its minute
WAYBACK = 1495048810.0


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = WAYBACK) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def clean_config(monkeypatch, tmp_path):
    """Isolate tests from any config file or env vars on the host."""
    for key in list(os.environ):
        if key.startswith("RATECOUNTER_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    config_mod._config_path_override = None
    config_mod.clear_settings_cache()
    yield
    config_mod._config_path_override = None
    config_mod.clear_settings_cache()


@pytest.fixture
def make_settings(tmp_path):
    """Factory for settings that persist into the test's tmp_path."""

    def _make(**overrides) -> Settings:
        values = {
            "output_file": tmp_path / "counter.json",
            "flush_interval": 3600.0,
            "snapshot_interval": 0.0,
        }
        values.update(overrides)
        return Settings(**values)

    return _make
