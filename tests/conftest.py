"""
Shared fixtures: every test runs against default config, never the user's.
"""

import os

import pytest

from hierdoc.config import Config, reset_config


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    for key in list(os.environ):
        if key.startswith("HIERDOC_"):
            monkeypatch.delenv(key)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config():
    return Config()
