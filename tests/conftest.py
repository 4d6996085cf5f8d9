"""
Pytest configuration and fixtures for the test suite.
"""
import json
import os
import sys
import time

import pytest

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from cli_oauth_library.model_definitions import ModelDefinitions
from cli_oauth_library.provider_factory import reset_provider_instances
from cli_oauth_library.providers.gemini_cli_provider import (
    GeminiCliProvider,
    OAuthClientConfig,
)
from cli_oauth_library.providers.qwen_code_provider import QwenCodeProvider

ENV_KEYS = (
    "QWEN_OAUTH_PATH",
    "QWEN_BASE_URL",
    "QWEN_CODE_MODELS",
    "GEMINI_CLI_OAUTH_PATH",
    "GEMINI_CLI_BASE_URL",
    "GEMINI_CLI_MODELS",
)


def now_ms() -> int:
    return int(time.time() * 1000)


def make_creds(**overrides):
    """Credential file payload, valid for an hour unless overridden."""
    creds = {
        "access_token": "A1",
        "refresh_token": "R1",
        "token_type": "Bearer",
        "expiry_date": now_ms() + 3600 * 1000,
    }
    creds.update(overrides)
    return creds


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Points $HOME at a temp dir and clears provider env vars."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    ModelDefinitions().reload_definitions()
    reset_provider_instances()
    yield home
    reset_provider_instances()


@pytest.fixture
def write_creds(tmp_path):
    """Writes a credential file and returns its path."""

    def _write(name="oauth_creds.json", **overrides):
        path = tmp_path / name
        path.write_text(json.dumps(make_creds(**overrides)), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def qwen_provider():
    return QwenCodeProvider()


@pytest.fixture
def gemini_provider():
    provider = GeminiCliProvider()
    # Skip the remote config fetch unless a test exercises it
    provider._oauth_config = OAuthClientConfig("gemini-client-id", "gemini-client-secret")
    return provider
