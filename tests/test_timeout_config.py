import httpx

from cli_oauth_library.timeout_config import TimeoutConfig


def test_defaults(monkeypatch):
    for key in ("TIMEOUT_CONNECT", "TIMEOUT_READ_TOKEN", "TIMEOUT_READ_NON_STREAMING"):
        monkeypatch.delenv(key, raising=False)

    timeout = TimeoutConfig.token_refresh()
    assert isinstance(timeout, httpx.Timeout)
    assert timeout.connect == 30.0
    assert timeout.read == 30.0
    assert TimeoutConfig.non_streaming().read == 600.0
    assert TimeoutConfig.completion_seconds() == 600.0


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("TIMEOUT_READ_TOKEN", "5")
    monkeypatch.setenv("TIMEOUT_READ_NON_STREAMING", "120.5")

    assert TimeoutConfig.token_refresh().read == 5.0
    assert TimeoutConfig.completion_seconds() == 120.5


def test_invalid_override_falls_back_to_default(monkeypatch, caplog):
    monkeypatch.setenv("TIMEOUT_CONNECT", "fast")

    assert TimeoutConfig.connect() == 30.0
    assert "Invalid value for TIMEOUT_CONNECT" in caplog.text
