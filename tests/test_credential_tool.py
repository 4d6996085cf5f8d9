import io
import json

import httpx
import pytest
import respx
from rich.console import Console

from cli_oauth_library import credential_tool
from cli_oauth_library.provider_factory import (
    get_available_providers,
    get_provider_class,
    get_provider_instance,
)
from cli_oauth_library.providers import PROVIDER_PLUGINS
from cli_oauth_library.providers.gemini_cli_provider import GeminiCliProvider
from cli_oauth_library.providers.qwen_code_provider import TOKEN_ENDPOINT, QwenCodeProvider

from conftest import make_creds, now_ms


@pytest.fixture
def console(monkeypatch):
    console = Console(file=io.StringIO(), width=1000, color_system=None)
    monkeypatch.setattr(credential_tool, "console", console)
    monkeypatch.setattr(credential_tool, "_setup_logging", lambda verbose: None)
    return console


def _write_home_creds(home, directory, **overrides):
    path = home / directory / "oauth_creds.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps(make_creds(**overrides)))
    return path


def test_registry_discovers_both_providers():
    assert PROVIDER_PLUGINS["qwen_code"] is QwenCodeProvider
    assert PROVIDER_PLUGINS["gemini_cli"] is GeminiCliProvider
    assert get_available_providers() == ["gemini_cli", "qwen_code"]


@pytest.mark.parametrize("name", ["qwen_code", "QwenCode", "qwen-code", "QWEN_CODE"])
def test_provider_names_are_normalized(name):
    assert get_provider_class(name) is QwenCodeProvider


def test_unknown_provider_is_rejected():
    with pytest.raises(ValueError, match="Unknown provider"):
        get_provider_instance("openrouter")


def test_instances_are_shared():
    assert get_provider_instance("gemini_cli") is get_provider_instance("GeminiCli")


@pytest.mark.asyncio
async def test_collect_status_reports_each_provider(isolated_env):
    _write_home_creds(isolated_env, ".qwen")

    rows = {row["provider"]: row for row in await credential_tool.collect_status()}

    assert rows["QwenCode"]["exists"] is True
    assert rows["QwenCode"]["valid"] is True
    assert 3500 <= rows["QwenCode"]["expires_in_seconds"] <= 3600
    assert rows["QwenCode"]["error"] is None
    assert rows["GeminiCli"]["exists"] is False
    assert rows["GeminiCli"]["error"] == "file not found"


@pytest.mark.asyncio
async def test_status_never_shows_tokens(isolated_env):
    _write_home_creds(isolated_env, ".qwen", access_token="secret-access", refresh_token="secret-refresh")

    rows = await credential_tool.collect_status("qwen_code")
    output = io.StringIO()
    Console(file=output, width=200).print(credential_tool.render_status(rows))

    assert "secret" not in output.getvalue()
    assert "valid" in output.getvalue()


def test_format_expiry():
    assert credential_tool._format_expiry(None) == "-"
    assert credential_tool._format_expiry(-120) == "expired 2m ago"
    assert credential_tool._format_expiry(3 * 3600 + 25 * 60) == "3h 25m"


def test_main_status_exit_code(isolated_env, console, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert credential_tool.main(["status"]) == 0
    assert "QwenCode" in console.file.getvalue()


def test_main_refresh_fails_without_credentials(isolated_env, console, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert credential_tool.main(["refresh", "--provider", "qwen_code"]) == 1
    assert "file not found" in console.file.getvalue()


def test_main_refresh_renews_expired_token(isolated_env, console, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    _write_home_creds(isolated_env, ".qwen", expiry_date=now_ms() - 1000)

    with respx.mock() as mock:
        mock.post(TOKEN_ENDPOINT).mock(
            return_value=httpx.Response(200, json={"access_token": "A2", "expires_in": 3600})
        )
        assert credential_tool.main(["refresh", "--provider", "qwen_code"]) == 0

    assert "access token ready" in console.file.getvalue()
    assert get_provider_instance("qwen_code").credentials.access_token == "A2"
