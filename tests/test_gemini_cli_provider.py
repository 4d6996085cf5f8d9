import httpx
import pytest
import respx

from cli_oauth_library.error_handler import CredentialLoadError, RefreshError
from cli_oauth_library.providers.gemini_cli_provider import (
    OAUTH_CONFIG_URL,
    TOKEN_ENDPOINT,
    GeminiCliProvider,
)
from cli_oauth_library.providers.oauth_base import OAuthCredentials
from cli_oauth_library.providers.provider_interface import ProviderSetting

from conftest import now_ms

CONFIG_BODY = {
    "geminiCli": {"oauthClientId": "remote-id", "oauthClientSecret": "remote-secret"}
}


@pytest.mark.asyncio
async def test_oauth_config_is_fetched_once():
    provider = GeminiCliProvider()

    with respx.mock() as mock:
        route = mock.get(OAUTH_CONFIG_URL).mock(return_value=httpx.Response(200, json=CONFIG_BODY))
        first = await provider.fetch_oauth_config()
        second = await provider.fetch_oauth_config()

    assert route.call_count == 1
    assert first is second
    assert (first.client_id, first.client_secret) == ("remote-id", "remote-secret")


@pytest.mark.asyncio
async def test_refresh_sends_client_secret_from_remote_config(write_creds):
    provider = GeminiCliProvider()
    path = write_creds(expiry_date=now_ms() - 1000)

    with respx.mock() as mock:
        mock.get(OAUTH_CONFIG_URL).mock(return_value=httpx.Response(200, json=CONFIG_BODY))
        token_route = mock.post(TOKEN_ENDPOINT).mock(
            return_value=httpx.Response(200, json={"access_token": "G2", "expires_in": 3599})
        )
        token = await provider.ensure_ready(ProviderSetting(base_url=str(path)))

    form = dict(httpx.QueryParams(token_route.calls.last.request.content.decode()))
    assert form == {
        "grant_type": "refresh_token",
        "refresh_token": "R1",
        "client_id": "remote-id",
        "client_secret": "remote-secret",
    }
    assert token == "G2"


@pytest.mark.asyncio
async def test_missing_config_fields_fail_refresh_without_token_call(write_creds):
    provider = GeminiCliProvider()
    path = write_creds(expiry_date=now_ms() - 1000)

    with respx.mock(assert_all_called=False) as mock:
        mock.get(OAUTH_CONFIG_URL).mock(
            return_value=httpx.Response(200, json={"geminiCli": {"oauthClientId": "remote-id"}})
        )
        token_route = mock.post(TOKEN_ENDPOINT)
        with pytest.raises(RefreshError, match="OAuth client credentials not found"):
            await provider.ensure_ready(ProviderSetting(base_url=str(path)))

    assert token_route.call_count == 0
    assert provider._oauth_config is None


@pytest.mark.asyncio
async def test_config_http_error_raises_refresh_error():
    provider = GeminiCliProvider()

    with respx.mock() as mock:
        mock.get(OAUTH_CONFIG_URL).mock(return_value=httpx.Response(502))
        with pytest.raises(RefreshError) as excinfo:
            await provider.fetch_oauth_config()

    assert excinfo.value.status_code == 502


@pytest.mark.asyncio
async def test_config_network_error_raises_refresh_error():
    provider = GeminiCliProvider()

    with respx.mock() as mock:
        mock.get(OAUTH_CONFIG_URL).mock(side_effect=httpx.ConnectError("no route to host"))
        with pytest.raises(RefreshError, match="no route to host"):
            await provider.fetch_oauth_config()


def test_bearer_header_follows_token(gemini_provider):
    creds = OAuthCredentials(access_token="G1", refresh_token="R1")
    assert gemini_provider.get_extra_headers(creds) == {"Authorization": "Bearer G1"}


@pytest.mark.asyncio
async def test_client_is_rebound_with_new_bearer_header(gemini_provider, write_creds):
    path = write_creds(access_token="G1")
    await gemini_provider.ensure_ready(ProviderSetting(base_url=str(path)))
    client = gemini_provider._client
    assert client.request_params() == {
        "api_key": "G1",
        "extra_headers": {"Authorization": "Bearer G1"},
    }

    with respx.mock() as mock:
        mock.post(TOKEN_ENDPOINT).mock(
            return_value=httpx.Response(200, json={"access_token": "G2", "expires_in": 3599})
        )
        await gemini_provider.refresh_access_token()
    gemini_provider._ensure_client()

    assert gemini_provider._client is client
    assert client.extra_headers == {"Authorization": "Bearer G2"}


@pytest.mark.asyncio
async def test_base_url_override_from_env(gemini_provider, write_creds):
    path = write_creds()
    await gemini_provider.ensure_ready(
        ProviderSetting(base_url=str(path)),
        {"GEMINI_CLI_BASE_URL": "https://gemini-proxy.internal/v1beta"},
    )
    assert gemini_provider._client.base_url == "https://gemini-proxy.internal/v1beta"


@pytest.mark.asyncio
async def test_dynamic_models_are_empty_and_static_list_is_used(gemini_provider, write_creds):
    path = write_creds()
    settings = ProviderSetting(base_url=str(path))

    assert await gemini_provider.get_dynamic_models(settings=settings) == []

    models = await gemini_provider.get_models(settings=settings)
    assert [m.name for m in models] == ["gemini-2.5-pro"]
    assert models[0].max_token_allowed == 1048576
    assert models[0].max_completion_tokens == 64000


@pytest.mark.asyncio
async def test_missing_file_hint_names_gemini_cli(gemini_provider, isolated_env):
    with pytest.raises(CredentialLoadError) as excinfo:
        await gemini_provider.ensure_ready()

    assert excinfo.value.credential_path == str(isolated_env / ".gemini" / "oauth_creds.json")
    assert "`gemini` CLI" in excinfo.value.hint
