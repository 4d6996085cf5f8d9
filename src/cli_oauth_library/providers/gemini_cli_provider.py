# src/cli_oauth_library/providers/gemini_cli_provider.py

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx

from ..error_handler import RefreshError
from ..model_definitions import ModelInfo
from ..timeout_config import TimeoutConfig
from .oauth_base import OAuthCredentials, OAuthProviderBase
from .provider_interface import ProviderConfig, ProviderInterface

lib_logger = logging.getLogger("cli_oauth_library")

TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
OAUTH_CONFIG_URL = "https://api.kilocode.ai/extension-config.json"


@dataclass(frozen=True)
class OAuthClientConfig:
    client_id: str
    client_secret: str


class GeminiCliProvider(OAuthProviderBase, ProviderInterface):
    """
    Gemini models authenticated with the OAuth tokens the `gemini` CLI
    stores in ~/.gemini/oauth_creds.json.

    Google's token endpoint wants the client secret on refresh. It is not
    bundled here: it comes from a remote extension config, fetched on the
    first refresh and kept for the life of the process.
    """

    name = "GeminiCli"
    get_api_key_link = "https://cloud.google.com/code/docs/intellij/gemini-cli-setup"
    label_for_get_api_key = (
        "OAuth credentials required from Gemini CLI. Ensure ~/.gemini/oauth_creds.json exists"
    )
    config = ProviderConfig(
        api_token_key="GEMINI_CLI_OAUTH_PATH",
        base_url_key="GEMINI_CLI_BASE_URL",
        base_url=None,
    )

    TOKEN_ENDPOINT = TOKEN_ENDPOINT
    DEFAULT_CREDENTIAL_DIR = ".gemini"
    LITELLM_PROVIDER = "gemini"
    CLI_COMMAND = "gemini"
    MODELS_ENV_NAME = "gemini_cli"

    static_models = [
        ModelInfo(
            name="gemini-2.5-pro",
            label="Gemini 2.5 Pro - Advanced multimodal model with image support",
            provider="GeminiCli",
            max_token_allowed=1048576,
            max_completion_tokens=64000,
        ),
    ]

    def __init__(self):
        super().__init__()
        self._oauth_config: Optional[OAuthClientConfig] = None

    async def fetch_oauth_config(self) -> OAuthClientConfig:
        """
        Returns the OAuth client id/secret, fetching them on first use.

        Raises:
            RefreshError: If the config cannot be fetched or lacks the fields
        """
        if self._oauth_config is not None:
            return self._oauth_config

        lib_logger.debug(f"{self.name}: Fetching OAuth configuration...")
        try:
            async with httpx.AsyncClient(timeout=TimeoutConfig.token_refresh()) as client:
                response = await client.get(OAUTH_CONFIG_URL)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise RefreshError(
                f"Failed to load OAuth configuration: {e.response.status_code} "
                f"{e.response.reason_phrase}",
                status_code=e.response.status_code,
            ) from e
        except (httpx.RequestError, ValueError) as e:
            raise RefreshError(f"Failed to load OAuth configuration: {e}") from e

        section = data.get("geminiCli") if isinstance(data, dict) else None
        section = section if isinstance(section, dict) else {}
        client_id = section.get("oauthClientId")
        client_secret = section.get("oauthClientSecret")
        if not client_id or not client_secret:
            raise RefreshError(
                "Failed to load OAuth configuration: OAuth client credentials not found in config"
            )

        self._oauth_config = OAuthClientConfig(client_id, client_secret)
        lib_logger.info(f"{self.name}: OAuth configuration loaded successfully")
        return self._oauth_config

    async def _build_refresh_payload(self, refresh_token: str) -> Dict[str, str]:
        oauth_config = await self.fetch_oauth_config()
        return {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": oauth_config.client_id,
            "client_secret": oauth_config.client_secret,
        }

    def get_extra_headers(self, creds: OAuthCredentials) -> Dict[str, str]:
        # OAuth tokens are bearer credentials, not API keys
        return {"Authorization": f"Bearer {creds.access_token}"}

    async def _fetch_dynamic_models(self) -> List[ModelInfo]:
        # No listing endpoint for CLI-authenticated accounts
        lib_logger.debug(f"{self.name}: OAuth authentication successful, using static models")
        return []
