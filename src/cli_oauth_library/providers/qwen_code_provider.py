# src/cli_oauth_library/providers/qwen_code_provider.py

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..model_definitions import ModelInfo
from ..timeout_config import TimeoutConfig
from .oauth_base import OAuthCredentials, OAuthProviderBase
from .provider_interface import ProviderConfig, ProviderInterface

lib_logger = logging.getLogger("cli_oauth_library")

QWEN_OAUTH_BASE_URL = "https://chat.qwen.ai"
TOKEN_ENDPOINT = f"{QWEN_OAUTH_BASE_URL}/api/v1/oauth2/token"
CLIENT_ID = "f0304373b74a44d2b584a3fb70ca9e56"
DEFAULT_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"

# Substrings identifying Qwen model families in the /models listing
MODEL_FAMILY_KEYWORDS = ("coder", "qwen", "qwq")
MAX_DYNAMIC_COMPLETION_TOKENS = 32000


def normalize_base_url(url: str) -> str:
    """Ensures an https:// scheme (when none is given) and a trailing /v1."""
    url = url.strip().rstrip("/")
    if not url.startswith("http://") and not url.startswith("https://"):
        url = f"https://{url}"
    return url if url.endswith("/v1") else f"{url}/v1"


class QwenCodeProvider(OAuthProviderBase, ProviderInterface):
    """
    Qwen Code models through the OpenAI-compatible endpoint, authenticated
    with the OAuth tokens the `qwen` CLI stores in ~/.qwen/oauth_creds.json.
    """

    name = "QwenCode"
    get_api_key_link = "https://chat.qwen.ai/settings"
    label_for_get_api_key = (
        "OAuth credentials required. Ensure ~/.qwen/oauth_creds.json exists with valid tokens"
    )
    config = ProviderConfig(
        api_token_key="QWEN_OAUTH_PATH",
        base_url_key="QWEN_BASE_URL",
        base_url=DEFAULT_BASE_URL,
    )

    TOKEN_ENDPOINT = TOKEN_ENDPOINT
    CLIENT_ID = CLIENT_ID
    DEFAULT_CREDENTIAL_DIR = ".qwen"
    LITELLM_PROVIDER = "openai"
    CLI_COMMAND = "qwen"
    MODELS_ENV_NAME = "qwen_code"

    static_models = [
        ModelInfo(
            name="qwen3-coder-flash",
            label="Qwen3 Coder Flash - Fast coding model",
            provider="QwenCode",
            max_token_allowed=128000,
            max_completion_tokens=8192,
        ),
        ModelInfo(
            name="qwen3-coder-plus",
            label="Qwen3 Coder Plus - High-performance coding model",
            provider="QwenCode",
            max_token_allowed=128000,
            max_completion_tokens=8192,
        ),
        ModelInfo(
            name="qwen3-coder-480b-a35b-instruct",
            label="Qwen3 Coder 480B A35B Instruct - Advanced coding model",
            provider="QwenCode",
            max_token_allowed=128000,
            max_completion_tokens=8192,
        ),
    ]

    def get_base_url(self, creds: Optional[OAuthCredentials]) -> str:
        """
        The token record's resource_url wins; otherwise QWEN_BASE_URL, then
        the DashScope compatible-mode endpoint.
        """
        base_url = (
            (creds.resource_url if creds else None)
            or self._base_url_override
            or DEFAULT_BASE_URL
        )
        return normalize_base_url(base_url)

    @staticmethod
    def _to_model_info(model: Dict[str, Any]) -> ModelInfo:
        model_id = model["id"]
        max_completion = model.get("max_completion_tokens") or 8192
        return ModelInfo(
            name=model_id,
            label=f"{model_id} - {model.get('owned_by') or 'Qwen'} (Dynamic)",
            provider="QwenCode",
            max_token_allowed=model.get("context_length") or 128000,
            max_completion_tokens=min(max_completion, MAX_DYNAMIC_COMPLETION_TOKENS),
        )

    async def _fetch_dynamic_models(self) -> List[ModelInfo]:
        """Lists models from {base_url}/models and keeps the Qwen families."""
        base_url = self.get_base_url(self._credentials)
        async with httpx.AsyncClient(timeout=TimeoutConfig.non_streaming()) as client:
            response = await client.get(
                f"{base_url}/models",
                headers={
                    "Authorization": f"Bearer {self._credentials.access_token}",
                    "Content-Type": "application/json",
                },
            )

        if not response.is_success:
            lib_logger.info(
                f"{self.name}: Failed to fetch models: {response.status_code} {response.reason_phrase}"
            )
            return []

        try:
            data = response.json()
        except ValueError:
            data = None
        model_list = data.get("data") if isinstance(data, dict) else None
        if not isinstance(model_list, list):
            lib_logger.warning(
                f"{self.name}: Unexpected response shape from {base_url}/models, "
                f"falling back to static models"
            )
            return []

        models = [
            self._to_model_info(model)
            for model in model_list
            if isinstance(model, dict)
            and isinstance(model.get("id"), str)
            and any(keyword in model["id"] for keyword in MODEL_FAMILY_KEYWORDS)
        ]
        lib_logger.debug(f"{self.name}: Discovered {len(models)} models from API")
        return models
