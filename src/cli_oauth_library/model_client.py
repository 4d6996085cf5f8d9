# src/cli_oauth_library/model_client.py
"""
Downstream model clients.

ModelClient is the thin, token-bound handle over litellm that the OAuth
providers build and rebind after every refresh. LanguageModel is a single
model on that client. AuthenticatedLanguageModel decorates a LanguageModel
so that the two network operations (generate / stream) authenticate first
and go through the provider's one-shot 401 retry.
"""

import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Optional

import litellm

from .timeout_config import TimeoutConfig

if TYPE_CHECKING:
    from .providers.oauth_base import OAuthProviderBase
    from .providers.provider_interface import ProviderSetting

lib_logger = logging.getLogger("cli_oauth_library")

PLACEHOLDER_API_KEY = "placeholder"


class ModelClient:
    """
    API client bound to a base URL and a bearer token.

    Args:
        base_url: API base endpoint, or None for litellm's provider default
        api_key: Bearer token sent to the API
        litellm_provider: litellm provider prefix ("openai", "gemini", ...)
        extra_headers: Additional headers sent with every request
    """

    def __init__(
        self,
        base_url: Optional[str],
        api_key: str,
        litellm_provider: str,
        extra_headers: Optional[Dict[str, str]] = None,
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.litellm_provider = litellm_provider
        self.extra_headers = dict(extra_headers or {})

    def update(
        self,
        base_url: Optional[str],
        api_key: str,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """Rebinds the client in place; models created from it see the new token."""
        self.base_url = base_url
        self.api_key = api_key
        self.extra_headers = dict(extra_headers or {})

    def language_model(self, model_id: str) -> "LanguageModel":
        return LanguageModel(self, model_id)

    def request_params(self) -> Dict[str, Any]:
        """Connection parameters handed to litellm for each call."""
        params: Dict[str, Any] = {"api_key": self.api_key}
        if self.base_url:
            params["api_base"] = self.base_url
        if self.extra_headers:
            params["extra_headers"] = dict(self.extra_headers)
        return params


class LanguageModel:
    """A single model served through a ModelClient."""

    def __init__(self, client: ModelClient, model_id: str):
        self.client = client
        self.model_id = model_id

    @property
    def provider(self) -> str:
        return self.client.litellm_provider

    @property
    def litellm_model(self) -> str:
        return f"{self.client.litellm_provider}/{self.model_id}"

    async def generate(
        self, messages: List[Dict[str, Any]], **params
    ) -> litellm.ModelResponse:
        """Runs a non-streaming completion."""
        params.setdefault("timeout", TimeoutConfig.completion_seconds())
        return await litellm.acompletion(
            model=self.litellm_model,
            messages=messages,
            stream=False,
            **self.client.request_params(),
            **params,
        )

    async def stream(
        self, messages: List[Dict[str, Any]], **params
    ) -> AsyncIterator[litellm.ModelResponse]:
        """
        Opens a streaming completion.

        The request is sent when this coroutine is awaited, so authorization
        failures surface here rather than while iterating the chunks.
        """
        params.setdefault("timeout", TimeoutConfig.completion_seconds())
        return await litellm.acompletion(
            model=self.litellm_model,
            messages=messages,
            stream=True,
            **self.client.request_params(),
            **params,
        )


class AuthenticatedLanguageModel:
    """
    LanguageModel decorator that authenticates before every network call.

    The wrapped model is bound to a placeholder token; it only answers the
    metadata properties. generate() and stream() run the provider's
    ensure_ready() first, then call the same model on the live client through
    call_with_retry(), so a stale token gets one forced refresh and retry.
    """

    def __init__(
        self,
        base_model: LanguageModel,
        provider: "OAuthProviderBase",
        settings: Optional["ProviderSetting"] = None,
        server_env: Optional[Dict[str, str]] = None,
    ):
        self._base_model = base_model
        self._provider = provider
        self._settings = settings
        self._server_env = server_env

    @property
    def model_id(self) -> str:
        return self._base_model.model_id

    @property
    def provider(self) -> str:
        return self._base_model.provider

    @property
    def litellm_model(self) -> str:
        return self._base_model.litellm_model

    async def _live_model(self) -> LanguageModel:
        client = await self._provider.get_authenticated_client(
            self._settings, self._server_env
        )
        return client.language_model(self.model_id)

    async def generate(
        self, messages: List[Dict[str, Any]], **params
    ) -> litellm.ModelResponse:
        model = await self._live_model()
        return await self._provider.call_with_retry(
            lambda: model.generate(messages, **params)
        )

    async def stream(
        self, messages: List[Dict[str, Any]], **params
    ) -> AsyncIterator[litellm.ModelResponse]:
        """
        Opens a streaming completion on the live client.

        Only a 401 raised while opening the stream gets the refresh-and-retry.
        A 401 raised later, while the chunks are being read, propagates to the
        caller without a retry.
        """
        model = await self._live_model()
        return await self._provider.call_with_retry(
            lambda: model.stream(messages, **params)
        )

    def __repr__(self) -> str:
        return f"AuthenticatedLanguageModel({self.litellm_model!r})"
