from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..model_definitions import ModelInfo


@dataclass
class ProviderSetting:
    """
    Per-provider settings supplied by the host application.

    The settings UI has no dedicated field for the OAuth file, so base_url
    carries the credential path override for OAuth providers.
    """

    enabled: bool = True
    base_url: Optional[str] = None


@dataclass(frozen=True)
class ProviderConfig:
    """
    Static configuration keys for a provider.

    Attributes:
        api_token_key: Env var holding the credential file path override
        base_url_key: Env var holding an optional API base URL override
        base_url: Default API base URL
    """

    api_token_key: str
    base_url_key: str
    base_url: Optional[str]


class ProviderInterface(ABC):
    """
    An interface for model providers exposed to the host application:
    model catalogue and model-instance construction.
    """

    name: str = ""
    get_api_key_link: str = ""
    label_for_get_api_key: str = ""
    config: ProviderConfig = None

    # Models always offered, used when dynamic discovery yields nothing
    static_models: List[ModelInfo] = []

    @abstractmethod
    def get_model_instance(
        self,
        model: str,
        server_env: Optional[Dict[str, Any]] = None,
        api_keys: Optional[Dict[str, str]] = None,
        provider_settings: Optional[Dict[str, ProviderSetting]] = None,
    ):
        """
        Returns a model handle for `model`.

        Args:
            model: The provider-side model id (e.g. "qwen3-coder-plus")
            server_env: Server environment values (settings lookups)
            api_keys: API keys by provider name (unused by OAuth providers)
            provider_settings: Settings by provider name
        """
        pass

    @abstractmethod
    async def get_dynamic_models(
        self,
        api_keys: Optional[Dict[str, str]] = None,
        settings: Optional[ProviderSetting] = None,
        server_env: Optional[Dict[str, str]] = None,
    ) -> List[ModelInfo]:
        """
        Discovers models from the provider's API.

        Must never raise; an empty list means "use the static list".
        """
        pass
