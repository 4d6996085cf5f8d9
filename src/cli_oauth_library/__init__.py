import logging
from typing import TYPE_CHECKING

from .error_handler import (
    AuthorizationError,
    CredentialLoadError,
    PersistenceError,
    RefreshError,
)

# Silent unless the host application configures logging
logging.getLogger("cli_oauth_library").addHandler(logging.NullHandler())

# For type checkers, import the provider symbols statically
# At runtime, they are lazy-loaded via __getattr__
if TYPE_CHECKING:
    from .providers import PROVIDER_PLUGINS
    from .providers.gemini_cli_provider import GeminiCliProvider
    from .providers.oauth_base import OAuthCredentials, OAuthProviderBase
    from .providers.provider_interface import ProviderSetting
    from .providers.qwen_code_provider import QwenCodeProvider
    from .provider_factory import get_provider_instance

__all__ = [
    "AuthorizationError",
    "CredentialLoadError",
    "PersistenceError",
    "RefreshError",
    "PROVIDER_PLUGINS",
    "GeminiCliProvider",
    "OAuthCredentials",
    "OAuthProviderBase",
    "ProviderSetting",
    "QwenCodeProvider",
    "get_provider_instance",
]

_LAZY_ATTRIBUTES = {
    "PROVIDER_PLUGINS": ".providers",
    "GeminiCliProvider": ".providers.gemini_cli_provider",
    "OAuthCredentials": ".providers.oauth_base",
    "OAuthProviderBase": ".providers.oauth_base",
    "ProviderSetting": ".providers.provider_interface",
    "QwenCodeProvider": ".providers.qwen_code_provider",
    "get_provider_instance": ".provider_factory",
}


def __getattr__(name):
    """Lazy-load provider classes so the plugin scan runs on first access."""
    if name in _LAZY_ATTRIBUTES:
        import importlib

        module = importlib.import_module(_LAZY_ATTRIBUTES[name], __name__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
