# src/cli_oauth_library/provider_factory.py

from typing import Dict, List, Type

from .providers import PROVIDER_PLUGINS
from .providers.provider_interface import ProviderInterface

# One instance per provider for the life of the process; each owns its
# cached credentials and in-flight refresh.
_INSTANCES: Dict[str, ProviderInterface] = {}


def _normalize(provider_name: str) -> str:
    """Maps "QwenCode", "qwen-code" or "qwen_code" to the registry key."""
    wanted = provider_name.lower().replace("-", "_")
    for key, provider_class in PROVIDER_PLUGINS.items():
        if wanted == key or wanted == provider_class.name.lower():
            return key
    raise ValueError(f"Unknown provider: {provider_name}")


def get_provider_class(provider_name: str) -> Type[ProviderInterface]:
    """
    Returns the provider class for a given provider name.
    """
    return PROVIDER_PLUGINS[_normalize(provider_name)]


def get_provider_instance(provider_name: str) -> ProviderInterface:
    """
    Returns the shared provider instance, creating it on first request.
    """
    key = _normalize(provider_name)
    if key not in _INSTANCES:
        _INSTANCES[key] = PROVIDER_PLUGINS[key]()
    return _INSTANCES[key]


def get_available_providers() -> List[str]:
    """
    Returns a list of available provider names.
    """
    return sorted(PROVIDER_PLUGINS.keys())


def reset_provider_instances() -> None:
    """Drops the shared instances (tests, or after credential files change)."""
    _INSTANCES.clear()
