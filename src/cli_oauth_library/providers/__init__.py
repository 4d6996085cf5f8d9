import importlib
import inspect
import logging
import pkgutil
from typing import Dict, Type

from .provider_interface import ProviderInterface, ProviderSetting

# --- Provider Plugin System ---

# Dictionary to hold discovered provider classes, mapping provider name to class
PROVIDER_PLUGINS: Dict[str, Type[ProviderInterface]] = {}


def _register_providers():
    """
    Dynamically discovers and imports provider plugins from this directory.
    """
    package_path = __path__
    package_name = __name__

    for _, module_name, _ in pkgutil.iter_modules(package_path):
        full_module_path = f"{package_name}.{module_name}"
        module = importlib.import_module(full_module_path)

        # Look for concrete classes defined in this module that implement ProviderInterface
        for attribute_name in dir(module):
            attribute = getattr(module, attribute_name)
            if (
                isinstance(attribute, type)
                and issubclass(attribute, ProviderInterface)
                and attribute is not ProviderInterface
                and attribute.__module__ == full_module_path
                and not inspect.isabstract(attribute)
            ):
                # Derives 'gemini_cli' from 'gemini_cli_provider.py'
                provider_name = module_name.replace("_provider", "")
                PROVIDER_PLUGINS[provider_name] = attribute
                logging.getLogger("cli_oauth_library").debug(
                    f"Registered provider: {provider_name}"
                )


# Discover and register providers when the package is imported
_register_providers()

__all__ = ["PROVIDER_PLUGINS", "ProviderInterface", "ProviderSetting"]
