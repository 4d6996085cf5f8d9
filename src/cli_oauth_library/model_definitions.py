import json
import os
import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

lib_logger = logging.getLogger("cli_oauth_library")

DEFAULT_MAX_TOKENS = 128000
DEFAULT_MAX_COMPLETION_TOKENS = 8192


@dataclass(frozen=True)
class ModelInfo:
    """Descriptor for a model offered by a provider."""

    name: str
    label: str
    provider: str
    max_token_allowed: int = DEFAULT_MAX_TOKENS
    max_completion_tokens: Optional[int] = None


class ModelDefinitions:
    """
    Extra model definitions loaded from environment variables.

    Supports two formats:
    1. Array format (simple): QWEN_CODE_MODELS=["model-1", "model-2"]
       - Each model name is used as both name and label
    2. Dict format (advanced): GEMINI_CLI_MODELS={"model-name": {"label": "...", "max_token_allowed": 1048576}}
       - Every field is optional; missing ones fall back to defaults

    This class is a singleton - instantiated once and shared across all providers.
    """

    _instance: Optional["ModelDefinitions"] = None
    _initialized: bool = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize model definitions loader (only runs once due to singleton)."""
        if ModelDefinitions._initialized:
            return
        ModelDefinitions._initialized = True
        self.definitions: Dict[str, Dict[str, Any]] = {}
        self._load_definitions()

    def _load_definitions(self):
        """Load model definitions from environment variables."""
        for env_var, env_value in os.environ.items():
            if not env_var.endswith("_MODELS"):
                continue
            provider_name = env_var[:-7].lower()  # Remove "_MODELS"
            try:
                models_json = json.loads(env_value)
            except (json.JSONDecodeError, TypeError) as e:
                lib_logger.warning(f"Invalid JSON in {env_var}: {e}")
                continue

            if isinstance(models_json, dict):
                self.definitions[provider_name] = {
                    name: (spec if isinstance(spec, dict) else {})
                    for name, spec in models_json.items()
                }
            elif isinstance(models_json, list):
                self.definitions[provider_name] = {
                    name: {} for name in models_json if isinstance(name, str)
                }
            else:
                lib_logger.warning(
                    f"{env_var} must be a JSON object or array, got {type(models_json).__name__}"
                )
                continue
            lib_logger.debug(
                f"Loaded {len(self.definitions[provider_name])} models for provider: {provider_name}"
            )

    def get_provider_models(self, provider_name: str) -> Dict[str, Any]:
        """Get all raw definitions for a provider."""
        return self.definitions.get(provider_name, {})

    def get_model_infos(self, provider_name: str, display_name: str) -> List[ModelInfo]:
        """
        Builds ModelInfo descriptors for a provider's env-defined models.

        Args:
            provider_name: Env-style provider name (e.g. "qwen_code")
            display_name: Provider name stamped on each descriptor (e.g. "QwenCode")
        """
        infos = []
        for name, spec in self.get_provider_models(provider_name).items():
            try:
                max_tokens = int(spec.get("max_token_allowed", DEFAULT_MAX_TOKENS))
                max_completion = spec.get("max_completion_tokens")
                max_completion = int(max_completion) if max_completion is not None else None
            except (TypeError, ValueError):
                lib_logger.warning(
                    f"Ignoring invalid token limits for model '{name}' ({provider_name})"
                )
                max_tokens, max_completion = DEFAULT_MAX_TOKENS, None
            infos.append(
                ModelInfo(
                    name=name,
                    label=spec.get("label", name),
                    provider=display_name,
                    max_token_allowed=max_tokens,
                    max_completion_tokens=max_completion,
                )
            )
        return infos

    def reload_definitions(self):
        """Reload model definitions from environment variables."""
        self.definitions.clear()
        self._load_definitions()
