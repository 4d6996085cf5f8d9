# src/cli_oauth_library/providers/oauth_base.py

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import httpx

from ..error_handler import (
    CredentialLoadError,
    PersistenceError,
    RefreshError,
    is_authorization_error,
    mask_token,
)
from ..model_client import PLACEHOLDER_API_KEY, AuthenticatedLanguageModel, ModelClient
from ..model_definitions import ModelDefinitions, ModelInfo
from ..timeout_config import TimeoutConfig
from ..utils.paths import DEFAULT_CREDENTIAL_FILENAME, resolve_credential_path
from ..utils.resilient_io import write_json_atomic
from .provider_interface import ProviderSetting

lib_logger = logging.getLogger("cli_oauth_library")

T = TypeVar("T")

TOKEN_REFRESH_BUFFER_MS = 30 * 1000  # 30 seconds before expiry
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

_RECORD_FIELDS = (
    "access_token",
    "refresh_token",
    "token_type",
    "expiry_date",
    "resource_url",
)


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


@dataclass
class OAuthCredentials:
    """
    Persisted OAuth token record, as written by the provider CLIs.

    Unknown fields in the file (id_token, scope, ...) are kept in `extra`
    and written back unchanged.
    """

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expiry_date: float = 0
    resource_url: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    def __repr__(self) -> str:
        # Tokens stay out of logs and tracebacks
        return (
            f"OAuthCredentials(token_type={self.token_type!r}, "
            f"expiry_date={self.expiry_date!r}, resource_url={self.resource_url!r})"
        )

    @classmethod
    def from_dict(cls, data: Any) -> "OAuthCredentials":
        """
        Builds a record from parsed JSON.

        Raises:
            ValueError: If data is not an object or a token field is missing/empty
        """
        if not isinstance(data, dict):
            raise ValueError(
                f"Invalid credentials format: expected a JSON object, got {type(data).__name__}"
            )
        missing = [
            name
            for name in ("access_token", "refresh_token")
            if not isinstance(data.get(name), str) or not data.get(name)
        ]
        if missing:
            raise ValueError(
                f"Invalid credentials format: missing {' and '.join(missing)}"
            )
        for name in ("token_type", "resource_url"):
            value = data.get(name)
            if value is not None and not isinstance(value, str):
                raise ValueError(
                    f"Invalid credentials format: {name} must be a string, "
                    f"got {type(value).__name__}"
                )

        expiry = data.get("expiry_date") or 0
        try:
            expiry = float(expiry)
        except (TypeError, ValueError):
            lib_logger.warning(f"Invalid expiry_date value: {expiry!r}, treating as expired")
            expiry = 0

        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            token_type=data.get("token_type") or "Bearer",
            expiry_date=expiry,
            resource_url=data.get("resource_url") or None,
            extra={k: v for k, v in data.items() if k not in _RECORD_FIELDS},
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update(
            {
                "access_token": self.access_token,
                "refresh_token": self.refresh_token,
                "token_type": self.token_type,
                "expiry_date": self.expiry_date,
            }
        )
        if self.resource_url:
            data["resource_url"] = self.resource_url
        return data


def is_token_valid(creds: Optional[OAuthCredentials], now: Optional[float] = None) -> bool:
    """
    True if the access token is usable for at least TOKEN_REFRESH_BUFFER_MS more.

    A missing or zero expiry_date counts as expired.
    """
    if creds is None or not creds.expiry_date:
        return False
    current = now_ms() if now is None else now
    return current < creds.expiry_date - TOKEN_REFRESH_BUFFER_MS


class ConfigState(Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURING = "configuring"
    READY = "ready"


class OAuthProviderBase:
    """
    OAuth credential lifecycle for providers whose tokens come from a CLI tool.

    Owns the provider session state: the cached credential record, the single
    in-flight refresh task, the resolved credential path and the downstream
    ModelClient. Everything runs on one event loop; state is only mutated in
    the methods below, with no await between checking and setting the
    refresh slot.

    Subclasses must set:
        - name: Provider name (also used as log prefix and settings key)
        - TOKEN_ENDPOINT: OAuth token endpoint for the refresh grant
        - CLIENT_ID: OAuth client id (may stay None if _build_refresh_payload
          supplies it)
        - DEFAULT_CREDENTIAL_DIR: Dot-directory under $HOME (e.g. ".qwen")
        - LITELLM_PROVIDER: litellm provider prefix for model calls
        - config: ProviderConfig with the env var names

    Subclasses may override:
        - get_base_url(): how the API base is derived from the record
        - get_extra_headers(): headers added to every model call
        - _build_refresh_payload(): extra form fields (e.g. client_secret)
        - _fetch_dynamic_models(): model discovery against the live API
    """

    TOKEN_ENDPOINT: str = None
    CLIENT_ID: Optional[str] = None
    DEFAULT_CREDENTIAL_DIR: str = None
    CREDENTIAL_FILENAME: str = DEFAULT_CREDENTIAL_FILENAME
    LITELLM_PROVIDER: str = None
    CLI_COMMAND: str = ""
    # Key used for <KEY>_MODELS env definitions (e.g. "qwen_code")
    MODELS_ENV_NAME: str = ""

    def __init__(self):
        for attr in ("name", "TOKEN_ENDPOINT", "DEFAULT_CREDENTIAL_DIR", "LITELLM_PROVIDER", "config"):
            if not getattr(self, attr, None):
                raise NotImplementedError(f"{self.__class__.__name__} must set {attr}")

        self._credentials: Optional[OAuthCredentials] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._config_state = ConfigState.UNCONFIGURED
        self._oauth_path: Optional[str] = None
        self._base_url_override: Optional[str] = None
        self._credential_path: Optional[Path] = None
        self._client: Optional[ModelClient] = None
        self.model_definitions = ModelDefinitions()

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def _configure(
        self,
        settings: Optional[ProviderSetting] = None,
        server_env: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Resolves the credential path once per instance; later calls are no-ops
        even if they pass different settings (first write wins).
        """
        if self._config_state is not ConfigState.UNCONFIGURED:
            return

        self._config_state = ConfigState.CONFIGURING
        try:
            env = server_env or {}
            token_key = self.config.api_token_key
            base_url_key = self.config.base_url_key
            self._oauth_path = (
                (settings.base_url if settings else None)
                or env.get(token_key)
                or os.getenv(token_key)
            )
            self._base_url_override = env.get(base_url_key) or os.getenv(base_url_key)
            self._credential_path = resolve_credential_path(
                self._oauth_path, self.DEFAULT_CREDENTIAL_DIR, self.CREDENTIAL_FILENAME
            )
        except Exception:
            self._config_state = ConfigState.UNCONFIGURED
            raise
        self._config_state = ConfigState.READY

        lib_logger.info(
            f"{self.name}: OAuth path initialized: "
            f"{self._oauth_path or f'default (~/{self.DEFAULT_CREDENTIAL_DIR}/{self.CREDENTIAL_FILENAME})'}"
        )

    @property
    def config_state(self) -> ConfigState:
        return self._config_state

    @property
    def credential_path(self) -> Path:
        if self._config_state is not ConfigState.READY:
            self._configure()
        return self._credential_path

    @property
    def credentials(self) -> Optional[OAuthCredentials]:
        return self._credentials

    @property
    def remediation_hint(self) -> str:
        hint = f"Please ensure OAuth credentials are properly configured in {self.credential_path}"
        if self.CLI_COMMAND:
            hint += f" (sign in with the `{self.CLI_COMMAND}` CLI to create them)"
        return hint

    # =========================================================================
    # CREDENTIAL STORE
    # =========================================================================

    def _read_credentials_file(self, path: Path) -> OAuthCredentials:
        """Reads and validates a credential file. No caching."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise CredentialLoadError(path, "file not found", self.remediation_hint) from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CredentialLoadError(path, f"invalid JSON ({e})", self.remediation_hint) from e
        except OSError as e:
            raise CredentialLoadError(path, str(e), self.remediation_hint) from e

        try:
            return OAuthCredentials.from_dict(data)
        except ValueError as e:
            raise CredentialLoadError(path, str(e), self.remediation_hint) from e

    async def load_credentials(self) -> OAuthCredentials:
        """Loads the credential file and caches the record."""
        path = self.credential_path
        lib_logger.debug(f"{self.name}: Loading credentials from: {path}")
        try:
            creds = self._read_credentials_file(path)
        except CredentialLoadError as e:
            lib_logger.error(f"{self.name}: Failed to load credentials: {e.cause}")
            raise
        self._credentials = creds
        return creds

    async def save_credentials(self, creds: OAuthCredentials) -> bool:
        """
        Writes the record back to the credential file.

        Returns False on failure; never raises. The in-memory record remains
        the source of truth for this process either way.
        """
        path = self.credential_path
        try:
            write_json_atomic(path, creds.to_dict(), secure_permissions=True)
        except PersistenceError as e:
            lib_logger.error(
                f"{self.name}: {e.message}. Continuing with in-memory credentials."
            )
            return False
        lib_logger.debug(f"{self.name}: Credentials saved to '{path.name}'")
        return True

    # =========================================================================
    # REFRESH
    # =========================================================================

    async def _build_refresh_payload(self, refresh_token: str) -> Dict[str, str]:
        return {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.CLIENT_ID,
        }

    async def refresh_access_token(
        self, creds: Optional[OAuthCredentials] = None
    ) -> OAuthCredentials:
        """
        Exchanges the refresh token for a new access token.

        Concurrent callers share one in-flight refresh. A cancelled caller
        stops waiting but the refresh itself runs on, so the other callers
        still get its result and the new tokens are still saved. The slot is
        cleared once that refresh settles, successfully or not.

        Raises:
            RefreshError: If the exchange fails
        """
        if self._refresh_task is not None:
            lib_logger.debug(f"{self.name}: Refresh already in progress, waiting...")
        else:
            self._refresh_task = asyncio.ensure_future(
                self._perform_token_refresh(creds or self._credentials)
            )
            self._refresh_task.add_done_callback(self._clear_refresh_task)
        return await asyncio.shield(self._refresh_task)

    def _clear_refresh_task(self, task: "asyncio.Future[OAuthCredentials]") -> None:
        # Runs before any waiter resumes
        if self._refresh_task is task:
            self._refresh_task = None

    async def _perform_token_refresh(
        self, creds: Optional[OAuthCredentials]
    ) -> OAuthCredentials:
        if creds is None or not creds.refresh_token:
            raise RefreshError(f"{self.name}: No refresh token available")

        lib_logger.info(f"{self.name}: Refreshing access token...")
        payload = await self._build_refresh_payload(creds.refresh_token)
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=TimeoutConfig.token_refresh()) as client:
                response = await client.post(
                    self.TOKEN_ENDPOINT, headers=headers, data=payload
                )
        except httpx.RequestError as e:
            lib_logger.error(f"{self.name}: Token refresh request failed: {e}")
            raise RefreshError(
                f"Failed to refresh access token: request to {self.TOKEN_ENDPOINT} failed: {e}"
            ) from e

        if not response.is_success:
            lib_logger.error(
                f"{self.name}: Token refresh failed with HTTP {response.status_code}: {response.text}"
            )
            raise RefreshError(
                f"Token refresh failed: {response.status_code} {response.reason_phrase}. "
                f"Response: {response.text}",
                status_code=response.status_code,
            )

        try:
            token_data = response.json()
        except ValueError as e:
            raise RefreshError(
                f"Token refresh failed: invalid JSON in response: {response.text[:200]}",
                status_code=response.status_code,
            ) from e
        if not isinstance(token_data, dict):
            raise RefreshError(
                "Token refresh failed: response is not a JSON object",
                status_code=response.status_code,
            )

        if token_data.get("error"):
            error = str(token_data["error"])
            description = token_data.get("error_description")
            lib_logger.error(f"{self.name}: Token refresh error: {error} - {description}")
            raise RefreshError(
                f"Token refresh error: {error} - {description or 'Unknown error'}",
                status_code=response.status_code,
                error=error,
                error_description=description,
            )

        access_token = token_data.get("access_token")
        if not access_token:
            raise RefreshError(
                "Token refresh failed: response missing access_token",
                status_code=response.status_code,
            )

        try:
            lifetime = float(token_data["expires_in"])
        except (KeyError, TypeError, ValueError):
            lib_logger.warning(
                f"{self.name}: Token response has no usable expires_in, "
                f"assuming {DEFAULT_TOKEN_LIFETIME_SECONDS}s"
            )
            lifetime = DEFAULT_TOKEN_LIFETIME_SECONDS

        new_creds = replace(
            creds,
            access_token=access_token,
            token_type=token_data.get("token_type") or "Bearer",
            # Refresh tokens are not always rotated
            refresh_token=token_data.get("refresh_token") or creds.refresh_token,
            expiry_date=now_ms() + int(lifetime * 1000),
            resource_url=token_data.get("resource_url") or creds.resource_url,
            extra=dict(creds.extra),
        )
        self._credentials = new_creds

        await self.save_credentials(new_creds)
        lib_logger.info(f"{self.name}: Access token refreshed successfully")
        return new_creds

    # =========================================================================
    # ORCHESTRATION
    # =========================================================================

    def get_base_url(self, creds: OAuthCredentials) -> Optional[str]:
        """API base for the live client. Default: env override, then config."""
        return self._base_url_override or self.config.base_url

    def get_extra_headers(self, creds: OAuthCredentials) -> Dict[str, str]:
        return {}

    def _ensure_client(self) -> ModelClient:
        """Creates the downstream client, or rebinds it to the current token."""
        creds = self._credentials
        base_url = self.get_base_url(creds)
        headers = self.get_extra_headers(creds)
        if self._client is None:
            lib_logger.debug(f"{self.name}: Creating new {self.LITELLM_PROVIDER} client")
            self._client = ModelClient(
                base_url, creds.access_token, self.LITELLM_PROVIDER, headers
            )
        else:
            lib_logger.debug(
                f"{self.name}: Rebinding client to token {mask_token(creds.access_token)}"
            )
            self._client.update(base_url, creds.access_token, headers)
        return self._client

    async def ensure_ready(
        self,
        settings: Optional[ProviderSetting] = None,
        server_env: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Makes sure a valid access token is cached and the client is bound to it.

        Returns:
            The current access token

        Raises:
            CredentialLoadError: If no record is cached and the file cannot be loaded
            RefreshError: If the cached token is expired and refreshing fails
        """
        self._configure(settings, server_env)

        if self._credentials is None:
            await self.load_credentials()

        if not is_token_valid(self._credentials):
            lib_logger.info(f"{self.name}: Access token expired, refreshing...")
            await self.refresh_access_token(self._credentials)

        self._ensure_client()
        return self._credentials.access_token

    async def get_authenticated_client(
        self,
        settings: Optional[ProviderSetting] = None,
        server_env: Optional[Dict[str, str]] = None,
    ) -> ModelClient:
        try:
            await self.ensure_ready(settings, server_env)
        except RefreshError as e:
            lib_logger.error(
                f"{self.name}: Authentication failed: {e}. {self.remediation_hint}"
            )
            raise
        return self._client

    async def call_with_retry(self, api_call: Callable[[], Awaitable[T]]) -> T:
        """
        Runs api_call; on a 401 with a cached record, forces one refresh and
        runs it exactly once more. Anything else propagates unchanged.
        """
        try:
            return await api_call()
        except Exception as e:
            if not is_authorization_error(e) or self._credentials is None:
                raise
            lib_logger.warning(
                f"{self.name}: Got 401 error, refreshing token and retrying..."
            )

        await self.refresh_access_token(self._credentials)
        self._ensure_client()
        lib_logger.info(f"{self.name}: Retrying API call with refreshed token...")
        return await api_call()

    # =========================================================================
    # MODEL FACTORY & DISCOVERY
    # =========================================================================

    def get_model_instance(
        self,
        model: str,
        server_env: Optional[Dict[str, Any]] = None,
        api_keys: Optional[Dict[str, str]] = None,
        provider_settings: Optional[Dict[str, ProviderSetting]] = None,
    ) -> AuthenticatedLanguageModel:
        """
        Returns a model handle that authenticates lazily, on its first
        generate()/stream() call rather than here.
        """
        env_record = {
            key: str(value)
            for key, value in (server_env or {}).items()
            if value is not None
        }
        settings = (provider_settings or {}).get(self.name)

        lib_logger.debug(f"{self.name}: Creating model instance for: {model}")
        placeholder_client = ModelClient(
            self.config.base_url, PLACEHOLDER_API_KEY, self.LITELLM_PROVIDER
        )
        return AuthenticatedLanguageModel(
            placeholder_client.language_model(model), self, settings, env_record
        )

    async def _fetch_dynamic_models(self) -> List[ModelInfo]:
        return []

    async def get_dynamic_models(
        self,
        api_keys: Optional[Dict[str, str]] = None,
        settings: Optional[ProviderSetting] = None,
        server_env: Optional[Dict[str, str]] = None,
    ) -> List[ModelInfo]:
        """
        Discovers models using the OAuth token. Never raises: any failure
        returns [] so the static list is used instead.
        """
        try:
            await self.ensure_ready(settings, server_env)
        except (CredentialLoadError, RefreshError) as e:
            lib_logger.info(
                f"{self.name}: OAuth credentials not available for dynamic models: {e}"
            )
            return []
        except Exception as e:
            lib_logger.error(f"{self.name}: Error in get_dynamic_models: {e}")
            return []

        try:
            return await self._fetch_dynamic_models()
        except httpx.HTTPError as e:
            lib_logger.info(f"{self.name}: Failed to fetch models: {e}")
        except Exception as e:
            lib_logger.error(f"{self.name}: Error in get_dynamic_models: {e}")
        return []

    async def get_models(
        self,
        api_keys: Optional[Dict[str, str]] = None,
        settings: Optional[ProviderSetting] = None,
        server_env: Optional[Dict[str, str]] = None,
    ) -> List[ModelInfo]:
        """
        Returns a merged model list from three sources:
        1. Environment variable models (<MODELS_ENV_NAME>_MODELS), always first
        2. Dynamic discovery through the provider API
        3. The static list, only when discovery returned nothing

        Names already taken by an earlier source are skipped.
        """
        models: List[ModelInfo] = []
        seen = set()

        def add_all(items: List[ModelInfo]) -> None:
            for info in items:
                if info.name not in seen:
                    seen.add(info.name)
                    models.append(info)

        if self.MODELS_ENV_NAME:
            add_all(self.model_definitions.get_model_infos(self.MODELS_ENV_NAME, self.name))

        dynamic_models = await self.get_dynamic_models(api_keys, settings, server_env)
        add_all(dynamic_models or self.static_models)
        return models

    async def describe_credentials(self) -> Dict[str, Any]:
        """Credential status for display. Never includes token values."""
        path = self.credential_path
        info: Dict[str, Any] = {
            "provider": self.name,
            "path": str(path),
            "exists": path.is_file(),
            "valid": False,
            "expires_in_seconds": None,
            "error": None,
        }
        try:
            creds = self._credentials or self._read_credentials_file(path)
        except CredentialLoadError as e:
            info["error"] = e.cause
            return info
        info["valid"] = is_token_valid(creds)
        if creds.expiry_date:
            info["expires_in_seconds"] = int((creds.expiry_date - now_ms()) / 1000)
        return info
