# src/cli_oauth_library/timeout_config.py
"""
Centralized timeout configuration for outbound HTTP requests.

All values can be overridden via environment variables:
    TIMEOUT_CONNECT - Connection establishment timeout (default: 30s)
    TIMEOUT_WRITE - Request body send timeout (default: 30s)
    TIMEOUT_POOL - Connection pool acquisition timeout (default: 60s)
    TIMEOUT_READ_TOKEN - Read timeout for OAuth token/config endpoints (default: 30s)
    TIMEOUT_READ_NON_STREAMING - Read timeout for model listing and non-streaming
        completions (default: 600s / 10 min)
"""

import os
import logging
import httpx

lib_logger = logging.getLogger("cli_oauth_library")


class TimeoutConfig:
    """
    Centralized timeout configuration for HTTP requests.

    The token endpoints answer quickly, so they get a short read timeout;
    model calls may take minutes before the first byte arrives.
    """

    _CONNECT = 30.0
    _WRITE = 30.0
    _POOL = 60.0
    _READ_TOKEN = 30.0
    _READ_NON_STREAMING = 600.0

    @classmethod
    def _get_env_float(cls, key: str, default: float) -> float:
        """Get a float value from environment variable, or return default."""
        value = os.environ.get(key)
        if value is not None:
            try:
                return float(value)
            except ValueError:
                lib_logger.warning(
                    f"Invalid value for {key}: {value}. Using default: {default}"
                )
        return default

    @classmethod
    def connect(cls) -> float:
        return cls._get_env_float("TIMEOUT_CONNECT", cls._CONNECT)

    @classmethod
    def write(cls) -> float:
        return cls._get_env_float("TIMEOUT_WRITE", cls._WRITE)

    @classmethod
    def pool(cls) -> float:
        return cls._get_env_float("TIMEOUT_POOL", cls._POOL)

    @classmethod
    def read_token(cls) -> float:
        return cls._get_env_float("TIMEOUT_READ_TOKEN", cls._READ_TOKEN)

    @classmethod
    def read_non_streaming(cls) -> float:
        return cls._get_env_float("TIMEOUT_READ_NON_STREAMING", cls._READ_NON_STREAMING)

    @classmethod
    def token_refresh(cls) -> httpx.Timeout:
        """Timeout for the refresh-token exchange and the remote OAuth config fetch."""
        return httpx.Timeout(
            connect=cls.connect(),
            read=cls.read_token(),
            write=cls.write(),
            pool=cls.pool(),
        )

    @classmethod
    def non_streaming(cls) -> httpx.Timeout:
        """Timeout for model listing requests."""
        return httpx.Timeout(
            connect=cls.connect(),
            read=cls.read_non_streaming(),
            write=cls.write(),
            pool=cls.pool(),
        )

    @classmethod
    def completion_seconds(cls) -> float:
        """Total timeout handed to litellm for a completion call."""
        return cls.read_non_streaming()
