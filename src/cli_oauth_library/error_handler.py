# src/cli_oauth_library/error_handler.py

import logging
from pathlib import Path
from typing import Optional, Union

import httpx
from litellm.exceptions import AuthenticationError

lib_logger = logging.getLogger("cli_oauth_library")


class CredentialLoadError(Exception):
    """
    Raised when an OAuth credential file cannot be loaded.

    Covers a missing or unreadable file, invalid JSON, and records that lack
    either the access token or the refresh token. There is no automatic
    recovery: the user has to populate the file with the provider's CLI.

    Attributes:
        credential_path: Path of the credential file that failed to load
        cause: Short description of the underlying problem
        hint: Remediation hint shown to the user
    """

    def __init__(
        self,
        credential_path: Union[str, Path],
        cause: str,
        hint: Optional[str] = None,
    ):
        self.credential_path = str(credential_path)
        self.cause = cause
        self.hint = hint
        message = f"Failed to load OAuth credentials from '{self.credential_path}': {cause}"
        if hint:
            message = f"{message}. {hint}"
        self.message = message
        super().__init__(self.message)


class RefreshError(Exception):
    """
    Raised when exchanging a refresh token for a new access token fails.

    Attributes:
        status_code: HTTP status of the token endpoint response, if any
        error: OAuth `error` field from the response body, if any
        error_description: OAuth `error_description` field, if any
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ):
        self.status_code = status_code
        self.error = error
        self.error_description = error_description
        self.message = message
        super().__init__(self.message)


class PersistenceError(Exception):
    """
    Raised when refreshed credentials cannot be written back to disk.

    Never surfaced to callers: the in-memory record stays usable, so the
    failure is only logged.
    """

    def __init__(self, credential_path: Union[str, Path], cause: str):
        self.credential_path = str(credential_path)
        self.cause = cause
        self.message = f"Failed to persist OAuth credentials to '{self.credential_path}': {cause}"
        super().__init__(self.message)


class AuthorizationError(Exception):
    """Raised for a 401 from a wrapped model API."""

    def __init__(self, message: str = "Unauthorized", status_code: int = 401):
        self.status_code = status_code
        self.message = message
        super().__init__(self.message)


def _status_of(e: Exception) -> Optional[int]:
    """Best-effort extraction of an HTTP status code from an exception."""
    for attr in ("status_code", "status"):
        value = getattr(e, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(e, "response", None)
    if response is not None:
        value = getattr(response, "status_code", None)
        if isinstance(value, int):
            return value
    return None


def is_authorization_error(e: Exception) -> bool:
    """
    Returns True if the exception means the bearer token was rejected (HTTP 401).

    Recognises litellm's AuthenticationError, our AuthorizationError,
    httpx.HTTPStatusError and anything else exposing a 401 status.
    A RefreshError is never an authorization error here: it comes from the
    token endpoint, not from the wrapped API.
    """
    if isinstance(e, RefreshError):
        return False
    if isinstance(e, (AuthenticationError, AuthorizationError)):
        return True
    if isinstance(e, httpx.HTTPStatusError):
        return e.response.status_code == 401
    return _status_of(e) == 401


def mask_token(token: Optional[str]) -> str:
    """Masks a bearer token for display."""
    if not token:
        return "<none>"
    if len(token) <= 8:
        return "****"
    return f"{token[:4]}...{token[-4:]}"
