# src/cli_oauth_library/utils/paths.py
"""
Path helpers for OAuth credential files.

The provider CLIs (`qwen`, `gemini`) write their tokens under a dot-directory
in the user's home. Callers may point at another file; `~` is expanded and
relative paths are resolved against the current working directory.
"""

from pathlib import Path
from typing import Optional, Union

DEFAULT_CREDENTIAL_FILENAME = "oauth_creds.json"


def get_home_dir() -> Path:
    """Returns the current user's home directory."""
    return Path.home()


def expand_user_path(path: Union[str, Path]) -> Path:
    """
    Expands a leading home-directory shorthand and makes the path absolute.

    Args:
        path: A path such as "~/creds.json", "./creds.json" or "/abs/creds.json"

    Returns:
        The absolute path (not required to exist)
    """
    text = str(path)
    if text == "~":
        return get_home_dir()
    if text.startswith("~/") or text.startswith("~\\"):
        return get_home_dir() / text[2:]
    return Path(text).resolve()


def resolve_credential_path(
    custom_path: Optional[Union[str, Path]],
    default_dir: str,
    filename: str = DEFAULT_CREDENTIAL_FILENAME,
) -> Path:
    """
    Resolves the OAuth credential file location.

    Args:
        custom_path: Optional override (settings field or environment variable)
        default_dir: Provider dot-directory under the home dir (e.g. ".qwen")
        filename: Credential file name inside default_dir

    Returns:
        Path to the credential file. Deterministic, performs no I/O.
    """
    if custom_path:
        return expand_user_path(custom_path)
    return get_home_dir() / default_dir / filename
