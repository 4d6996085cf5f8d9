# src/cli_oauth_library/utils/__init__.py

from .paths import (
    DEFAULT_CREDENTIAL_FILENAME,
    expand_user_path,
    get_home_dir,
    resolve_credential_path,
)
from .resilient_io import write_json_atomic

__all__ = [
    "DEFAULT_CREDENTIAL_FILENAME",
    "expand_user_path",
    "get_home_dir",
    "resolve_credential_path",
    "write_json_atomic",
]
