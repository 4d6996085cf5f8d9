# src/cli_oauth_library/utils/resilient_io.py
"""
Resilient I/O utilities for credential files.

write_json_atomic writes through a temp file in the target directory and
moves it into place, so readers never see a half-written token file.
Callers that can carry on without the write (refreshed tokens) catch the
PersistenceError and log it.
"""

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Union

from ..error_handler import PersistenceError


def write_json_atomic(
    path: Union[str, Path],
    data: Dict[str, Any],
    indent: int = 2,
    secure_permissions: bool = False,
) -> None:
    """
    Atomically writes JSON data to a file, creating parent directories.

    Args:
        path: File path to write to
        data: JSON-serializable data
        indent: JSON indentation level (default: 2)
        secure_permissions: Set file permissions to 0o600 (default: False)

    Raises:
        PersistenceError: If the directory cannot be created, the data cannot
            be serialized, or the file cannot be written
    """
    path = Path(path)
    tmp_fd = None
    tmp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(data, indent=indent)

        tmp_fd, tmp_path = tempfile.mkstemp(
            dir=path.parent, prefix=".tmp_", suffix=".json", text=True
        )
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
            f.write(content)
            tmp_fd = None

        # Set before the move so the token is never world-readable
        if secure_permissions:
            try:
                os.chmod(tmp_path, 0o600)
            except (OSError, AttributeError):
                # Windows may not support chmod
                pass

        shutil.move(tmp_path, path)
        tmp_path = None
    except (OSError, TypeError, ValueError) as e:
        raise PersistenceError(path, str(e)) from e
    finally:
        if tmp_fd is not None:
            try:
                os.close(tmp_fd)
            except OSError:
                pass
        if tmp_path and os.path.exists(tmp_path):
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
