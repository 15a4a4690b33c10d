"""Document persistence helpers."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

# mkstemp creates 0600 files; new documents get the usual readable mode
_NEW_FILE_MODE = 0o644


def read_text_or_empty(path: Path) -> tuple[str, OSError | UnicodeDecodeError | None]:
    """Read ``path``; an unreadable or missing file reads as empty text.

    The second element is the swallowed error, for callers that trace it.
    """
    try:
        return path.read_text(encoding="utf-8"), None
    except (OSError, UnicodeDecodeError) as exc:
        return "", exc


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` via a sibling temp file and an atomic rename.

    Every call gets its own temp file, so concurrent writers never rename each
    other's data. On failure the original file is left as it was and the temp
    file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        mode = path.stat().st_mode & 0o777
    except FileNotFoundError:
        mode = _NEW_FILE_MODE
    fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as file_obj:
            file_obj.write(content)
            file_obj.flush()
            os.fsync(file_obj.fileno())
        os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise
