# dotvault Path Utilities
# Path expansion and atomic, owner-restricted file writes

import os
import stat
import tempfile
from pathlib import Path

OWNER_ONLY = 0o600


def expand_path(path: str | Path) -> Path:
    """
    Expand ~ in path.

    Symlinks are not resolved, so a linked dotfile keeps its own path.

    Args:
        path: Path string or Path object.

    Returns:
        Expanded Path object.
    """
    return Path(path).expanduser()


def ensure_dir(path: Path, mode: int = 0o755) -> Path:
    """
    Ensure directory exists, creating if necessary.

    Args:
        path: Directory path.
        mode: Mode for newly created directories.

    Returns:
        The path that was ensured.
    """
    path.mkdir(parents=True, exist_ok=True, mode=mode)
    return path


def file_mode(path: Path) -> int | None:
    """Return the permission bits of a file, or None if it doesn't exist."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        return None


def atomic_write(path: Path, content: str | bytes, *, mode: int = OWNER_ONLY, encoding: str = "utf-8") -> None:
    """
    Atomically write content to file.

    The content goes to a temporary file in the same directory which is
    chmod-ed and then renamed over the target, so readers never observe a
    half-written file.

    Args:
        path: Target file path.
        content: Content to write (str or bytes).
        mode: Permission bits of the resulting file (default 0600).
        encoding: Encoding for string content (default utf-8).
    """
    ensure_dir(path.parent)

    # mkstemp creates the file 0600, so secrets are never briefly world-readable
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        if isinstance(content, str):
            with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
                f.write(content)
        else:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
        os.chmod(temp_path, mode)
        # Atomic rename
        os.replace(temp_path, path)
    except BaseException:
        # Cleanup on failure, including interrupts
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
