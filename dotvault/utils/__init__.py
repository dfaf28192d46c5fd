# dotvault Utilities Module
# Helper functions for path handling and content hashing

from dotvault.utils.hashing import (
    MISSING_HASH,
    content_hash,
    short_hash,
)
from dotvault.utils.paths import (
    OWNER_ONLY,
    atomic_write,
    ensure_dir,
    expand_path,
    file_mode,
)

__all__ = [
    # Paths
    "OWNER_ONLY",
    "expand_path",
    "ensure_dir",
    "file_mode",
    "atomic_write",
    # Hashing
    "MISSING_HASH",
    "content_hash",
    "short_hash",
]
