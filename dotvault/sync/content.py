# dotvault Local Content
# Reading and writing the local side of an item (plain files and SSH key pairs)

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotvault.config.schema import SecretSpec
from dotvault.errors import ContentError, FilePermissionError
from dotvault.utils.paths import OWNER_ONLY, atomic_write, file_mode

logger = logging.getLogger(__name__)

PUBLIC_KEY_MODE = 0o644

# Directories whose files always get owner-only permissions
SENSITIVE_DIRS = (".ssh", ".aws")

_PRIVATE_KEY_RE = re.compile(
    r"^-----BEGIN [A-Z0-9 ]*PRIVATE KEY-----$.*?^-----END [A-Z0-9 ]*PRIVATE KEY-----$",
    re.MULTILINE | re.DOTALL,
)
_PUBLIC_KEY_PREFIXES = ("ssh-ed25519", "ssh-rsa", "ecdsa-sha2-", "ssh-dss", "sk-")


@dataclass(frozen=True)
class KeyPair:
    """An SSH key bundle split into its two files."""

    private: str
    public: Optional[str] = None


def public_key_path(private_path: Path) -> Path:
    return private_path.with_name(private_path.name + ".pub")


def compose_bundle(private: str, public: Optional[str]) -> str:
    """Concatenate a private key and its public key line into one vault entry."""
    bundle = private.rstrip("\n") + "\n"
    if public and public.strip():
        bundle += public.strip() + "\n"
    return bundle


def split_bundle(content: str) -> KeyPair:
    """
    Extract the private key block and the public key line from a bundle.

    Raises:
        ContentError: If no private key block is present.
    """
    match = _PRIVATE_KEY_RE.search(content)
    if match is None:
        raise ContentError("No private key block found in vault content")

    public = None
    for line in content[match.end():].splitlines():
        line = line.strip()
        if line.startswith(_PUBLIC_KEY_PREFIXES):
            public = line + "\n"
            break

    return KeyPair(private=match.group(0) + "\n", public=public)


def vault_form(spec: SecretSpec, content: str) -> str:
    """
    Vault content as it reads back locally once restored.

    SSH bundles are recomposed from their private and public parts so that
    spacing around the key lines does not count as drift. A bundle without
    a private key block is returned unchanged.
    """
    if not spec.is_ssh_key:
        return content
    try:
        pair = split_bundle(content)
    except ContentError:
        return content
    return compose_bundle(pair.private, pair.public)


def target_mode(path: Path) -> int:
    """
    Permission bits for a restored file.

    Files under ~/.ssh or ~/.aws are always owner-only. Other existing
    files keep their mode; new ones are owner-only.
    """
    if any(part in SENSITIVE_DIRS for part in path.parts):
        return OWNER_ONLY
    existing = file_mode(path)
    return existing if existing is not None else OWNER_ONLY


def read_local(spec: SecretSpec) -> Optional[str]:
    """
    Read the local content of an item in its vault form.

    Returns:
        The file content (or key bundle), None if the local file is absent.

    Raises:
        FilePermissionError: If the file exists but cannot be read.
    """
    path = spec.local_path
    try:
        content = _read_text(path)
    except FileNotFoundError:
        return None
    except PermissionError:
        raise FilePermissionError(str(path), OWNER_ONLY, f"Cannot read {path}")

    if not spec.is_ssh_key:
        return content

    pub_path = public_key_path(path)
    try:
        public = _read_text(pub_path)
    except FileNotFoundError:
        public = None
    except PermissionError:
        raise FilePermissionError(str(pub_path), PUBLIC_KEY_MODE, f"Cannot read {pub_path}")
    return vault_form(spec, compose_bundle(content, public))


def _read_text(path: Path) -> str:
    # Line endings are part of the fingerprint, so no newline translation
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def local_files(spec: SecretSpec) -> list[Path]:
    """Local files that a write of this item would replace."""
    path = spec.local_path
    if spec.is_ssh_key:
        return [path, public_key_path(path)]
    return [path]


def write_local(spec: SecretSpec, content: str) -> list[Path]:
    """
    Write vault content to the local side of an item.

    Returns:
        Paths written.

    Raises:
        ContentError: If an SSH bundle has no private key block.
        FilePermissionError: If the target cannot be written.
    """
    path = spec.local_path

    if not spec.is_ssh_key:
        _write(path, content, target_mode(path))
        return [path]

    pair = split_bundle(content)
    _write(path, pair.private, OWNER_ONLY)
    written = [path]
    if pair.public is not None:
        pub_path = public_key_path(path)
        _write(pub_path, pair.public, PUBLIC_KEY_MODE)
        written.append(pub_path)
    else:
        logger.warning("No public key line in vault entry '%s'; wrote private key only", spec.name)
    return written


def _write(path: Path, content: str, mode: int) -> None:
    try:
        atomic_write(path, content, mode=mode)
    except PermissionError:
        raise FilePermissionError(str(path.parent), 0o700, f"Cannot write {path}")
    logger.debug("Wrote %s (mode %o)", path, mode)


def check_private_key_mode(spec: SecretSpec) -> Optional[FilePermissionError]:
    """Return a FilePermissionError if an SSH private key is readable by others."""
    if not spec.is_ssh_key:
        return None
    mode = file_mode(spec.local_path)
    if mode is None or not mode & 0o077:
        return None
    return FilePermissionError(
        str(spec.local_path),
        OWNER_ONLY,
        f"{spec.local_path} has mode {mode:o}, expected {OWNER_ONLY:o}",
    )
