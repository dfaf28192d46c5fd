# dotvault Backend Interface
# Uniform capability set every secret-store provider implements

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Optional

from dotvault.errors import (
    AlreadyExists,
    AuthError,
    BackendError,
    BackendTimeout,
    BackendUnavailable,
    ProtectedItemError,
    UnsupportedOperation,
)

logger = logging.getLogger(__name__)

# Item type tags carried for backend-format compatibility
TYPE_LOGIN = 1
TYPE_SECURE_NOTE = 2

# Names that need explicit confirmation before deletion
PROTECTED_PREFIXES: tuple[str, ...] = ("SSH-", "AWS-")
PROTECTED_NAMES: frozenset[str] = frozenset({"Git-Config"})


@dataclass(frozen=True)
class VaultItem:
    """Backend-side representation of one secret, normalized across providers."""

    id: str
    name: str
    type_tag: int
    content: str = field(repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the per-item exchange format."""
        return {"id": self.id, "name": self.name, "type": self.type_tag, "notes": self.content}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VaultItem":
        """Create from the exchange format ({id, name, type, notes})."""
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            type_tag=int(data.get("type") or TYPE_SECURE_NOTE),
            content=data.get("notes") or "",
        )


@dataclass(frozen=True)
class VaultItemSummary:
    """Listing entry; carries no content."""

    id: str
    name: str
    type_tag: int


@dataclass(frozen=True)
class Session:
    """
    Short-lived authentication capability.

    An empty token is valid for backends whose CLI handles auth itself
    (1Password system auth, pass via gpg-agent).
    """

    token: str = field(repr=False)
    backend_kind: str
    expiry: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiry is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expiry


@dataclass(frozen=True)
class HealthCheck:
    """One line of a backend health report."""

    name: str
    ok: bool
    detail: str = ""


def is_protected_name(name: str, extra: Iterable[str] = ()) -> bool:
    """Check whether deleting an item needs explicit confirmation."""
    return name in PROTECTED_NAMES or name.startswith(PROTECTED_PREFIXES) or name in set(extra)


def run_cli(
    args: list[str],
    *,
    timeout: float,
    input: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    interactive: bool = False,
    install_hint: str = "",
) -> subprocess.CompletedProcess[str]:
    """
    Run a backend CLI command with a mandatory timeout.

    Args:
        args: Command and arguments.
        timeout: Seconds before the process is killed.
        input: Text written to stdin. Never logged.
        env: Extra environment variables for the child process.
        interactive: Leave stdin and stderr attached to the terminal so
            the CLI can prompt (unlock, sign-in). Stdout is still captured.
        install_hint: Shown when the binary is missing.

    Returns:
        CompletedProcess with result.

    Raises:
        BackendUnavailable: If the binary is not installed.
        BackendTimeout: If the command did not finish within timeout.
    """
    # Only the command and subcommand are safe to show; later args may carry tokens
    label = " ".join(args[:3])
    child_env = {**os.environ, **env} if env else None
    try:
        if interactive:
            return subprocess.run(
                args,
                stdout=subprocess.PIPE,
                text=True,
                timeout=timeout,
                env=child_env,
                check=False,
            )
        return subprocess.run(
            args,
            input=input,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=child_env,
            check=False,
        )
    except FileNotFoundError:
        raise BackendUnavailable(f"{args[0]} command not found", install_hint)
    except subprocess.TimeoutExpired:
        raise BackendTimeout(f"'{label}' timed out after {timeout:g}s", "Check network access and retry.")


class BackendAdapter(ABC):
    """
    Capability interface implemented once per secret-store provider.

    Adapters own the translation from the provider's native format to
    VaultItem, so callers never branch on backend kind.
    """

    kind: ClassVar[str] = ""
    display_name: ClassVar[str] = ""
    binary: ClassVar[str] = ""
    install_hint: ClassVar[str] = ""
    supports_attachments: ClassVar[bool] = False

    # Lower-case stderr fragments that mean the session is no longer valid
    auth_error_markers: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        *,
        timeout: float = 60.0,
        auth_timeout: float = 300.0,
        protected_names: Iterable[str] = (),
    ):
        self.timeout = timeout
        self.auth_timeout = auth_timeout
        self.protected_names = frozenset(protected_names)

    # -- subprocess plumbing ------------------------------------------------

    def _env(self) -> Optional[dict[str, str]]:
        """Extra environment for the backend CLI."""
        return None

    def _run(
        self,
        *args: str,
        input: Optional[str] = None,
        check: bool = True,
        interactive: bool = False,
        timeout: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run the backend binary; raise a typed error on failure when check is set."""
        extra_env = {**(self._env() or {}), **(env or {})}
        result = run_cli(
            [self.binary, *args],
            timeout=timeout or self.timeout,
            input=input,
            env=extra_env or None,
            interactive=interactive,
            install_hint=self.install_hint,
        )
        if check and result.returncode != 0:
            self._raise_for(result, args[:2])
        return result

    def _raise_for(self, result: subprocess.CompletedProcess[str], action: tuple[str, ...]) -> None:
        """Classify a failed command as an auth or backend error."""
        stderr = (result.stderr or "").strip()
        lowered = stderr.lower()
        label = f"{self.binary} {' '.join(action)}"
        if any(marker in lowered for marker in self.auth_error_markers):
            raise AuthError(f"{self.display_name} session is not valid ({label})")
        raise BackendError(
            f"{label} failed with exit code {result.returncode}",
            returncode=result.returncode,
            stderr=stderr,
        )

    # -- required capabilities ---------------------------------------------

    @abstractmethod
    def init(self) -> None:
        """
        Verify the provider CLI is installed and minimally configured.

        Raises:
            BackendUnavailable: With an install hint.
        """

    @abstractmethod
    def authenticate(self, cached_token: Optional[str] = None) -> Session:
        """
        Produce a valid session, reusing cached_token when it still works.

        Raises:
            AuthError: If no valid session can be obtained.
        """

    @abstractmethod
    def get_item(self, name: str, session: Session) -> Optional[VaultItem]:
        """Fetch an item by name. Absence is None, not an error."""

    @abstractmethod
    def list_items(self, session: Session) -> list[VaultItemSummary]:
        """List items visible to this backend."""

    @abstractmethod
    def _create(self, name: str, content: str, session: Session) -> None:
        """Provider-specific creation; existence already checked."""

    @abstractmethod
    def update_item(self, name: str, content: str, session: Session) -> None:
        """
        Overwrite an existing item's content unconditionally.

        Raises:
            ItemNotFound: If the item does not exist.
        """

    @abstractmethod
    def _delete(self, name: str, session: Session) -> None:
        """Provider-specific deletion; protection already checked."""

    # -- template methods ---------------------------------------------------

    def item_exists(self, name: str, session: Session) -> bool:
        return self.get_item(name, session) is not None

    def create_item(self, name: str, content: str, session: Session) -> None:
        """
        Create a new item.

        Not idempotent: an existing name is an error, so a duplicate push
        is never silently turned into an overwrite.

        Raises:
            AlreadyExists: If the name is present.
        """
        if self.item_exists(name, session):
            raise AlreadyExists(name)
        self._create(name, content, session)
        logger.info("Created %s item '%s'", self.display_name, name)

    def delete_item(self, name: str, session: Session, *, confirm_protected: bool = False) -> None:
        """
        Delete an item.

        Raises:
            ProtectedItemError: If the name is protected and not confirmed.
            ItemNotFound: If the item does not exist.
        """
        if self.is_protected(name) and not confirm_protected:
            raise ProtectedItemError(name)
        self._delete(name, session)
        logger.info("Deleted %s item '%s'", self.display_name, name)

    def is_protected(self, name: str) -> bool:
        return is_protected_name(name, self.protected_names)

    # -- optional capabilities ---------------------------------------------

    def refresh(self, session: Session) -> None:
        """Pull the latest remote state into the local CLI cache, if supported."""

    def get_attachment(self, name: str, attachment: str, session: Session) -> bytes:
        raise UnsupportedOperation(f"{self.display_name} does not support attachments")

    def health_check(self, cached_token: Optional[str] = None) -> list[HealthCheck]:
        """Report installation and login status without raising."""
        try:
            self.init()
        except BackendError as e:
            return [HealthCheck(f"{self.display_name} CLI", False, e.message)]
        return [HealthCheck(f"{self.display_name} CLI", True, "installed")]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(timeout={self.timeout:g})"
