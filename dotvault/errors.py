# dotvault Errors
# Exception hierarchy shared by the backends, session cache and sync engine


class DotvaultError(Exception):
    """
    Base exception for all dotvault failures.

    Args:
        message: What went wrong.
        remediation: The action the operator should take next.
    """

    def __init__(self, message: str, remediation: str = ""):
        self.message = message
        self.remediation = remediation
        super().__init__(message)


class ConfigError(DotvaultError):
    """Malformed item schema or application config. Fatal before any backend call."""

    def __init__(self, message: str, errors: list[str] | None = None, remediation: str = ""):
        self.errors = errors or []
        super().__init__(message, remediation or "Fix the configuration and run 'dotvault validate'.")


class AuthError(DotvaultError):
    """Authentication failed or the session expired."""

    def __init__(self, message: str, remediation: str = ""):
        super().__init__(message, remediation or "Re-authenticate with the backend CLI and retry.")


class BackendError(DotvaultError):
    """A backend operation failed for a single item."""

    def __init__(self, message: str, remediation: str = "", *, returncode: int | None = None, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message, remediation)


class BackendUnavailable(BackendError):
    """The backend CLI is missing or unreachable. Fatal for the backend."""

    def __init__(self, message: str, install_hint: str = ""):
        self.install_hint = install_hint
        super().__init__(message, f"Install with: {install_hint}" if install_hint else "")


class BackendTimeout(BackendError):
    """A backend call exceeded its timeout."""


class AlreadyExists(BackendError):
    """createItem was called for a name that is already present."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Item '{name}' already exists", "Use update instead of create.")


class ItemNotFound(BackendError):
    """The named item does not exist in the vault."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Item '{name}' not found in vault")


class ProtectedItemError(BackendError):
    """Deleting a protected item without explicit confirmation."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Item '{name}' is protected",
            "Pass the explicit protected-item confirmation to delete it.",
        )


class UnsupportedOperation(BackendError):
    """The backend does not implement an optional capability."""


class DriftConflict(DotvaultError):
    """Local and vault content both changed since the last sync."""

    def __init__(self, names: list[str], message: str = ""):
        self.names = list(names)
        super().__init__(
            message or f"Conflicting changes in: {', '.join(self.names)}",
            "Resolve manually, or re-run with --force (pull/push) or --force-local/--force-vault (sync).",
        )


class FilePermissionError(DotvaultError):
    """A local secret file has the wrong mode or cannot be written."""

    def __init__(self, path: str, expected_mode: int, message: str = ""):
        self.path = path
        self.expected_mode = expected_mode
        super().__init__(
            message or f"Permission problem on {path}",
            f"Run: chmod {expected_mode:o} {path}",
        )


class BackupFailure(DotvaultError):
    """A pre-write backup could not be created; the write was aborted."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Backup of {path} failed: {reason}", "Check disk space and permissions, then retry.")


class ContentError(DotvaultError):
    """Vault content could not be turned into local files (e.g. no private key block)."""
