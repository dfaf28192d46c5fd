"""dotvault - machine-local secrets synchronized with a password vault.

Keeps SSH keys, cloud credentials and config files in Bitwarden,
1Password or pass, with hash-based drift detection so that no push, pull
or sync silently overwrites unsynced changes.
"""

__version__ = "0.4.0"

__all__ = [
    "__version__",
    "SyncEngine",
    "RunResult",
    "ItemOutcome",
    "ExitClass",
    "SessionCache",
    "ItemRegistry",
    "SecretSpec",
    "load_settings",
    "get_backend",
]


def __getattr__(name: str):
    """Lazy import to avoid loading dependencies during setup."""
    if name in ("SyncEngine", "RunResult", "ItemOutcome", "ExitClass"):
        from dotvault import sync

        return getattr(sync, name)
    if name == "SessionCache":
        from dotvault.session import SessionCache

        return SessionCache
    if name in ("ItemRegistry", "SecretSpec", "load_settings"):
        from dotvault import config

        return getattr(config, name)
    if name == "get_backend":
        from dotvault.backends import get_backend

        return get_backend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
