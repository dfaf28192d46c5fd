# dotvault Backends Module
# Closed registry of secret-store providers

from collections.abc import Iterable

from dotvault.backends.base import (
    PROTECTED_NAMES,
    PROTECTED_PREFIXES,
    TYPE_LOGIN,
    TYPE_SECURE_NOTE,
    BackendAdapter,
    HealthCheck,
    Session,
    VaultItem,
    VaultItemSummary,
    is_protected_name,
    run_cli,
)
from dotvault.backends.bitwarden import BitwardenBackend
from dotvault.backends.onepassword import OnePasswordBackend
from dotvault.backends.pass_store import PassBackend

BACKENDS: dict[str, type[BackendAdapter]] = {
    BitwardenBackend.kind: BitwardenBackend,
    OnePasswordBackend.kind: OnePasswordBackend,
    PassBackend.kind: PassBackend,
}


def get_backend(settings, *, protected_names: Iterable[str] = ()) -> BackendAdapter:
    """
    Build the configured backend adapter.

    Args:
        settings: Resolved runtime settings.
        protected_names: Extra names needing delete confirmation.

    Raises:
        KeyError: If settings name an unregistered backend.
    """
    cls = BACKENDS[settings.backend]
    common = {
        "timeout": settings.timeout,
        "auth_timeout": settings.auth_timeout,
        "protected_names": protected_names,
    }
    if cls is OnePasswordBackend:
        return OnePasswordBackend(vault=settings.onepassword_vault, **common)
    if cls is PassBackend:
        return PassBackend(store_dir=settings.password_store_dir, prefix=settings.pass_prefix, **common)
    return cls(**common)


__all__ = [
    "BACKENDS",
    "get_backend",
    # Interface
    "BackendAdapter",
    "VaultItem",
    "VaultItemSummary",
    "Session",
    "HealthCheck",
    "run_cli",
    "is_protected_name",
    "PROTECTED_PREFIXES",
    "PROTECTED_NAMES",
    "TYPE_LOGIN",
    "TYPE_SECURE_NOTE",
    # Providers
    "BitwardenBackend",
    "OnePasswordBackend",
    "PassBackend",
]
