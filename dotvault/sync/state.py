# dotvault Sync State
# Per-item baselines persisted between runs

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml

from dotvault.errors import ConfigError
from dotvault.utils.paths import OWNER_ONLY, atomic_write

logger = logging.getLogger(__name__)

STATE_VERSION = "1"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ItemState:
    """Last known fingerprints of one item after a confirmed push or pull."""

    name: str
    local_hash: Optional[str] = None
    vault_hash: Optional[str] = None
    last_synced_at: Optional[str] = None  # ISO format datetime
    last_action: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ItemState":
        """Create from dictionary."""
        return cls(
            name=data.get("name", ""),
            local_hash=data.get("local_hash"),
            vault_hash=data.get("vault_hash"),
            last_synced_at=data.get("last_synced_at"),
            last_action=data.get("last_action"),
        )


@dataclass
class SyncState:
    """
    Baselines for all items, bound to one backend.

    A state generation belongs to exactly one backend; hashes recorded
    against another backend are meaningless and are discarded.
    """

    version: str = STATE_VERSION
    backend: Optional[str] = None
    last_sync: Optional[str] = None  # ISO format datetime
    items: dict[str, ItemState] = field(default_factory=dict)

    def get_item(self, name: str) -> Optional[ItemState]:
        return self.items.get(name)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "version": self.version,
            "backend": self.backend,
            "last_sync": self.last_sync,
            "items": {name: item.to_dict() for name, item in self.items.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncState":
        """Create from dictionary."""
        items = {}
        for name, item_data in (data.get("items") or {}).items():
            item_data = {"name": name, **(item_data or {})}
            items[name] = ItemState.from_dict(item_data)

        return cls(
            version=str(data.get("version", STATE_VERSION)),
            backend=data.get("backend"),
            last_sync=data.get("last_sync"),
            items=items,
        )


class StateManager:
    """
    Loads sync state and writes it back once per run.

    Updates are staged in memory by record(); commit() persists them with
    a single atomic rewrite. Nothing is written when no update was staged.
    """

    def __init__(self, state_path: Path, *, clock: Callable[[], datetime] = _utcnow):
        """
        Initialize state manager.

        Args:
            state_path: Path to the YAML state file.
            clock: Source of the current time (injectable for tests).
        """
        self.state_path = state_path
        self.clock = clock
        self._state: Optional[SyncState] = None
        self._dirty = False

    @property
    def state(self) -> SyncState:
        """Get current state, loading if necessary."""
        if self._state is None:
            self._state = self.load()
        return self._state

    @property
    def dirty(self) -> bool:
        return self._dirty

    def load(self) -> SyncState:
        """
        Load state from file.

        Raises:
            ConfigError: If the file exists but is not valid state YAML.
        """
        if not self.state_path.exists():
            return SyncState()

        try:
            with open(self.state_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Corrupt sync state file: {self.state_path}",
                [str(e)],
                f"Delete {self.state_path} to re-establish baselines on the next sync.",
            )

        if data is None:
            return SyncState()
        if not isinstance(data, dict):
            raise ConfigError(
                f"Corrupt sync state file: {self.state_path}",
                ["expected a mapping at the top level"],
                f"Delete {self.state_path} to re-establish baselines on the next sync.",
            )
        return SyncState.from_dict(data)

    def get_item(self, name: str) -> Optional[ItemState]:
        return self.state.get_item(name)

    def bind_backend(self, backend: str) -> bool:
        """
        Attach the state to a backend.

        Returns:
            True if a different backend owned the state and its baselines
            were discarded.
        """
        state = self.state
        if state.backend == backend:
            return False

        switched = state.backend is not None
        if switched:
            logger.info("Backend changed from %s to %s; discarding %d baselines", state.backend, backend, len(state.items))
            state.items.clear()
        state.backend = backend
        self._dirty = True
        return switched

    def record(self, name: str, local_hash: str, vault_hash: str, action: str) -> ItemState:
        """Stage the baseline of an item after a confirmed transfer."""
        item_state = ItemState(
            name=name,
            local_hash=local_hash,
            vault_hash=vault_hash,
            last_synced_at=self.clock().isoformat(),
            last_action=action,
        )
        self.state.items[name] = item_state
        self._dirty = True
        return item_state

    def forget(self, name: str) -> bool:
        """Stage removal of an item's baseline."""
        if self.state.items.pop(name, None) is None:
            return False
        self._dirty = True
        return True

    def commit(self) -> bool:
        """
        Persist staged updates with one atomic owner-only rewrite.

        Returns:
            True if the file was written.
        """
        if not self._dirty or self._state is None:
            return False

        self._state.last_sync = self.clock().isoformat()
        content = yaml.safe_dump(self._state.to_dict(), default_flow_style=False, sort_keys=False, allow_unicode=True)
        atomic_write(self.state_path, content, mode=OWNER_ONLY)
        self._dirty = False
        logger.debug("Committed sync state (%d items) to %s", len(self._state.items), self.state_path)
        return True
