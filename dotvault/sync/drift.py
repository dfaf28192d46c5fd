# dotvault Drift Detection
# Four-way classification of local and vault changes since the last sync

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from dotvault.sync.state import ItemState
from dotvault.utils.hashing import MISSING_HASH, content_hash

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    """Which way data should flow for an item."""

    NOOP = "noop"
    PUSH = "push"
    PULL = "pull"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class DriftReport:
    """Fingerprints and the resulting classification for one item."""

    name: str
    direction: Direction
    local_hash: str
    vault_hash: str
    last_local_hash: Optional[str] = None
    last_vault_hash: Optional[str] = None

    @property
    def never_synced(self) -> bool:
        return self.last_local_hash is None and self.last_vault_hash is None

    @property
    def local_changed(self) -> bool:
        return self.local_hash != (self.last_local_hash or MISSING_HASH)

    @property
    def vault_changed(self) -> bool:
        return self.vault_hash != (self.last_vault_hash or MISSING_HASH)

    @property
    def local_missing(self) -> bool:
        return self.local_hash == MISSING_HASH

    @property
    def vault_missing(self) -> bool:
        return self.vault_hash == MISSING_HASH

    @property
    def in_sync(self) -> bool:
        """Both sides hold the same content."""
        return self.local_hash == self.vault_hash and not self.local_missing


class DriftDetector:
    """
    Compares current fingerprints with the last synced baseline.

    A never-synced item has the sentinel as its baseline on both sides, so
    a file present locally reads as "local changed" and is pushed on the
    first sync without any prior state.
    """

    def classify(
        self,
        name: str,
        local_content: Optional[str],
        vault_content: Optional[str],
        baseline: Optional[ItemState] = None,
    ) -> DriftReport:
        """
        Classify one item.

        Args:
            name: Item name.
            local_content: Current local content, None if the file is absent.
            vault_content: Current vault content, None if the item is absent.
            baseline: Last synced state, None if never synced.

        Returns:
            DriftReport with the chosen direction.
        """
        return self.classify_hashes(
            name,
            content_hash(local_content),
            content_hash(vault_content),
            baseline,
        )

    def classify_hashes(
        self,
        name: str,
        local_hash: str,
        vault_hash: str,
        baseline: Optional[ItemState] = None,
    ) -> DriftReport:
        last_local = baseline.local_hash if baseline else None
        last_vault = baseline.vault_hash if baseline else None

        local_changed = local_hash != (last_local or MISSING_HASH)
        vault_changed = vault_hash != (last_vault or MISSING_HASH)

        if local_changed and vault_changed:
            # Both moved to the same content: nothing to transfer
            direction = Direction.NOOP if local_hash == vault_hash else Direction.CONFLICT
        elif local_changed:
            direction = Direction.PUSH
        elif vault_changed:
            direction = Direction.PULL
        else:
            direction = Direction.NOOP

        logger.debug(
            "Drift %s: local_changed=%s vault_changed=%s -> %s",
            name,
            local_changed,
            vault_changed,
            direction.value,
        )
        return DriftReport(
            name=name,
            direction=direction,
            local_hash=local_hash,
            vault_hash=vault_hash,
            last_local_hash=last_local,
            last_vault_hash=last_vault,
        )
