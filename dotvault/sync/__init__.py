# dotvault Sync Module
# Drift detection, backups, baselines and the sync engine

from dotvault.sync.actions import Action, ExitClass, ItemOutcome, RunResult, Status
from dotvault.sync.backup import BackupManager
from dotvault.sync.content import compose_bundle, read_local, split_bundle, write_local
from dotvault.sync.drift import Direction, DriftDetector, DriftReport
from dotvault.sync.engine import ItemStatus, SyncEngine
from dotvault.sync.state import ItemState, StateManager, SyncState

__all__ = [
    # Actions
    "Action",
    "Status",
    "ExitClass",
    "ItemOutcome",
    "RunResult",
    # Content
    "read_local",
    "write_local",
    "compose_bundle",
    "split_bundle",
    # Drift
    "Direction",
    "DriftDetector",
    "DriftReport",
    # Backup
    "BackupManager",
    # State
    "ItemState",
    "SyncState",
    "StateManager",
    # Engine
    "SyncEngine",
    "ItemStatus",
]
