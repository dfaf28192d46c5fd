# dotvault Backup Manager
# Timestamped snapshots of local files taken before they are overwritten

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from dotvault.config.schema import SecretSpec
from dotvault.errors import BackupFailure
from dotvault.sync.content import local_files
from dotvault.utils.paths import OWNER_ONLY, atomic_write

logger = logging.getLogger(__name__)

BACKUP_MARKER = ".bak-"
TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S-%f"


class BackupManager:
    """
    Creates <original>.bak-<timestamp> copies before local overwrites.

    A backup either completes before the caller proceeds or raises
    BackupFailure, in which case the overwrite must not happen.
    """

    def __init__(self, backup_dir: Optional[Path] = None, *, clock: Callable[[], datetime] = datetime.now):
        """
        Initialize backup manager.

        Args:
            backup_dir: Directory for backups. None places each backup next
                to its original file.
            clock: Source of the current time (injectable for tests).
        """
        self.backup_dir = backup_dir
        self.clock = clock

    def backup_path_for(self, path: Path, when: datetime) -> Path:
        parent = self.backup_dir or path.parent
        return parent / f"{path.name}{BACKUP_MARKER}{when.strftime(TIMESTAMP_FORMAT)}"

    def backup_file(self, path: Path) -> Optional[Path]:
        """
        Snapshot one file.

        Returns:
            Path of the backup, None if there was nothing to back up.

        Raises:
            BackupFailure: If the copy could not be completed.
        """
        if not path.is_file():
            return None

        when = self.clock()
        target = self.backup_path_for(path, when)
        # Keep every backup distinct and ordered after earlier ones
        while target.exists():
            when += timedelta(microseconds=1)
            target = self.backup_path_for(path, when)

        try:
            atomic_write(target, path.read_bytes(), mode=OWNER_ONLY)
        except OSError as e:
            raise BackupFailure(str(path), e.strerror or str(e))

        logger.info("Backed up %s to %s", path, target)
        return target

    def backup(self, spec: SecretSpec) -> list[Path]:
        """
        Snapshot every existing local file of an item, if it opts into backups.

        Raises:
            BackupFailure: If any snapshot fails.
        """
        if not spec.backup:
            return []

        created = []
        for path in local_files(spec):
            backup_path = self.backup_file(path)
            if backup_path is not None:
                created.append(backup_path)
        return created

    def list_backups(self, path: Path) -> list[Path]:
        """Existing backups of a file, oldest first."""
        parent = self.backup_dir or path.parent
        if not parent.is_dir():
            return []
        return sorted(parent.glob(f"{path.name}{BACKUP_MARKER}*"))
