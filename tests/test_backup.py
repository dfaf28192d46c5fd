# Tests for dotvault.sync.backup
# Timestamped pre-write snapshots

import stat
from datetime import datetime

import pytest

from dotvault.errors import BackupFailure
from dotvault.sync.backup import BackupManager


def frozen_clock():
    return datetime(2024, 5, 1, 12, 30, 45, 123456)


class TestBackupManager:
    """Tests for BackupManager."""

    def test_backup_path_format(self, temp_home):
        manager = BackupManager(clock=frozen_clock)
        target = temp_home / ".gitconfig"
        assert manager.backup_path_for(target, frozen_clock()) == temp_home / ".gitconfig.bak-20240501-123045-123456"

    def test_backup_copies_content_owner_only(self, temp_home):
        original = temp_home / ".gitconfig"
        original.write_text("name=A", encoding="utf-8")
        original.chmod(0o644)

        backup = BackupManager(clock=frozen_clock).backup_file(original)

        assert backup.read_text(encoding="utf-8") == "name=A"
        assert stat.S_IMODE(backup.stat().st_mode) == 0o600
        assert original.read_text(encoding="utf-8") == "name=A"

    def test_missing_file_not_backed_up(self, temp_home):
        assert BackupManager().backup_file(temp_home / "nope") is None

    def test_collision_gets_later_name(self, temp_home):
        original = temp_home / ".gitconfig"
        original.write_text("v1", encoding="utf-8")
        manager = BackupManager(clock=frozen_clock)

        first = manager.backup_file(original)
        original.write_text("v2", encoding="utf-8")
        second = manager.backup_file(original)

        assert first != second
        assert second.name.endswith("-123457")
        assert manager.list_backups(original) == [first, second]
        assert second.read_text(encoding="utf-8") == "v2"

    def test_ordering_follows_time(self, temp_home, ticking_clock):
        original = temp_home / ".gitconfig"
        original.write_text("x", encoding="utf-8")
        manager = BackupManager(clock=ticking_clock)
        created = [manager.backup_file(original) for _ in range(3)]
        assert manager.list_backups(original) == created

    def test_backup_dir(self, temp_home, temp_dir):
        original = temp_home / ".gitconfig"
        original.write_text("x", encoding="utf-8")
        manager = BackupManager(temp_dir / "backups", clock=frozen_clock)
        backup = manager.backup_file(original)
        assert backup.parent == temp_dir / "backups"

    def test_failure_raises(self, temp_home, temp_dir):
        original = temp_home / ".gitconfig"
        original.write_text("x", encoding="utf-8")
        blocker = temp_dir / "not-a-dir"
        blocker.write_text("", encoding="utf-8")

        with pytest.raises(BackupFailure, match="Backup of"):
            BackupManager(blocker, clock=frozen_clock).backup_file(original)

    def test_ssh_pair_backed_up(self, temp_home, make_spec, ticking_clock):
        ssh_dir = temp_home / ".ssh"
        ssh_dir.mkdir()
        (ssh_dir / "id_ed25519").write_text("private", encoding="utf-8")
        (ssh_dir / "id_ed25519.pub").write_text("public", encoding="utf-8")
        spec = make_spec("SSH-Personal", "~/.ssh/id_ed25519", type="ssh-key")

        created = BackupManager(clock=ticking_clock).backup(spec)

        assert [p.name.split(".bak-")[0] for p in created] == ["id_ed25519", "id_ed25519.pub"]

    def test_backup_disabled(self, temp_home, make_spec):
        (temp_home / ".gitconfig").write_text("x", encoding="utf-8")
        spec = make_spec(backup=False)
        assert BackupManager().backup(spec) == []

    def test_symlinked_file_backed_up_beside_link(self, temp_home, make_spec):
        real = temp_home / "dotfiles" / "gitconfig"
        real.parent.mkdir()
        real.write_text("name=A", encoding="utf-8")
        (temp_home / ".gitconfig").symlink_to(real)

        created = BackupManager(clock=frozen_clock).backup(make_spec())

        assert created == [temp_home / ".gitconfig.bak-20240501-123045-123456"]
        assert created[0].read_text(encoding="utf-8") == "name=A"
