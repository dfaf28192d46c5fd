# Tests for dotvault.sync.state
# Baseline persistence, single commit per run, backend binding

import stat
from datetime import datetime, timezone

import pytest
import yaml

from dotvault.errors import ConfigError
from dotvault.sync.state import ItemState, StateManager, SyncState


def fixed_clock():
    return datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestSyncState:
    """Tests for SyncState serialization."""

    def test_roundtrip(self):
        state = SyncState(backend="bitwarden")
        state.items["Git-Config"] = ItemState(name="Git-Config", local_hash="a", vault_hash="b", last_action="push")
        restored = SyncState.from_dict(state.to_dict())
        assert restored.backend == "bitwarden"
        assert restored.get_item("Git-Config") == state.items["Git-Config"]

    def test_item_to_dict_omits_none(self):
        assert ItemState(name="X", local_hash="a").to_dict() == {"name": "X", "local_hash": "a"}

    def test_from_dict_fills_name(self):
        state = SyncState.from_dict({"items": {"Git-Config": {"local_hash": "a"}}})
        assert state.items["Git-Config"].name == "Git-Config"


class TestStateManager:
    """Tests for StateManager."""

    @pytest.fixture
    def manager(self, state_file):
        return StateManager(state_file, clock=fixed_clock)

    def test_missing_file_is_empty(self, manager):
        assert manager.state.items == {}
        assert manager.state.backend is None

    def test_record_then_commit(self, manager, state_file):
        manager.record("Git-Config", "lh", "vh", "push")
        assert manager.dirty
        assert not state_file.exists()

        assert manager.commit() is True
        assert not manager.dirty
        data = yaml.safe_load(state_file.read_text(encoding="utf-8"))
        assert data["items"]["Git-Config"]["local_hash"] == "lh"
        assert data["items"]["Git-Config"]["last_action"] == "push"
        assert data["items"]["Git-Config"]["last_synced_at"] == "2024-05-01T12:00:00+00:00"

    def test_commit_is_owner_only(self, manager, state_file):
        manager.record("Git-Config", "lh", "vh", "push")
        manager.commit()
        assert stat.S_IMODE(state_file.stat().st_mode) == 0o600

    def test_commit_without_changes_writes_nothing(self, manager, state_file):
        manager.state
        assert manager.commit() is False
        assert not state_file.exists()

    def test_second_commit_is_noop(self, manager, state_file):
        manager.record("Git-Config", "lh", "vh", "push")
        manager.commit()
        mtime = state_file.stat().st_mtime_ns
        assert manager.commit() is False
        assert state_file.stat().st_mtime_ns == mtime

    def test_reload_from_disk(self, manager, state_file):
        manager.record("Git-Config", "lh", "vh", "pull")
        manager.bind_backend("pass")
        manager.commit()

        reloaded = StateManager(state_file)
        assert reloaded.state.backend == "pass"
        assert reloaded.get_item("Git-Config").vault_hash == "vh"

    def test_bind_backend_first_time(self, manager):
        assert manager.bind_backend("bitwarden") is False
        assert manager.state.backend == "bitwarden"
        assert manager.dirty

    def test_bind_same_backend_is_clean(self, manager, state_file):
        manager.bind_backend("bitwarden")
        manager.commit()
        fresh = StateManager(state_file)
        assert fresh.bind_backend("bitwarden") is False
        assert not fresh.dirty

    def test_backend_switch_discards_baselines(self, manager):
        manager.bind_backend("bitwarden")
        manager.record("Git-Config", "lh", "vh", "push")
        assert manager.bind_backend("1password") is True
        assert manager.state.items == {}
        assert manager.state.backend == "1password"

    def test_forget(self, manager):
        manager.record("Git-Config", "lh", "vh", "push")
        manager.commit()
        assert manager.forget("Git-Config") is True
        assert manager.dirty
        assert manager.forget("Git-Config") is False

    def test_corrupt_yaml(self, state_file):
        state_file.parent.mkdir(parents=True)
        state_file.write_text("items: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError, match="Corrupt sync state") as exc_info:
            StateManager(state_file).load()
        assert "Delete" in exc_info.value.remediation

    def test_non_mapping_state(self, state_file):
        state_file.parent.mkdir(parents=True)
        state_file.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            StateManager(state_file).load()

    def test_empty_file_is_empty_state(self, state_file):
        state_file.parent.mkdir(parents=True)
        state_file.write_text("", encoding="utf-8")
        assert StateManager(state_file).load().items == {}
