# Tests for dotvault.cli
# CLI commands using Click testing

import json

import pytest
from click.testing import CliRunner

from dotvault import __version__
from dotvault.cli import cli
from dotvault.config.loader import load_config
from dotvault.errors import BackendError
from dotvault.session import SessionCache
from dotvault.sync.backup import BackupManager
from dotvault.sync.engine import SyncEngine
from dotvault.sync.state import StateManager


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def fake_engine(fake_backend, monkeypatch):
    """Route every engine the CLI builds to the in-memory backend."""

    def build(settings, registry):
        return SyncEngine(
            fake_backend,
            SessionCache(fake_backend, settings.session_path),
            StateManager(settings.state_path),
            backups=BackupManager(settings.backup_dir),
            offline=settings.offline,
        )

    monkeypatch.setattr("dotvault.cli._engine", build)
    return fake_backend


@pytest.fixture
def gitconfig(temp_home):
    path = temp_home / ".gitconfig"
    path.write_text("name=A", encoding="utf-8")
    return path


class TestCliGroup:
    """Tests for main CLI group."""

    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "dotvault" in result.output
        for command in ("sync", "push", "pull", "status", "check", "doctor"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "dotvault" in result.output
        assert __version__ in result.output

    def test_backends(self, runner):
        result = runner.invoke(cli, ["backends"])
        assert result.exit_code == 0
        assert "bitwarden" in result.output
        assert "1password" in result.output
        assert "pass" in result.output


class TestSyncCommand:
    """Tests for sync command."""

    def test_help(self, runner):
        result = runner.invoke(cli, ["sync", "--help"])
        assert result.exit_code == 0
        assert "--force-local" in result.output
        assert "--dry-run" in result.output

    def test_first_sync_pushes(self, runner, temp_home, items_file, fake_engine, gitconfig):
        """Unnamed sync pushes the plain file and leaves the manual SSH item alone."""
        result = runner.invoke(cli, ["sync"])
        assert result.exit_code == 0, result.output
        assert fake_engine.items == {"Git-Config": "name=A"}
        assert "Completed" in result.output

    def test_json_output(self, runner, temp_home, items_file, fake_engine, gitconfig):
        result = runner.invoke(cli, ["sync", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["operation"] == "sync"
        assert data["exit_class"] == "success"
        assert data["items"] == [{"name": "Git-Config", "action": "push", "status": "ok", "message": "created"}]

    def test_dry_run(self, runner, temp_home, items_file, fake_engine, gitconfig):
        result = runner.invoke(cli, ["sync", "--dry-run"])
        assert result.exit_code == 0
        assert fake_engine.writes == 0
        assert "dry run" in result.output

    def test_conflict_exit_code(self, runner, temp_home, items_file, fake_engine, gitconfig):
        runner.invoke(cli, ["sync"])
        gitconfig.write_text("name=B", encoding="utf-8")
        fake_engine.items["Git-Config"] = "name=C"

        result = runner.invoke(cli, ["sync"])

        assert result.exit_code == 2
        assert "conflict" in result.output
        assert fake_engine.items["Git-Config"] == "name=C"

    def test_item_failure_exit_code(self, runner, temp_home, items_file, fake_engine, gitconfig):
        fake_engine.errors["Git-Config"] = BackendError("bw get item failed with exit code 1")
        result = runner.invoke(cli, ["sync"])
        assert result.exit_code == 1
        assert "failed" in result.output

    def test_force_flags_exclusive(self, runner, temp_home, items_file, fake_engine):
        result = runner.invoke(cli, ["sync", "--force-local", "--force-vault"])
        assert result.exit_code == 2
        assert "mutually exclusive" in result.output
        assert fake_engine.total_calls == 0

    def test_offline(self, runner, temp_home, items_file, fake_engine, gitconfig, monkeypatch):
        monkeypatch.setenv("DOTVAULT_OFFLINE", "1")
        result = runner.invoke(cli, ["sync"])
        assert result.exit_code == 0
        assert fake_engine.total_calls == 0
        assert "Offline" in result.output

    def test_missing_item_schema(self, runner, temp_home, fake_engine):
        result = runner.invoke(cli, ["sync"])
        assert result.exit_code == 1
        assert "not found" in result.output
        assert fake_engine.total_calls == 0

    def test_unknown_item_name(self, runner, temp_home, items_file, fake_engine):
        result = runner.invoke(cli, ["sync", "Nope"])
        assert result.exit_code == 1
        assert "Unknown item" in result.output

    def test_unknown_backend(self, runner, temp_home, items_file, monkeypatch):
        monkeypatch.setenv("DOTVAULT_BACKEND", "lastpass")
        result = runner.invoke(cli, ["sync"])
        assert result.exit_code == 1
        assert "Unknown vault backend" in result.output


class TestPushPullCommands:
    """Tests for push and pull commands."""

    def test_push_refused_without_tty(self, runner, temp_home, items_file, fake_engine, gitconfig):
        runner.invoke(cli, ["sync"])
        gitconfig.write_text("name=B", encoding="utf-8")
        fake_engine.items["Git-Config"] = "name=C"

        result = runner.invoke(cli, ["push", "Git-Config"])

        assert result.exit_code == 2
        assert "refused" in result.output
        assert fake_engine.items["Git-Config"] == "name=C"

    def test_push_yes_overwrites(self, runner, temp_home, items_file, fake_engine, gitconfig):
        runner.invoke(cli, ["sync"])
        gitconfig.write_text("name=B", encoding="utf-8")
        fake_engine.items["Git-Config"] = "name=C"

        result = runner.invoke(cli, ["push", "Git-Config", "--yes"])

        assert result.exit_code == 0
        assert fake_engine.items["Git-Config"] == "name=B"

    def test_pull_aborted_on_local_changes(self, runner, temp_home, items_file, fake_engine, gitconfig):
        runner.invoke(cli, ["sync"])
        gitconfig.write_text("name=B", encoding="utf-8")
        fake_engine.items["Git-Config"] = "name=C"

        result = runner.invoke(cli, ["pull", "Git-Config"])

        assert result.exit_code == 2
        assert gitconfig.read_text(encoding="utf-8") == "name=B"

    def test_pull_force(self, runner, temp_home, items_file, fake_engine, gitconfig):
        runner.invoke(cli, ["sync"])
        gitconfig.write_text("name=B", encoding="utf-8")
        fake_engine.items["Git-Config"] = "name=C"

        result = runner.invoke(cli, ["pull", "Git-Config", "--force"])

        assert result.exit_code == 0
        assert gitconfig.read_text(encoding="utf-8") == "name=C"
        assert len(list(temp_home.glob(".gitconfig.bak-*"))) == 1


class TestInspectionCommands:
    """Tests for status, check, list and delete."""

    def test_status(self, runner, temp_home, items_file, fake_engine, gitconfig):
        result = runner.invoke(cli, ["status", "Git-Config"])
        assert result.exit_code == 0
        assert "push" in result.output

    def test_status_offline(self, runner, temp_home, items_file, fake_engine, monkeypatch):
        monkeypatch.setenv("DOTVAULT_OFFLINE", "true")
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 0
        assert "Offline mode" in result.output
        assert fake_engine.total_calls == 0

    def test_check_required_missing(self, runner, temp_home, items_file, fake_engine):
        result = runner.invoke(cli, ["check", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        statuses = {item["name"]: item["status"] for item in data["items"]}
        assert statuses == {"Git-Config": "failed", "SSH-Personal": "ok"}

    def test_list(self, runner, temp_home, items_file, fake_engine):
        fake_engine.items["Git-Config"] = "x"
        fake_engine.items["Other"] = "y"
        result = runner.invoke(cli, ["list"])
        assert result.exit_code == 0
        assert "Git-Config" in result.output
        assert "Other" in result.output

    def test_delete_protected_needs_flag(self, runner, temp_home, items_file, fake_engine):
        fake_engine.items["Git-Config"] = "x"
        result = runner.invoke(cli, ["delete", "Git-Config", "--yes"])
        assert result.exit_code == 1
        assert "protected" in result.output
        assert "Git-Config" in fake_engine.items

    def test_delete_confirmed(self, runner, temp_home, items_file, fake_engine):
        fake_engine.items["Git-Config"] = "x"
        result = runner.invoke(cli, ["delete", "Git-Config", "--yes", "--confirm-protected"])
        assert result.exit_code == 0
        assert "Git-Config" not in fake_engine.items

    def test_delete_prompt_declined(self, runner, temp_home, items_file, fake_engine):
        fake_engine.items["Other"] = "x"
        result = runner.invoke(cli, ["delete", "Other"], input="n\n")
        assert result.exit_code == 0
        assert "Aborted" in result.output
        assert "Other" in fake_engine.items


class TestValidateCommand:
    """Tests for validate command."""

    def test_valid(self, runner, temp_home, items_file):
        result = runner.invoke(cli, ["validate"])
        assert result.exit_code == 0
        assert "valid" in result.output

    def test_invalid_file(self, runner, temp_home):
        bad = temp_home / "bad.json"
        bad.write_text(json.dumps({"version": 2, "secrets": []}), encoding="utf-8")
        result = runner.invoke(cli, ["validate", str(bad)])
        assert result.exit_code == 1
        assert "invalid" in result.output


class TestConfigCommands:
    """Tests for config subcommands."""

    def test_config_help(self, runner):
        result = runner.invoke(cli, ["config", "--help"])
        assert result.exit_code == 0
        assert "init" in result.output
        assert "set-backend" in result.output

    def test_init_creates_files(self, runner, temp_home):
        result = runner.invoke(cli, ["config", "init"])
        assert result.exit_code == 0
        config_dir = temp_home / ".config" / "dotvault"
        assert (config_dir / "config.yaml").is_file()
        assert (config_dir / "vault-items.json").is_file()

        again = runner.invoke(cli, ["config", "init"])
        assert "already exists" in again.output

    def test_show(self, runner, temp_home, items_file):
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "Backend: bitwarden" in result.output
        assert "not set" in result.output

    def test_set_backend(self, runner, temp_home):
        result = runner.invoke(cli, ["config", "set-backend", "pass"])
        assert result.exit_code == 0
        assert load_config(temp_home / ".config" / "dotvault" / "config.yaml").vault.backend == "pass"

    def test_set_unknown_backend(self, runner, temp_home):
        result = runner.invoke(cli, ["config", "set-backend", "lastpass"])
        assert result.exit_code == 2


class TestSessionCommands:
    """Tests for logout and doctor."""

    def test_logout_removes_cache(self, runner, temp_home):
        cache = temp_home / ".config" / "dotvault" / ".vault-session"
        cache.parent.mkdir(parents=True)
        cache.write_text('{"backend": "bitwarden", "token": "t"}', encoding="utf-8")

        result = runner.invoke(cli, ["logout"])

        assert result.exit_code == 0
        assert not cache.exists()

    def test_doctor_reports_missing_cli(self, runner, temp_home, items_file, monkeypatch):
        monkeypatch.setattr("dotvault.backends.bitwarden.shutil.which", lambda name: None)
        result = runner.invoke(cli, ["doctor"])
        assert result.exit_code == 1
        assert "not installed" in result.output
