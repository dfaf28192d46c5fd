# dotvault Sync Engine
# Orchestrates push, pull and bidirectional sync across registered items

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Optional, TypeVar

from dotvault.backends.base import BackendAdapter, Session, VaultItem, VaultItemSummary
from dotvault.config.schema import SecretSpec
from dotvault.errors import (
    AuthError,
    BackendError,
    BackendUnavailable,
    BackupFailure,
    ContentError,
    DotvaultError,
    DriftConflict,
    FilePermissionError,
    ItemNotFound,
)
from dotvault.session import SessionCache
from dotvault.sync.actions import Action, ItemOutcome, RunResult, Status
from dotvault.sync.backup import BackupManager
from dotvault.sync.content import check_private_key_mode, read_local, vault_form, write_local
from dotvault.sync.drift import Direction, DriftDetector, DriftReport
from dotvault.sync.state import StateManager
from dotvault.utils.hashing import content_hash

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors confined to the item that raised them
ITEM_ERRORS = (BackendError, BackupFailure, ContentError, FilePermissionError)

ConfirmCallback = Callable[[str, DriftReport], bool]


@dataclass
class _ItemRun:
    """Item being processed; action is refined once the direction is known."""

    spec: SecretSpec
    action: Action


@dataclass
class _PendingPull:
    spec: SecretSpec
    content: str
    clobbers_local: bool


@dataclass
class ItemStatus:
    """Read-only drift view of one item."""

    spec: SecretSpec
    report: Optional[DriftReport] = None
    error: Optional[str] = None


class SyncEngine:
    """
    Synchronizes declared secrets with one backend.

    Items are processed in schema order. Per-item backend and file errors
    are recorded and the batch continues; a missing backend CLI or a
    second authentication failure aborts the run. Baselines are staged
    during the run and written once at the end.
    """

    def __init__(
        self,
        backend: BackendAdapter,
        sessions: SessionCache,
        state_manager: StateManager,
        *,
        backups: Optional[BackupManager] = None,
        detector: Optional[DriftDetector] = None,
        offline: bool = False,
        refresh: bool = True,
    ):
        """
        Initialize sync engine.

        Args:
            backend: Active backend adapter.
            sessions: Session cache for that backend.
            state_manager: Baseline store.
            backups: Backup manager (default: backups beside the originals).
            detector: Drift detector.
            offline: Skip every backend call and report offline no-ops.
            refresh: Ask the backend to refresh its local cache before the run.
        """
        self.backend = backend
        self.sessions = sessions
        self.state = state_manager
        self.backups = backups or BackupManager()
        self.detector = detector or DriftDetector()
        self.offline = offline
        self.refresh = refresh
        self._prepared = False

    # -- run plumbing -------------------------------------------------------

    def _prepare(self) -> None:
        """Verify the backend, bind the state to it and authenticate once."""
        if self._prepared:
            return

        self.backend.init()
        if self.state.bind_backend(self.backend.kind):
            self.sessions.invalidate()
        session = self.sessions.get()
        if self.refresh:
            self.backend.refresh(session)
        self._prepared = True

    def _call(self, fn: Callable[[Session], T]) -> T:
        """Run a backend operation, re-authenticating once if the session expired."""
        try:
            return fn(self.sessions.get())
        except AuthError:
            self.sessions.mark_expired()
            return fn(self.sessions.get())

    def _guarded(self, item: _ItemRun, fn: Callable[[_ItemRun, Session], ItemOutcome]) -> ItemOutcome:
        try:
            return self._call(lambda session: fn(item, session))
        except BackendUnavailable:
            raise
        except ITEM_ERRORS as e:
            logger.warning("%s: %s", item.spec.name, e.message)
            return ItemOutcome(item.spec.name, item.action, Status.FAILED, e.message, e.remediation)

    def _run(
        self,
        operation: str,
        specs: Iterable[SecretSpec],
        action: Action,
        handler: Callable[[_ItemRun, Session], ItemOutcome],
        *,
        dry_run: bool = False,
        finalize: Optional[Callable[[RunResult], None]] = None,
    ) -> RunResult:
        specs = list(specs)
        result = RunResult(operation=operation, dry_run=dry_run)

        if self.offline:
            result.offline = True
            for spec in specs:
                result.add(ItemOutcome(spec.name, Action.NOOP, Status.OFFLINE, "offline mode, no backend calls"))
            logger.info("Offline mode: skipped %s for %d items", operation, len(specs))
            return result

        self._prepare()
        try:
            for spec in specs:
                result.add(self._guarded(_ItemRun(spec, action), handler))
            if finalize is not None:
                finalize(result)
        finally:
            if not dry_run:
                self.state.commit()
        return result

    # -- shared item steps --------------------------------------------------

    def _classify(self, spec: SecretSpec, session: Session) -> tuple[Optional[str], Optional[VaultItem], DriftReport]:
        local = read_local(spec)
        vault = self.backend.get_item(spec.name, session)
        report = self.detector.classify(
            spec.name,
            local,
            vault_form(spec, vault.content) if vault is not None else None,
            self.state.get_item(spec.name),
        )
        return local, vault, report

    def _adopt_baseline(self, report: DriftReport, dry_run: bool) -> None:
        """Record converged content as the new baseline."""
        if dry_run or report.local_missing:
            return
        if report.last_local_hash == report.local_hash and report.last_vault_hash == report.vault_hash:
            return
        self.state.record(report.name, report.local_hash, report.vault_hash, Action.NOOP.value)

    def _write_vault(self, spec: SecretSpec, content: str, exists: bool, session: Session) -> str:
        if exists:
            self.backend.update_item(spec.name, content, session)
            verb = "updated"
        else:
            self.backend.create_item(spec.name, content, session)
            verb = "created"

        fingerprint = content_hash(content)
        self.state.record(spec.name, fingerprint, fingerprint, Action.PUSH.value)
        return verb

    def _write_local(self, spec: SecretSpec, content: str) -> int:
        """Back up, then overwrite the local side. Returns the number of backups."""
        # BackupFailure propagates before anything is overwritten
        created = self.backups.backup(spec)
        write_local(spec, content)
        self.state.record(
            spec.name,
            content_hash(read_local(spec)),
            content_hash(vault_form(spec, content)),
            Action.PULL.value,
        )
        return len(created)

    @staticmethod
    def _pulled_message(backups: int) -> str:
        return f"restored ({backups} backup{'s' if backups != 1 else ''})" if backups else "restored"

    # -- push ---------------------------------------------------------------

    def push(
        self,
        specs: Iterable[SecretSpec],
        *,
        force: bool = False,
        dry_run: bool = False,
        confirm: Optional[ConfirmCallback] = None,
    ) -> RunResult:
        """
        Push local content to the vault.

        Drift only decides whether to warn: an item whose vault entry
        changed since the last sync is refused unless force is set or
        confirm() approves it.
        """

        def handle(item: _ItemRun, session: Session) -> ItemOutcome:
            spec = item.spec
            local, vault, report = self._classify(spec, session)

            if local is None:
                return ItemOutcome(
                    spec.name,
                    Action.PUSH,
                    Status.SKIPPED,
                    f"local file not found: {spec.local_path}",
                    "Vault entries are never deleted automatically; use 'dotvault delete' to remove it.",
                )

            if report.in_sync:
                self._adopt_baseline(report, dry_run)
                return ItemOutcome(spec.name, Action.NOOP, Status.OK, "already in sync")

            if report.vault_changed and not report.vault_missing and not force:
                if confirm is None or not confirm(spec.name, report):
                    return ItemOutcome(
                        spec.name,
                        Action.PUSH,
                        Status.REFUSED,
                        "vault entry changed since last sync",
                        "Run 'dotvault pull' first, or re-run with --force to overwrite the vault.",
                    )

            if dry_run:
                return ItemOutcome(spec.name, Action.PUSH, Status.PLANNED, "would update" if vault else "would create")

            verb = self._write_vault(spec, local, vault is not None, session)
            return ItemOutcome(spec.name, Action.PUSH, Status.OK, verb)

        return self._run("push", specs, Action.PUSH, handle, dry_run=dry_run)

    # -- pull ---------------------------------------------------------------

    def pull(self, specs: Iterable[SecretSpec], *, force: bool = False, dry_run: bool = False) -> RunResult:
        """
        Restore vault content to local files.

        Every item is planned before anything is written. Without force,
        a single item whose local file has unsynced changes aborts the
        whole batch.
        """
        pending_writes: dict[str, _PendingPull] = {}

        def handle(item: _ItemRun, session: Session) -> ItemOutcome:
            spec = item.spec
            local, vault, report = self._classify(spec, session)

            if vault is None:
                if spec.required:
                    error = ItemNotFound(spec.name)
                    return ItemOutcome(spec.name, Action.PULL, Status.FAILED, error.message, "Push it with 'dotvault push'.")
                return ItemOutcome(spec.name, Action.PULL, Status.SKIPPED, "not in vault")

            if report.in_sync:
                self._adopt_baseline(report, dry_run)
                return ItemOutcome(spec.name, Action.NOOP, Status.OK, "already in sync")

            clobbers = report.local_changed and not report.local_missing
            pending_writes[spec.name] = _PendingPull(spec, vault.content, clobbers)
            return ItemOutcome(spec.name, Action.PULL, Status.PLANNED, "would restore")

        def finalize(result: RunResult) -> None:
            blocked = [name for name, pending in pending_writes.items() if pending.clobbers_local]
            if blocked and not force:
                conflict = DriftConflict(blocked, f"local changes would be overwritten: {', '.join(blocked)}")
                result.aborted = True
                result.abort_reason = conflict.message
                logger.warning("Pull aborted, %s", result.abort_reason)
                for outcome in result.outcomes:
                    if outcome.name in blocked:
                        outcome.action = Action.CONFLICT
                        outcome.status = Status.CONFLICT
                        outcome.message = "local file changed since last sync"
                        outcome.remediation = conflict.remediation
                    elif outcome.name in pending_writes:
                        outcome.status = Status.ABORTED
                        outcome.message = "not written, batch aborted"
                return

            if dry_run:
                return

            for index, outcome in enumerate(result.outcomes):
                pending = pending_writes.get(outcome.name)
                if pending is not None:
                    result.outcomes[index] = self._apply_pull(pending)

        return self._run("pull", specs, Action.PULL, handle, dry_run=dry_run, finalize=finalize)

    def _apply_pull(self, pending: _PendingPull) -> ItemOutcome:
        spec = pending.spec
        try:
            backups = self._write_local(spec, pending.content)
        except (BackupFailure, ContentError, FilePermissionError) as e:
            logger.warning("%s: %s", spec.name, e.message)
            return ItemOutcome(spec.name, Action.PULL, Status.FAILED, e.message, e.remediation)
        return ItemOutcome(spec.name, Action.PULL, Status.OK, self._pulled_message(backups))

    # -- bidirectional sync -------------------------------------------------

    def sync(
        self,
        specs: Iterable[SecretSpec],
        *,
        force_local: bool = False,
        force_vault: bool = False,
        dry_run: bool = False,
    ) -> RunResult:
        """
        Move each item in the direction its drift indicates.

        Conflicts are reported and left untouched unless force_local (push)
        or force_vault (pull) picks a side. Absence is never propagated.
        """
        if force_local and force_vault:
            raise DotvaultError("force_local and force_vault are mutually exclusive", "Choose one side.")

        def handle(item: _ItemRun, session: Session) -> ItemOutcome:
            spec = item.spec
            local, vault, report = self._classify(spec, session)
            direction = report.direction

            if direction == Direction.CONFLICT:
                if force_local:
                    direction = Direction.PUSH
                elif force_vault:
                    direction = Direction.PULL
                else:
                    return ItemOutcome(
                        spec.name,
                        Action.CONFLICT,
                        Status.CONFLICT,
                        "local and vault both changed since last sync",
                        "Resolve manually, or re-run with --force-local or --force-vault.",
                    )

            if direction == Direction.NOOP:
                self._adopt_baseline(report, dry_run)
                if report.local_missing:
                    return ItemOutcome(spec.name, Action.NOOP, Status.OK, "absent locally and in vault")
                return ItemOutcome(spec.name, Action.NOOP, Status.OK, "in sync")

            item.action = Action.PUSH if direction == Direction.PUSH else Action.PULL

            if direction == Direction.PUSH and local is None:
                return ItemOutcome(
                    spec.name,
                    Action.PUSH,
                    Status.SKIPPED,
                    "local file was removed; vault entry kept",
                    "Pull to restore it, or use 'dotvault delete' to remove the vault entry.",
                )
            if direction == Direction.PULL and vault is None:
                return ItemOutcome(
                    spec.name,
                    Action.PULL,
                    Status.SKIPPED,
                    "vault entry was removed; local file kept",
                    "Push to recreate it, or delete the local file yourself.",
                )

            if dry_run:
                return ItemOutcome(spec.name, item.action, Status.PLANNED, f"would {item.action.value}")

            if direction == Direction.PUSH:
                verb = self._write_vault(spec, local, vault is not None, session)
                return ItemOutcome(spec.name, Action.PUSH, Status.OK, verb)

            backups = self._write_local(spec, vault.content)
            return ItemOutcome(spec.name, Action.PULL, Status.OK, self._pulled_message(backups))

        return self._run("sync", specs, Action.NOOP, handle, dry_run=dry_run)

    # -- read-only operations -----------------------------------------------

    def check(self, specs: Iterable[SecretSpec]) -> RunResult:
        """
        Report vault and local presence of each item.

        A required item missing from the vault fails, as does an SSH
        private key readable by other users.
        """

        def handle(item: _ItemRun, session: Session) -> ItemOutcome:
            spec = item.spec
            in_vault = self.backend.item_exists(spec.name, session)
            local_exists = spec.local_path.is_file()
            summary = f"vault: {'present' if in_vault else 'missing'}, local: {'present' if local_exists else 'missing'}"

            if spec.required and not in_vault:
                error = ItemNotFound(spec.name)
                return ItemOutcome(spec.name, Action.CHECK, Status.FAILED, f"required; {error.message}", "Push it with 'dotvault push'.")

            mode_error = check_private_key_mode(spec)
            if mode_error is not None:
                return ItemOutcome(spec.name, Action.CHECK, Status.FAILED, mode_error.message, mode_error.remediation)

            return ItemOutcome(spec.name, Action.CHECK, Status.OK, summary)

        return self._run("check", specs, Action.CHECK, handle, dry_run=True)

    def status(self, specs: Iterable[SecretSpec]) -> list[ItemStatus]:
        """Classify drift for each item without writing anything."""
        specs = list(specs)
        if self.offline:
            return [ItemStatus(spec, error="offline mode") for spec in specs]

        self._prepare()
        statuses = []
        for spec in specs:
            try:
                report = self._call(lambda session, spec=spec: self._classify(spec, session)[2])
            except BackendUnavailable:
                raise
            except ITEM_ERRORS as e:
                statuses.append(ItemStatus(spec, error=e.message))
                continue
            statuses.append(ItemStatus(spec, report=report))
        return statuses

    def list_items(self) -> list[VaultItemSummary]:
        """List every item visible to the backend."""
        self._require_online("list")
        self._prepare()
        return self._call(self.backend.list_items)

    def delete(self, name: str, *, confirm_protected: bool = False) -> None:
        """
        Delete a vault item and forget its baseline.

        Raises:
            ProtectedItemError: If the name is protected and not confirmed.
            ItemNotFound: If the item does not exist.
        """
        self._require_online("delete")
        self._prepare()
        try:
            self._call(lambda session: self.backend.delete_item(name, session, confirm_protected=confirm_protected))
            self.state.forget(name)
        finally:
            self.state.commit()

    def _require_online(self, operation: str) -> None:
        if self.offline:
            raise DotvaultError(
                f"Cannot {operation} in offline mode",
                "Unset DOTVAULT_OFFLINE and retry.",
            )
