# dotvault Sync Actions
# Per-item outcome records and the overall exit classification of a run

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Action(str, Enum):
    """What the engine did (or would do) for an item."""

    PUSH = "push"
    PULL = "pull"
    NOOP = "noop"
    CONFLICT = "conflict"
    CHECK = "check"


class Status(str, Enum):
    """How an item's operation ended."""

    OK = "ok"
    PLANNED = "planned"  # dry run
    SKIPPED = "skipped"
    CONFLICT = "conflict"
    REFUSED = "refused"  # explicit push/pull declined because of drift
    ABORTED = "aborted"  # batch aborted before this item was written
    FAILED = "failed"
    OFFLINE = "offline"


class ExitClass(str, Enum):
    """Overall classification of a run, mapped to the process exit code."""

    SUCCESS = "success"
    PARTIAL_FAILURE = "partial-failure"
    ABORTED_CONFLICT = "aborted-conflict"
    OFFLINE_NOOP = "offline-noop"

    @property
    def exit_code(self) -> int:
        return {
            ExitClass.SUCCESS: 0,
            ExitClass.OFFLINE_NOOP: 0,
            ExitClass.PARTIAL_FAILURE: 1,
            ExitClass.ABORTED_CONFLICT: 2,
        }[self]


@dataclass
class ItemOutcome:
    """Result of processing one item."""

    name: str
    action: Action
    status: Status
    message: str = ""
    remediation: str = ""

    @property
    def failed(self) -> bool:
        return self.status == Status.FAILED

    @property
    def is_conflict(self) -> bool:
        return self.status in (Status.CONFLICT, Status.REFUSED, Status.ABORTED)

    @property
    def wrote(self) -> bool:
        """Whether the operation transferred content."""
        return self.status == Status.OK and self.action in (Action.PUSH, Action.PULL)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "name": self.name,
            "action": self.action.value,
            "status": self.status.value,
            "message": self.message,
        }
        if self.remediation:
            data["remediation"] = self.remediation
        return data


@dataclass
class RunResult:
    """Outcome of one push, pull, sync or check run."""

    operation: str
    outcomes: list[ItemOutcome] = field(default_factory=list)
    offline: bool = False
    aborted: bool = False
    dry_run: bool = False
    abort_reason: Optional[str] = None

    def add(self, outcome: ItemOutcome) -> ItemOutcome:
        self.outcomes.append(outcome)
        return outcome

    def get(self, name: str) -> Optional[ItemOutcome]:
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome
        return None

    @property
    def failures(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def conflicts(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.is_conflict]

    @property
    def writes(self) -> int:
        return sum(1 for o in self.outcomes if o.wrote)

    @property
    def exit_class(self) -> ExitClass:
        if self.offline:
            return ExitClass.OFFLINE_NOOP
        # A batch abort outranks item failures
        if self.aborted:
            return ExitClass.ABORTED_CONFLICT
        if self.failures:
            return ExitClass.PARTIAL_FAILURE
        if self.conflicts:
            return ExitClass.ABORTED_CONFLICT
        return ExitClass.SUCCESS

    @property
    def success(self) -> bool:
        return self.exit_class in (ExitClass.SUCCESS, ExitClass.OFFLINE_NOOP)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "exit_class": self.exit_class.value,
            "dry_run": self.dry_run,
            "items": [o.to_dict() for o in self.outcomes],
        }
