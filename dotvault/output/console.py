# dotvault Console Output
# Rich-based presentation of run results, drift status and health checks

from collections.abc import Iterable
from typing import Optional

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.table import Table

from dotvault.backends.base import HealthCheck, VaultItemSummary
from dotvault.config.loader import Settings
from dotvault.errors import ConfigError, DotvaultError
from dotvault.sync.actions import Action, ExitClass, ItemOutcome, RunResult, Status
from dotvault.sync.drift import Direction
from dotvault.sync.engine import ItemStatus
from dotvault.utils.hashing import short_hash

STATUS_STYLES = {
    Status.OK: ("green", "✓"),
    Status.PLANNED: ("cyan", "○"),
    Status.SKIPPED: ("dim", "-"),
    Status.CONFLICT: ("red", "!"),
    Status.REFUSED: ("yellow", "!"),
    Status.ABORTED: ("yellow", "×"),
    Status.FAILED: ("red", "✗"),
    Status.OFFLINE: ("dim", "○"),
}

DIRECTION_LABELS = {
    Action.PUSH: "local → vault",
    Action.PULL: "vault → local",
    Action.NOOP: "=",
    Action.CONFLICT: "⚠ conflict",
    Action.CHECK: "check",
}


class Console:
    """
    Console output manager using Rich.

    The only place results and errors are turned into user-facing text.
    """

    def __init__(self, *, verbose: bool = False, colored: bool = True):
        """
        Initialize console.

        Args:
            verbose: Enable verbose output.
            colored: Enable colored output.
        """
        self.verbose = verbose
        self._console = RichConsole(no_color=not colored, highlight=False)

    def print(self, *args, **kwargs) -> None:
        """Print to console."""
        self._console.print(*args, **kwargs)

    def print_error(self, message: str) -> None:
        """Print error message."""
        self._console.print(f"[red]Error:[/red] {message}")

    def print_warning(self, message: str) -> None:
        """Print warning message."""
        self._console.print(f"[yellow]Warning:[/yellow] {message}")

    def print_success(self, message: str) -> None:
        """Print success message."""
        self._console.print(f"[green]{message}[/green]")

    def print_info(self, message: str) -> None:
        """Print info message."""
        self._console.print(f"[blue]{message}[/blue]")

    def print_dotvault_error(self, error: DotvaultError) -> None:
        """Print a fatal error with its remediation."""
        self.print_error(error.message)
        if isinstance(error, ConfigError):
            for line in error.errors:
                self._console.print(f"  [dim]- {line}[/dim]")
        if error.remediation:
            self._console.print(f"  [dim]→ {error.remediation}[/dim]")

    def print_run_result(self, result: RunResult) -> None:
        """
        Print per-item outcomes and a summary panel.

        Args:
            result: Result of push, pull, sync or check.
        """
        if not result.outcomes:
            self._console.print("[dim]No items selected[/dim]")
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("Item")
        table.add_column("Action")
        table.add_column("Status")
        table.add_column("Details", style="dim")

        for outcome in result.outcomes:
            if outcome.status == Status.OK and outcome.action == Action.NOOP and not self.verbose:
                continue
            table.add_row(*self._outcome_row(outcome))

        if table.row_count:
            self._console.print(table)

        for outcome in result.outcomes:
            if outcome.remediation and outcome.status != Status.OK:
                self._console.print(f"  [dim]→ {outcome.name}: {outcome.remediation}[/dim]")

        self._print_summary(result)

    def _outcome_row(self, outcome: ItemOutcome) -> tuple[str, str, str, str]:
        color, icon = STATUS_STYLES.get(outcome.status, ("white", "?"))
        return (
            outcome.name,
            DIRECTION_LABELS.get(outcome.action, outcome.action.value),
            f"[{color}]{icon} {outcome.status.value}[/{color}]",
            outcome.message,
        )

    def _print_summary(self, result: RunResult) -> None:
        counts: dict[Status, int] = {}
        for outcome in result.outcomes:
            counts[outcome.status] = counts.get(outcome.status, 0) + 1
        parts = [f"{count} {status.value}" for status, count in counts.items()]

        exit_class = result.exit_class
        title = f"{result.operation.capitalize()}{' (dry run)' if result.dry_run else ''}"
        lines = [", ".join(parts)]
        if result.abort_reason:
            lines.append(f"Aborted: {result.abort_reason}")

        if exit_class == ExitClass.SUCCESS:
            style, heading = "green", "Completed"
        elif exit_class == ExitClass.OFFLINE_NOOP:
            style, heading = "blue", "Offline, nothing done"
        elif exit_class == ExitClass.ABORTED_CONFLICT:
            style, heading = "yellow", "Stopped on conflicts"
        else:
            style, heading = "red", "Completed with failures"

        self._console.print(
            Panel(f"[{style}]{heading}[/{style}]\n" + "\n".join(lines), title=title, border_style=style)
        )

    def print_status(self, statuses: Iterable[ItemStatus]) -> None:
        """Print drift classification and fingerprints for each item."""
        table = Table(show_header=True, header_style="bold")
        table.add_column("Item")
        table.add_column("Type", style="dim")
        table.add_column("Direction")
        table.add_column("Local")
        table.add_column("Vault")
        table.add_column("Baseline", style="dim")

        direction_styles = {
            Direction.NOOP: "[green]in sync[/green]",
            Direction.PUSH: "[yellow]↑ push[/yellow]",
            Direction.PULL: "[cyan]↓ pull[/cyan]",
            Direction.CONFLICT: "[red]! conflict[/red]",
        }

        for status in statuses:
            spec = status.spec
            kind = spec.kind.value + (" (manual)" if spec.is_manual else "")
            if status.report is None:
                table.add_row(spec.name, kind, f"[red]{status.error}[/red]", "", "", "")
                continue

            report = status.report
            baseline = "never synced" if report.never_synced else short_hash(report.last_local_hash)
            table.add_row(
                spec.name,
                kind,
                direction_styles[report.direction],
                short_hash(report.local_hash),
                short_hash(report.vault_hash),
                baseline,
            )

        self._console.print(table)

    def print_items_list(self, items: Iterable[VaultItemSummary], managed: Iterable[str]) -> None:
        """Print vault items, marking those declared in the item schema."""
        managed = set(managed)
        table = Table(show_header=True, header_style="bold")
        table.add_column("Name")
        table.add_column("Managed")
        table.add_column("ID", style="dim")

        for item in sorted(items, key=lambda i: i.name):
            marker = "[green]yes[/green]" if item.name in managed else "[dim]no[/dim]"
            table.add_row(item.name, marker, item.id)

        self._console.print(table)

    def print_health(self, backend_name: str, checks: Iterable[HealthCheck]) -> bool:
        """
        Print a backend health report.

        Returns:
            True if every check passed.
        """
        healthy = True
        self._console.print(f"[bold]{backend_name}[/bold]")
        for check in checks:
            healthy = healthy and check.ok
            icon = "[green]✓[/green]" if check.ok else "[red]✗[/red]"
            detail = f" [dim]{check.detail}[/dim]" if check.detail else ""
            self._console.print(f"  {icon} {check.name}{detail}")
        return healthy

    def print_settings(self, settings: Settings, item_count: Optional[int] = None) -> None:
        """Print the resolved runtime settings. Tokens are never shown."""
        lines = [
            f"Backend: {settings.backend}{' (offline)' if settings.offline else ''}",
            f"Config: {settings.config_path}",
            f"Items: {settings.items_path}" + (f" ({item_count} declared)" if item_count is not None else ""),
            f"State: {settings.state_path}",
            f"Session cache: {settings.session_path}",
            f"Backups: {settings.backup_dir or 'beside each file'}",
            f"Timeout: {settings.timeout:g}s (auth {settings.auth_timeout:g}s)",
        ]
        if settings.backend == "1password":
            lines.append(f"1Password vault: {settings.onepassword_vault}")
        if settings.backend == "pass":
            lines.append(f"Password store: {settings.password_store_dir} (prefix {settings.pass_prefix})")
        lines.append(f"Environment token: {'set' if settings.env_token else 'not set'}")

        self._console.print(Panel("\n".join(lines), title="dotvault Configuration", border_style="blue"))


def create_console(*, verbose: bool = False, colored: bool = True) -> Console:
    """
    Create a console instance.

    Args:
        verbose: Enable verbose output.
        colored: Enable colored output.

    Returns:
        Console instance.
    """
    return Console(verbose=verbose, colored=colored)
