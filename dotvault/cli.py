"""Click-based CLI for dotvault - machine-local secrets synced with a password vault."""

from __future__ import annotations

import functools
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console as RichConsole
from rich.logging import RichHandler
from rich.prompt import Confirm

from dotvault import __version__
from dotvault.backends import BACKENDS, get_backend
from dotvault.config import (
    ItemRegistry,
    Settings,
    ensure_config_exists,
    load_config,
    load_settings,
    save_config,
    validate_item_schema_file,
)
from dotvault.errors import DotvaultError
from dotvault.output import create_console
from dotvault.session import SessionCache
from dotvault.sync import BackupManager, DriftReport, RunResult, StateManager, SyncEngine

console = create_console()


def setup_logging(*, verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """
    Route dotvault log records to stderr through rich.

    Args:
        verbose: Show DEBUG records instead of warnings only.
        log_file: Also append INFO and above to this file.
    """
    logger = logging.getLogger("dotvault")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.DEBUG)

    rich_handler = RichHandler(
        console=RichConsole(stderr=True),
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.addHandler(rich_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(file_handler)


def handle_errors(func):
    """Present fatal dotvault errors and exit non-zero."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DotvaultError as e:
            console.print_dotvault_error(e)
            sys.exit(1)

    return wrapper


def _settings(ctx: click.Context) -> Settings:
    """Resolve settings once per invocation and configure logging from them."""
    global console
    obj = ctx.ensure_object(dict)
    if "settings" not in obj:
        settings = load_settings(config_path=obj.get("config_path"))
        verbose = obj.get("verbose", False) or settings.verbose
        setup_logging(verbose=verbose, log_file=settings.log_file)
        console = create_console(verbose=verbose, colored=settings.colored)
        obj["settings"] = settings
    return obj["settings"]


def _registry(settings: Settings) -> ItemRegistry:
    return ItemRegistry.from_file(settings.items_path)


def _engine(settings: Settings, registry: ItemRegistry) -> SyncEngine:
    backend = get_backend(settings, protected_names=registry.ssh_key_names())
    sessions = SessionCache(backend, settings.session_path, env_token=settings.env_token)
    return SyncEngine(
        backend,
        sessions,
        StateManager(settings.state_path),
        backups=BackupManager(settings.backup_dir),
        offline=settings.offline,
    )


def _finish(result: RunResult, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        console.print_run_result(result)
    sys.exit(result.exit_class.exit_code)


@click.group()
@click.version_option(version=__version__, prog_name="dotvault")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (default: $DOTVAULT_CONFIG or ~/.config/dotvault/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Optional[Path]) -> None:
    """dotvault - sync machine-local secrets with a password vault.

    Keeps SSH keys, cloud credentials and config files in Bitwarden,
    1Password or pass, and refuses any operation that would silently
    overwrite unsynced changes.

    \b
    Backend:  $DOTVAULT_BACKEND > vault.backend in config > bitwarden
    Offline:  DOTVAULT_OFFLINE=1 skips every vault call
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path


names_argument = click.argument("names", nargs=-1)
dry_run_option = click.option("--dry-run", "-n", is_flag=True, help="Preview changes without applying")
json_option = click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")


@cli.command()
@names_argument
@dry_run_option
@click.option("--force-local", is_flag=True, help="Resolve conflicts by pushing the local file")
@click.option("--force-vault", is_flag=True, help="Resolve conflicts by restoring the vault entry")
@json_option
@click.pass_context
@handle_errors
def sync(
    ctx: click.Context,
    names: tuple[str, ...],
    dry_run: bool,
    force_local: bool,
    force_vault: bool,
    as_json: bool,
) -> None:
    """Synchronize items in whichever direction changed.

    Without NAMES, every item with sync "always" is processed; manual items
    are only synced when named. Items changed on both sides are reported as
    conflicts and left untouched.
    """
    if force_local and force_vault:
        raise click.UsageError("--force-local and --force-vault are mutually exclusive")

    settings = _settings(ctx)
    registry = _registry(settings)
    specs = registry.select(names, include_manual=False)
    result = _engine(settings, registry).sync(
        specs, force_local=force_local, force_vault=force_vault, dry_run=dry_run
    )
    _finish(result, as_json)


@cli.command()
@names_argument
@dry_run_option
@click.option("--force", "-f", is_flag=True, help="Overwrite vault entries that changed since the last sync")
@click.option("--yes", "-y", is_flag=True, help="Answer yes to overwrite prompts")
@json_option
@click.pass_context
@handle_errors
def push(
    ctx: click.Context,
    names: tuple[str, ...],
    dry_run: bool,
    force: bool,
    yes: bool,
    as_json: bool,
) -> None:
    """Push local files to the vault.

    An item whose vault entry changed since the last sync is refused unless
    you confirm the overwrite or pass --force.
    """
    settings = _settings(ctx)
    registry = _registry(settings)

    def confirm(name: str, report: DriftReport) -> bool:
        if yes:
            return True
        if not sys.stdin.isatty():
            return False
        return Confirm.ask(f"Vault entry '{name}' changed since the last sync. Overwrite it?", default=False)

    result = _engine(settings, registry).push(registry.select(names), force=force, dry_run=dry_run, confirm=confirm)
    _finish(result, as_json)


@cli.command()
@names_argument
@dry_run_option
@click.option("--force", "-f", is_flag=True, help="Overwrite local changes (a backup is kept)")
@json_option
@click.pass_context
@handle_errors
def pull(ctx: click.Context, names: tuple[str, ...], dry_run: bool, force: bool, as_json: bool) -> None:
    """Restore local files from the vault.

    If any selected file has changes that were never pushed, nothing is
    written unless --force is given.
    """
    settings = _settings(ctx)
    registry = _registry(settings)
    result = _engine(settings, registry).pull(registry.select(names), force=force, dry_run=dry_run)
    _finish(result, as_json)


@cli.command()
@names_argument
@click.pass_context
@handle_errors
def status(ctx: click.Context, names: tuple[str, ...]) -> None:
    """Show drift between local files, the vault and the last sync."""
    settings = _settings(ctx)
    registry = _registry(settings)
    if settings.offline:
        console.print_warning("Offline mode: vault state is unavailable")
        return
    console.print_status(_engine(settings, registry).status(registry.select(names)))


@cli.command()
@names_argument
@json_option
@click.pass_context
@handle_errors
def check(ctx: click.Context, names: tuple[str, ...], as_json: bool) -> None:
    """Verify that items exist and required items are in the vault."""
    settings = _settings(ctx)
    registry = _registry(settings)
    _finish(_engine(settings, registry).check(registry.select(names)), as_json)


@cli.command("list")
@click.pass_context
@handle_errors
def list_items(ctx: click.Context) -> None:
    """List vault items and whether the item schema manages them."""
    settings = _settings(ctx)
    registry = _registry(settings)
    items = _engine(settings, registry).list_items()
    console.print_items_list(items, registry.names)


@cli.command()
@click.argument("name")
@click.option("--confirm-protected", is_flag=True, help="Allow deleting SSH, AWS and Git identity items")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
@handle_errors
def delete(ctx: click.Context, name: str, confirm_protected: bool, yes: bool) -> None:
    """Delete an item from the vault. The local file is not touched."""
    settings = _settings(ctx)
    registry = _registry(settings)
    if not yes and not Confirm.ask(f"Delete '{name}' from the {settings.backend} vault?", default=False):
        console.print("[dim]Aborted[/dim]")
        return

    _engine(settings, registry).delete(name, confirm_protected=confirm_protected)
    console.print_success(f"Deleted '{name}'")


@cli.command()
@click.argument("file", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
@handle_errors
def validate(ctx: click.Context, file: Optional[Path]) -> None:
    """Validate the item schema (default: the configured vault-items.json)."""
    items_path = file or _settings(ctx).items_path
    is_valid, errors = validate_item_schema_file(items_path)

    if is_valid:
        count = len(ItemRegistry.from_file(items_path))
        console.print_success(f"Item schema is valid: {items_path} ({count} items)")
        return

    console.print_error(f"Item schema is invalid: {items_path}")
    for error in errors:
        console.print(f"  [dim]- {error}[/dim]")
    sys.exit(1)


@cli.command()
@click.pass_context
@handle_errors
def logout(ctx: click.Context) -> None:
    """Forget the cached vault session."""
    settings = _settings(ctx)
    backend = get_backend(settings)
    SessionCache(backend, settings.session_path).logout()
    console.print_success(f"Cleared cached {backend.display_name} session")


@cli.command()
@click.pass_context
@handle_errors
def doctor(ctx: click.Context) -> None:
    """Check the backend CLI, login state and configuration."""
    settings = _settings(ctx)
    is_valid, errors = validate_item_schema_file(settings.items_path)
    console.print("[bold]Item schema[/bold]")
    if is_valid:
        console.print(f"  [green]✓[/green] {settings.items_path}")
    else:
        for error in errors:
            console.print(f"  [red]✗[/red] {error}")

    backend = get_backend(settings)
    token = SessionCache(backend, settings.session_path, env_token=settings.env_token).cached_token()
    healthy = console.print_health(backend.display_name, backend.health_check(token))

    if settings.offline:
        console.print_warning("Offline mode is enabled (DOTVAULT_OFFLINE)")
    if not (healthy and is_valid):
        sys.exit(1)


@cli.command()
def backends() -> None:
    """List the supported vault backends."""
    for kind, backend_cls in BACKENDS.items():
        console.print(f"[bold]{kind}[/bold] - {backend_cls.display_name} ({backend_cls.binary})")
        console.print(f"  [dim]install: {backend_cls.install_hint}[/dim]")


@cli.group()
def config() -> None:
    """Manage the dotvault configuration."""
    pass


@config.command("init")
@click.pass_context
@handle_errors
def config_init(ctx: click.Context) -> None:
    """Create the default config and a starter item schema."""
    settings = _settings(ctx)
    created = ensure_config_exists(settings.config_path, settings.items_path)
    if not created:
        console.print_info("Configuration already exists; nothing to do")
        return
    for path in created:
        console.print_success(f"Created {path}")


@config.command("show")
@click.pass_context
@handle_errors
def config_show(ctx: click.Context) -> None:
    """Show the resolved settings."""
    settings = _settings(ctx)
    is_valid, _ = validate_item_schema_file(settings.items_path)
    count = len(ItemRegistry.from_file(settings.items_path)) if is_valid else None
    console.print_settings(settings, count)


@config.command("set-backend")
@click.argument("backend", type=click.Choice(sorted(BACKENDS)))
@click.pass_context
@handle_errors
def config_set_backend(ctx: click.Context, backend: str) -> None:
    """Persist the preferred vault backend.

    Switching backends discards all sync baselines on the next run.
    """
    settings = _settings(ctx)
    app_config = load_config(settings.config_path)
    app_config.vault.backend = backend
    save_config(app_config, settings.config_path)
    console.print_success(f"Backend set to {backend} in {settings.config_path}")


if __name__ == "__main__":
    cli()
