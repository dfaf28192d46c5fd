# dotvault Configuration Loader
# Load the YAML app config and JSON item schema; resolve startup settings

import copy
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from dotvault.config.defaults import DEFAULT_CONFIG, generate_default_config, generate_default_item_schema
from dotvault.config.schema import DotvaultConfig, ItemSchema
from dotvault.errors import ConfigError

_TRUTHY = {"1", "true", "yes", "on"}

# Environment variable carrying a pre-unlocked token, per backend
TOKEN_ENV_VARS: dict[str, str] = {
    "bitwarden": "BW_SESSION",
    "1password": "OP_SERVICE_ACCOUNT_TOKEN",
}


@dataclass(frozen=True)
class Settings:
    """
    Runtime configuration resolved once at process start.

    Every component receives what it needs from this value; nothing else
    reads environment variables.
    """

    backend: str
    offline: bool
    config_path: Path
    items_path: Path
    state_path: Path
    session_path: Path
    backup_dir: Optional[Path] = None
    timeout: float = 60.0
    auth_timeout: float = 300.0
    onepassword_vault: str = "Personal"
    pass_prefix: str = "dotfiles"
    password_store_dir: Path = field(default_factory=lambda: Path.home() / ".password-store")
    verbose: bool = False
    colored: bool = True
    log_file: Optional[Path] = None
    env_token: Optional[str] = field(default=None, repr=False)


def get_config_dir() -> Path:
    """Get the dotvault configuration directory."""
    return Path.home() / ".config" / "dotvault"


def get_config_path(env: Optional[Mapping[str, str]] = None) -> Path:
    """Get the path to the configuration file."""
    env = os.environ if env is None else env
    # Allow override via environment variable
    env_path = env.get("DOTVAULT_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return get_config_dir() / "config.yaml"


def load_config(config_path: Optional[Path] = None) -> DotvaultConfig:
    """
    Load the application config from YAML.

    A missing file yields the defaults; the tool works without a config.

    Raises:
        ConfigError: If the file is not valid YAML or fails validation.
    """
    if config_path is None:
        config_path = get_config_path()

    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}", [str(e)]) from e

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration root must be a mapping: {config_path}")

    try:
        return DotvaultConfig.model_validate(_merge_with_defaults(data))
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {config_path}", _format_errors(e)) from e


def save_config(config: DotvaultConfig, config_path: Optional[Path] = None) -> Path:
    """Save the application config to YAML."""
    if config_path is None:
        config_path = get_config_path()

    config_path.parent.mkdir(parents=True, exist_ok=True)

    # Use mode='json' to serialize Enums as their string values
    data = config.model_dump(mode="json")

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    return config_path


def ensure_config_exists(config_path: Optional[Path] = None, items_path: Optional[Path] = None) -> list[Path]:
    """
    Create the default config and starter item schema where missing.

    Existing files are never overwritten.

    Returns:
        List of files that were created.
    """
    config_path = config_path or get_config_path()
    created: list[Path] = []

    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(generate_default_config(), encoding="utf-8")
        created.append(config_path)

    if items_path is None:
        items_path = Path(load_config(config_path).paths.items_file)
    if not items_path.exists():
        items_path.parent.mkdir(parents=True, exist_ok=True)
        items_path.write_text(generate_default_item_schema(), encoding="utf-8")
        created.append(items_path)

    return created


def load_settings(env: Optional[Mapping[str, str]] = None, config_path: Optional[Path] = None) -> Settings:
    """
    Resolve runtime settings from environment and persisted config.

    Backend precedence: DOTVAULT_BACKEND > vault.backend > built-in default.

    Raises:
        ConfigError: If the config is invalid or names an unknown backend.
    """
    from dotvault.backends import BACKENDS

    env = os.environ if env is None else env
    config_path = config_path or get_config_path(env)
    config = load_config(config_path)

    backend = (env.get("DOTVAULT_BACKEND") or config.vault.backend).strip().lower()
    if backend not in BACKENDS:
        raise ConfigError(
            f"Unknown vault backend: {backend}",
            [f"available backends: {', '.join(BACKENDS)}"],
            "Set vault.backend (or DOTVAULT_BACKEND) to one of the available backends.",
        )

    token_var = TOKEN_ENV_VARS.get(backend)
    env_token = env.get(token_var) if token_var else None

    return Settings(
        backend=backend,
        offline=env.get("DOTVAULT_OFFLINE", "").strip().lower() in _TRUTHY,
        config_path=config_path,
        items_path=Path(config.paths.items_file),
        state_path=Path(config.paths.state_file),
        session_path=Path(config.paths.session_file),
        backup_dir=Path(config.paths.backup_dir) if config.paths.backup_dir else None,
        timeout=config.vault.timeout,
        auth_timeout=config.vault.auth_timeout,
        onepassword_vault=env.get("ONEPASSWORD_VAULT") or config.vault.onepassword_vault,
        pass_prefix=env.get("PASS_PREFIX") or config.vault.pass_prefix,
        password_store_dir=Path(env.get("PASSWORD_STORE_DIR") or config.vault.password_store_dir).expanduser(),
        verbose=config.output.verbose,
        colored=config.output.colored,
        log_file=Path(config.output.log_file) if config.output.log_file else None,
        env_token=env_token or None,
    )


def load_item_schema(items_path: Path) -> ItemSchema:
    """
    Load and validate the JSON item schema.

    Raises:
        ConfigError: If the file is missing, not JSON, or fails validation.
    """
    if not items_path.exists():
        raise ConfigError(
            f"Item schema not found: {items_path}",
            remediation="Run 'dotvault config init' to create one.",
        )

    try:
        with open(items_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {items_path}", [f"line {e.lineno} column {e.colno}: {e.msg}"]) from e

    if not isinstance(data, dict):
        raise ConfigError(f"Item schema root must be an object: {items_path}")

    if "version" not in data:
        raise ConfigError(f"Item schema has no version field: {items_path}", ["version: Field required"])

    try:
        return ItemSchema.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid item schema: {items_path}", _format_errors(e)) from e


def validate_item_schema_file(items_path: Path) -> tuple[bool, list[str]]:
    """
    Validate an item schema file without loading it into the system.

    Returns:
        Tuple of (is_valid, error_messages).
    """
    try:
        load_item_schema(items_path)
    except ConfigError as e:
        return False, [e.message, *e.errors]
    return True, []


def _format_errors(error: ValidationError) -> list[str]:
    """Flatten pydantic errors into 'loc -> loc: message' lines."""
    messages = []
    for err in error.errors():
        loc = " -> ".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return messages


def _merge_with_defaults(data: dict) -> dict:
    """Merge loaded data with default values for missing keys."""
    result = copy.deepcopy(DEFAULT_CONFIG)

    for section in ("vault", "paths", "output"):
        if section in data and isinstance(data[section], dict):
            result[section] = {**result[section], **data[section]}
        elif section in data:
            result[section] = data[section]

    return result
