# dotvault Configuration Schema
# Pydantic models for the item schema (JSON) and application config (YAML)

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, field_validator, model_validator

from dotvault.utils.paths import expand_path

SUPPORTED_SCHEMA_VERSIONS: tuple[int, ...] = (3,)


class SecretKind(str, Enum):
    """Type of a managed secret."""

    FILE = "file"
    SSH_KEY = "ssh-key"


class SyncMode(str, Enum):
    """Whether an item takes part in automatic bidirectional sync."""

    ALWAYS = "always"
    MANUAL = "manual"


class SecretSpec(BaseModel):
    """A single declared secret: where it lives locally and how it syncs."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(description="Unique item name, used as the vault key")
    path: str = Field(description="Local path (supports ~ and $VARS)")
    kind: SecretKind = Field(alias="type", description="file or ssh-key")
    required: StrictBool = Field(default=False, description="Absence in the vault fails 'check'")
    sync_mode: SyncMode = Field(default=SyncMode.ALWAYS, alias="sync", description="always or manual")
    backup: StrictBool = Field(default=True, description="Back up the local file before overwriting it")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Names are used verbatim as backend keys and pass store paths."""
        if not v or v != v.strip():
            raise ValueError("name must be non-empty without surrounding whitespace")
        if any(ord(c) < 32 for c in v) or ".." in v.split("/"):
            raise ValueError(f"name contains invalid characters: {v!r}")
        return v

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Paths must be absolute once ~ is expanded."""
        if not v or not v.strip():
            raise ValueError("path must not be empty")
        if "\x00" in v:
            raise ValueError("path must not contain NUL bytes")
        if not v.startswith(("~", "/")):
            raise ValueError(f"path must be absolute or start with ~: {v!r}")
        if v.endswith("/"):
            raise ValueError(f"path must point to a file, not a directory: {v!r}")
        return v

    @property
    def local_path(self) -> Path:
        """Expanded local path."""
        return expand_path(self.path)

    @property
    def is_ssh_key(self) -> bool:
        return self.kind == SecretKind.SSH_KEY

    @property
    def is_manual(self) -> bool:
        return self.sync_mode == SyncMode.MANUAL


class ItemSchema(BaseModel):
    """Root of the persisted item schema (vault-items.json)."""

    version: StrictInt = Field(description="Schema version")
    secrets: list[SecretSpec] = Field(default_factory=list, description="Declared secrets, in order")

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: int) -> int:
        """Unknown versions are rejected rather than guessed at."""
        if v not in SUPPORTED_SCHEMA_VERSIONS:
            supported = ", ".join(str(s) for s in SUPPORTED_SCHEMA_VERSIONS)
            raise ValueError(f"unsupported schema version {v} (supported: {supported})")
        return v

    @model_validator(mode="after")
    def validate_unique_names(self) -> "ItemSchema":
        """Item names must be unique."""
        seen: set[str] = set()
        duplicates: list[str] = []
        for spec in self.secrets:
            if spec.name in seen:
                duplicates.append(spec.name)
            seen.add(spec.name)
        if duplicates:
            raise ValueError(f"duplicate item names: {', '.join(duplicates)}")
        return self


class VaultConfig(BaseModel):
    """Backend selection and per-backend settings."""

    backend: str = Field(default="bitwarden", description="bitwarden, 1password or pass")
    timeout: float = Field(default=60.0, gt=0, description="Seconds allowed per backend call")
    auth_timeout: float = Field(default=300.0, gt=0, description="Seconds allowed for interactive unlock")
    onepassword_vault: str = Field(default="Personal", description="1Password vault holding the items")
    pass_prefix: str = Field(default="dotfiles", description="Directory prefix inside the pass store")
    password_store_dir: str = Field(default="~/.password-store", description="pass store location")


class PathsConfig(BaseModel):
    """Locations of the item schema, sync state and session cache."""

    items_file: str = Field(default="~/.config/dotvault/vault-items.json", description="Item schema (JSON)")
    state_file: str = Field(default="~/.config/dotvault/sync-state.yaml", description="Sync state")
    session_file: str = Field(default="~/.config/dotvault/.vault-session", description="Cached session token")
    backup_dir: str | None = Field(default=None, description="Backup directory; None keeps backups beside files")

    @field_validator("items_file", "state_file", "session_file")
    @classmethod
    def expand_paths(cls, v: str) -> str:
        """Expand ~ in paths."""
        return str(Path(v).expanduser())

    @field_validator("backup_dir")
    @classmethod
    def expand_optional_path(cls, v: str | None) -> str | None:
        """Expand ~ in optional paths."""
        if v is None:
            return None
        return str(Path(v).expanduser())


class OutputConfig(BaseModel):
    """Output and logging configuration."""

    verbose: bool = Field(default=False, description="Enable verbose output")
    colored: bool = Field(default=True, description="Enable colored output")
    log_file: str | None = Field(default=None, description="Path to log file")

    @field_validator("log_file")
    @classmethod
    def expand_optional_paths(cls, v: str | None) -> str | None:
        """Expand ~ in optional paths."""
        if v is None:
            return None
        return str(Path(v).expanduser())


class DotvaultConfig(BaseModel):
    """Root application configuration."""

    vault: VaultConfig = Field(default_factory=VaultConfig, description="Backend settings")
    paths: PathsConfig = Field(default_factory=PathsConfig, description="File locations")
    output: OutputConfig = Field(default_factory=OutputConfig, description="Output settings")
