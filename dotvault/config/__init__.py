# dotvault Configuration Module
# Item schema and application config loading, validation, and defaults

from dotvault.config.defaults import (
    DEFAULT_CONFIG,
    DEFAULT_ITEM_SCHEMA,
    generate_default_config,
    generate_default_item_schema,
)
from dotvault.config.loader import (
    Settings,
    ensure_config_exists,
    get_config_path,
    load_config,
    load_item_schema,
    load_settings,
    save_config,
    validate_item_schema_file,
)
from dotvault.config.registry import ItemRegistry
from dotvault.config.schema import (
    SUPPORTED_SCHEMA_VERSIONS,
    DotvaultConfig,
    ItemSchema,
    OutputConfig,
    PathsConfig,
    SecretKind,
    SecretSpec,
    SyncMode,
    VaultConfig,
)

__all__ = [
    # Schema
    "SUPPORTED_SCHEMA_VERSIONS",
    "DotvaultConfig",
    "VaultConfig",
    "PathsConfig",
    "OutputConfig",
    "ItemSchema",
    "SecretSpec",
    "SecretKind",
    "SyncMode",
    # Loader
    "Settings",
    "load_config",
    "save_config",
    "get_config_path",
    "ensure_config_exists",
    "load_settings",
    "load_item_schema",
    "validate_item_schema_file",
    # Registry
    "ItemRegistry",
    # Defaults
    "DEFAULT_CONFIG",
    "DEFAULT_ITEM_SCHEMA",
    "generate_default_config",
    "generate_default_item_schema",
]
