# dotvault Default Configuration
# Default application config and starter item schema

import json
from typing import Any

import yaml

DEFAULT_BACKEND = "bitwarden"

DEFAULT_CONFIG: dict[str, Any] = {
    "vault": {
        "backend": DEFAULT_BACKEND,
        "timeout": 60,
        "auth_timeout": 300,
        "onepassword_vault": "Personal",
        "pass_prefix": "dotfiles",
        "password_store_dir": "~/.password-store",
    },
    "paths": {
        "items_file": "~/.config/dotvault/vault-items.json",
        "state_file": "~/.config/dotvault/sync-state.yaml",
        "session_file": "~/.config/dotvault/.vault-session",
        "backup_dir": None,
    },
    "output": {
        "verbose": False,
        "colored": True,
        "log_file": None,
    },
}

DEFAULT_ITEM_SCHEMA: dict[str, Any] = {
    "version": 3,
    "secrets": [
        {
            "name": "SSH-Config",
            "path": "~/.ssh/config",
            "type": "file",
            "required": True,
            "sync": "always",
            "backup": True,
        },
        {
            "name": "SSH-Personal",
            "path": "~/.ssh/id_ed25519",
            "type": "ssh-key",
            "required": False,
            "sync": "manual",
            "backup": True,
        },
        {
            "name": "AWS-Config",
            "path": "~/.aws/config",
            "type": "file",
            "required": False,
            "sync": "always",
            "backup": True,
        },
        {
            "name": "AWS-Credentials",
            "path": "~/.aws/credentials",
            "type": "file",
            "required": False,
            "sync": "always",
            "backup": True,
        },
        {
            "name": "Git-Config",
            "path": "~/.gitconfig",
            "type": "file",
            "required": True,
            "sync": "always",
            "backup": True,
        },
        {
            "name": "Environment-Secrets",
            "path": "~/.local/env.secrets",
            "type": "file",
            "required": False,
            "sync": "manual",
            "backup": True,
        },
    ],
}

_CONFIG_HEADER = """\
# dotvault configuration
# Backend precedence: DOTVAULT_BACKEND env var > vault.backend below > bitwarden
# Set DOTVAULT_OFFLINE=1 to skip every vault operation.

"""


def generate_default_config() -> str:
    """Render the default application config as commented YAML."""
    body = yaml.dump(DEFAULT_CONFIG, default_flow_style=False, sort_keys=False, allow_unicode=True)
    return _CONFIG_HEADER + body


def generate_default_item_schema() -> str:
    """Render the starter item schema as JSON."""
    return json.dumps(DEFAULT_ITEM_SCHEMA, indent=2) + "\n"
