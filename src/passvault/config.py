"""Configuration: defaults, optional JSON config file, environment, flags."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import IOFailure
from .generator import DEFAULT_LENGTH
from .storage import STORES

# Defaults
CONFIG_DIR = Path.home() / ".passvault"
DEFAULT_CONFIG = CONFIG_DIR / "config.json"
DEFAULT_STORAGE = "file"
DEFAULT_VAULTS = {
    "file": CONFIG_DIR / "storage.json",
    "sqlite": CONFIG_DIR / "vault.db",
}


@dataclass
class Config:
    """Resolved runtime settings."""

    vault_path: Path
    storage: str = DEFAULT_STORAGE
    password_length: int = DEFAULT_LENGTH


def get_config_path(args_config=None):
    """Get config file path from args, PASSVAULT_CONFIG or default."""
    if args_config:
        return Path(args_config)
    env_config = os.environ.get("PASSVAULT_CONFIG")
    return Path(env_config) if env_config else DEFAULT_CONFIG


def read_config_file(path):
    """Read the JSON config file; a missing file means no overrides."""
    path = Path(path)
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise IOFailure(f"Cannot read config {path}: {e}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise IOFailure(f"Invalid config format in {path}: {e}") from e

    if not isinstance(data, dict):
        raise IOFailure(f"Invalid config format in {path}: expected an object")
    return data


def load_config(
    args_vault: Optional[str] = None,
    args_storage: Optional[str] = None,
    args_config: Optional[str] = None,
) -> Config:
    """Resolve settings. Later sources win: file, environment, arguments."""
    settings = read_config_file(get_config_path(args_config))

    env_overrides = {
        "vault": os.environ.get("PASSVAULT_PATH"),
        "storage": os.environ.get("PASSVAULT_STORAGE"),
        "password_length": os.environ.get("PASSVAULT_PASSWORD_LENGTH"),
    }
    settings.update({k: v for k, v in env_overrides.items() if v})

    if args_vault:
        settings["vault"] = args_vault
    if args_storage:
        settings["storage"] = args_storage

    storage = settings.get("storage", DEFAULT_STORAGE)
    if storage not in STORES:
        raise ValueError(
            f"Unknown storage '{storage}' (choose from: {', '.join(sorted(STORES))})"
        )

    try:
        password_length = int(settings.get("password_length", DEFAULT_LENGTH))
    except (TypeError, ValueError):
        raise ValueError(
            f"password_length must be an integer, got {settings['password_length']!r}"
        ) from None
    if password_length < 4:
        raise ValueError(f"password_length must be at least 4, got {password_length}")

    vault = settings.get("vault")
    vault_path = Path(vault).expanduser() if vault else DEFAULT_VAULTS[storage]

    return Config(vault_path=vault_path, storage=storage, password_length=password_length)
