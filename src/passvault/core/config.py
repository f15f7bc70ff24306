"""
Application configuration (YAML)

Default location: ~/.config/passvault/config.yaml

    security:
      auto_lock_timeout: 5        # minutes, 0 disables
      clipboard_timeout: 30       # seconds, 0 disables
      clear_clipboard_on_lock: true
      clear_clipboard_on_exit: true
      max_unlock_attempts: 5
      unlock_cooldown: 300        # seconds
    password_generator: {length: 16, include_uppercase: true, ...}
    passphrase_generator: {word_count: 4, separator: "-", ...}
    storage:
      vault_path: ~/.config/passvault/vault.enc
      backup_path: ~/.config/passvault/backups
      auto_backup: false
      backup_interval: 24         # hours
      max_backups: 10
    ui: {theme: dark, show_totp_countdown: true, compact_mode: false, date_format: "%Y-%m-%d %H:%M"}

Missing sections or keys fall back to defaults; unknown keys are ignored.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .exceptions import ConfigError
from .generator import PassphraseConfig, PasswordConfig
from .storage import atomic_write

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "passvault"
CONFIG_ENV = "PASSVAULT_CONFIG"
VAULT_PATH_ENV = "PASSVAULT_VAULT_PATH"


@dataclass
class SecurityConfig:
    auto_lock_timeout: int = 5
    clipboard_timeout: int = 30
    clear_clipboard_on_lock: bool = True
    clear_clipboard_on_exit: bool = True
    max_unlock_attempts: int = 5
    unlock_cooldown: int = 300


@dataclass
class PasswordGeneratorConfig:
    length: int = 16
    include_uppercase: bool = True
    include_lowercase: bool = True
    include_numbers: bool = True
    include_symbols: bool = True
    exclude_ambiguous: bool = True

    def to_password_config(self) -> PasswordConfig:
        return PasswordConfig(
            length=self.length,
            include_upper=self.include_uppercase,
            include_lower=self.include_lowercase,
            include_numbers=self.include_numbers,
            include_symbols=self.include_symbols,
            exclude_ambiguous=self.exclude_ambiguous,
        )


@dataclass
class PassphraseGeneratorConfig:
    word_count: int = 4
    separator: str = "-"
    capitalize: bool = True
    include_number: bool = True

    def to_passphrase_config(self) -> PassphraseConfig:
        return PassphraseConfig(**asdict(self))


@dataclass
class StorageConfig:
    vault_path: str = str(CONFIG_DIR / "vault.enc")
    backup_path: str = str(CONFIG_DIR / "backups")
    auto_backup: bool = False
    backup_interval: int = 24
    max_backups: int = 10

    @property
    def vault_file(self) -> Path:
        return Path(self.vault_path).expanduser()

    @property
    def backup_dir(self) -> Path:
        return Path(self.backup_path).expanduser()


@dataclass
class UIConfig:
    theme: str = "dark"
    show_totp_countdown: bool = True
    compact_mode: bool = False
    date_format: str = "%Y-%m-%d %H:%M"


@dataclass
class Config:
    security: SecurityConfig = field(default_factory=SecurityConfig)
    password_generator: PasswordGeneratorConfig = field(default_factory=PasswordGeneratorConfig)
    passphrase_generator: PassphraseGeneratorConfig = field(default_factory=PassphraseGeneratorConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    ui: UIConfig = field(default_factory=UIConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def default_config_path() -> Path:
    override = os.getenv(CONFIG_ENV)
    if override:
        return Path(override).expanduser()
    return CONFIG_DIR / "config.yaml"


def _section(cls, raw: Any, name: str):
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigError(f"section '{name}' must be a mapping")
    known = {f.name: f for f in fields(cls)}
    values = {}
    for key, value in raw.items():
        if key not in known:
            logger.debug("ignoring unknown config key %s.%s", name, key)
            continue
        default = getattr(cls(), key)
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise ConfigError(f"{name}.{key} must be true or false")
        elif isinstance(default, int):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name}.{key} must be an integer")
            if value < 0:
                raise ConfigError(f"{name}.{key} must not be negative")
        elif isinstance(default, str):
            if value is None:
                continue
            value = str(value)
        values[key] = value
    return cls(**values)


def config_from_dict(data: Optional[Dict[str, Any]]) -> Config:
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("configuration root must be a mapping")
    return Config(
        security=_section(SecurityConfig, data.get("security"), "security"),
        password_generator=_section(PasswordGeneratorConfig, data.get("password_generator"), "password_generator"),
        passphrase_generator=_section(PassphraseGeneratorConfig, data.get("passphrase_generator"), "passphrase_generator"),
        storage=_section(StorageConfig, data.get("storage"), "storage"),
        ui=_section(UIConfig, data.get("ui"), "ui"),
    )


def load_config(path: Path | str | None = None, apply_env: bool = True) -> Config:
    """
    Load configuration from ``path`` (default: ``default_config_path()``).

    A missing file yields the defaults. ``PASSVAULT_VAULT_PATH`` overrides
    ``storage.vault_path`` either way, unless ``apply_env`` is False (used
    when the file is about to be rewritten).
    """
    path = Path(path).expanduser() if path is not None else default_config_path()
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug("no config at %s, using defaults", path)
        config = Config()
    except OSError as exc:
        raise ConfigError(f"failed to read {path}: {exc}") from exc
    else:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
        config = config_from_dict(data)

    vault_override = os.getenv(VAULT_PATH_ENV) if apply_env else None
    if vault_override:
        config.storage.vault_path = vault_override
    return config


def save_config(config: Config, path: Path | str | None = None) -> Path:
    """Write ``config`` as YAML with owner-only permissions."""
    path = Path(path).expanduser() if path is not None else default_config_path()
    text = yaml.safe_dump(config.to_dict(), default_flow_style=False, sort_keys=False)
    atomic_write(path, text.encode("utf-8"))
    return path
