"""Small helper to build a PassVault app context for the TUI and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from passvault.core.config import Config, default_config_path, load_config
from passvault.core.storage import BackupPolicy
from passvault.frontend.cli.clipboard import ClipboardManager
from passvault.security.session import VaultSession


@dataclass
class AppContext:
    """Container for runtime objects the UI needs."""

    config: Config
    session: VaultSession
    clipboard: ClipboardManager
    first_run: bool = False
    # where settings changed in the UI are written
    config_path: Optional[Path] = None

    @property
    def log_file(self) -> Path:
        return self.session.path.parent / "passvault.log"


def session_from_config(config: Config) -> VaultSession:
    storage = config.storage
    backup = None
    if storage.auto_backup:
        backup = BackupPolicy(
            storage.backup_dir,
            max_backups=storage.max_backups,
            interval_hours=storage.backup_interval,
        )
    return VaultSession(
        storage.vault_file,
        max_unlock_attempts=config.security.max_unlock_attempts,
        unlock_cooldown=config.security.unlock_cooldown,
        backup=backup,
    )


def build_context(config_path: Optional[str | Path] = None, config: Optional[Config] = None) -> AppContext:
    """
    Load configuration and wire the session and clipboard from it.

    - ``config`` wins over ``config_path``; otherwise the YAML file at
      ``config_path`` (or ``PASSVAULT_CONFIG`` / the default location) is read.
    - ``PASSVAULT_VAULT_PATH`` overrides the vault location of a loaded config.
    - ``first_run`` is True when no vault file exists yet, so the UI asks for
      a new master password instead of an unlock.
    """
    config = config or load_config(config_path)
    session = session_from_config(config)
    clipboard = ClipboardManager(timeout=config.security.clipboard_timeout)
    return AppContext(
        config=config,
        session=session,
        clipboard=clipboard,
        first_run=not session.exists(),
        config_path=Path(config_path).expanduser() if config_path is not None else default_config_path(),
    )
