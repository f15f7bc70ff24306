"""Lightweight logging setup for the CLI and the TUI."""

import logging
import sys
from pathlib import Path
from typing import Optional


def configure_logging(level: int = logging.INFO, log_file: Optional[Path] = None) -> None:
    # Configure root logger once. While the TUI owns the terminal, log to a file instead.
    if log_file is not None:
        log_file.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=[handler],
    )
