"""Centralized helpers for resolving the application's data directory."""
from __future__ import annotations

import logging
import os
from pathlib import Path

LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent
DEFAULT_DATA_ROOT = APP_ROOT / "data"
DATA_ROOT_ENV = "BACKFIX_DATA_DIR"

_announced_roots = set()


def data_root() -> Path:
    """Return the configured data root without creating it."""
    configured = os.environ.get(DATA_ROOT_ENV, "").strip()
    if configured:
        return Path(configured).expanduser().resolve()
    return DEFAULT_DATA_ROOT


def ensure_data_root() -> Path:
    """Return the data root, creating it as needed."""
    root = data_root()
    root.mkdir(parents=True, exist_ok=True)
    if root not in _announced_roots:
        _announced_roots.add(root)
        LOGGER.info("Using data directory %s", root)
    return root


def exports_dir() -> Path:
    """Directory where converted files are spooled before being downloaded."""
    path = ensure_data_root() / "exports"
    path.mkdir(parents=True, exist_ok=True)
    return path
