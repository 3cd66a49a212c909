"""
Where ClientDesk keeps its files.

Everything lives under one home directory (CLIENTDESK_HOME, default
~/.clientdesk):

    config/settings.yaml   company profile for invoices
    data/clientdesk.db     SQLite database (CLIENTDESK_DB overrides)
    uploads/               client file attachments
    output/                generated invoices and exports

Directories are created the first time they are asked for.
"""

from __future__ import annotations

import os
from pathlib import Path

APP_ENV_HOME = "CLIENTDESK_HOME"
APP_ENV_DB = "CLIENTDESK_DB"


def _from_env(var: str) -> Path | None:
    value = os.environ.get(var)
    return Path(value).expanduser().resolve() if value else None


def app_home() -> Path:
    return _from_env(APP_ENV_HOME) or (Path.home() / ".clientdesk").resolve()


def _subdir(name: str) -> Path:
    d = app_home() / name
    d.mkdir(parents=True, exist_ok=True)
    return d


def config_dir() -> Path:
    return _subdir("config")


def data_dir() -> Path:
    return _subdir("data")


def uploads_dir() -> Path:
    return _subdir("uploads")


def out_dir() -> Path:
    return _subdir("output")


def db_path() -> Path:
    """CLIENTDESK_DB if set, else data/clientdesk.db under the home."""
    return _from_env(APP_ENV_DB) or data_dir() / "clientdesk.db"
