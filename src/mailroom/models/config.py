"""Configuration models for the Mailroom store."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import BaseModel, Field

DB_PATH_ENV = "MAILROOM_DB_PATH"


def default_db_path() -> str:
    """
    Return the platform-specific default database location.

    - Linux: ``~/.local/share/mailroom/mailroom.db``
    - macOS: ``~/Library/Application Support/mailroom/mailroom.db``
    - Windows: ``%APPDATA%\\mailroom\\mailroom.db``
    """
    if sys.platform == "darwin":
        base = Path("~/Library/Application Support")
    elif sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else Path("~")
    else:
        base = Path("~/.local/share")
    return str(base / "mailroom" / "mailroom.db")


class StoreConfig(BaseModel):
    """Configuration for the SQLite persistence layer."""

    db_path: str = Field(
        default_factory=default_db_path,
        description="Path to the SQLite database file. ~ is expanded at runtime.",
    )

    wal_mode: bool = True
    """Use WAL journal mode for better concurrent read performance."""

    connection_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds SQLite waits on a locked database before raising.",
    )


class MailroomConfig(BaseModel):
    """
    Top-level configuration for a Mailroom instance.

    Example::

        config = MailroomConfig(store=StoreConfig(db_path="/tmp/mailroom.db"))
    """

    store: StoreConfig = Field(default_factory=StoreConfig)

    @classmethod
    def default(cls) -> MailroomConfig:
        """Return a config instance with all defaults."""
        return cls()

    @classmethod
    def from_env(cls) -> MailroomConfig:
        """Return a config with ``MAILROOM_DB_PATH`` applied when it is set."""
        db_path = os.environ.get(DB_PATH_ENV, "").strip()
        if db_path:
            return cls(store=StoreConfig(db_path=db_path))
        return cls()
