"""Mailroom data models."""

from mailroom.models.config import MailroomConfig, StoreConfig, default_db_path
from mailroom.models.records import ContextEntry, Message
from mailroom.models.scope import GLOBAL, GlobalScope, ProjectScope, Scope, scope_for

__all__ = [
    # Config
    "MailroomConfig",
    "StoreConfig",
    "default_db_path",
    # Scopes
    "GLOBAL",
    "GlobalScope",
    "ProjectScope",
    "Scope",
    "scope_for",
    # Records
    "ContextEntry",
    "Message",
]
