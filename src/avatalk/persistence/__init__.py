"""Persistence modules (session store, session log)."""
from .session_log import SessionLog
from .store import BaseSessionStore, InMemoryStore, SupabaseStore, create_store

__all__ = [
    "SessionLog",
    "BaseSessionStore",
    "InMemoryStore",
    "SupabaseStore",
    "create_store",
]
