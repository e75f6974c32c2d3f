"""
Session package for the Gateway Service.

The gateway is the only component that reads or writes the authoritative
session. Subgraphs see a snapshot and send back proposals; this package
loads, signs, reconciles and saves.
"""

from .store import SessionStore, InMemorySessionStore, RedisSessionStore, create_session_store
from .cookies import SessionCookieSigner
from .manager import LoadedSession, SessionManager
from .reconciliation import (
    LoggedProposal,
    ReconciliationOutcome,
    RequestMutationLog,
    SessionReconciliationPlugin,
)

__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    "create_session_store",
    "SessionCookieSigner",
    "LoadedSession",
    "SessionManager",
    "LoggedProposal",
    "ReconciliationOutcome",
    "RequestMutationLog",
    "SessionReconciliationPlugin",
]
