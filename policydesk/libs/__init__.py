"""Shared library helpers."""

from policydesk.libs.notifier import LogNotifier, NotificationKind, Notifier
from policydesk.libs.supabase_client import (
    AuthResponse,
    AuthSession,
    DataAccessError,
    DataAccessProtocol,
    Query,
    QueryBuilder,
    QueryResponse,
    SupabaseClient,
)

__all__ = [
    "AuthResponse",
    "AuthSession",
    "DataAccessError",
    "DataAccessProtocol",
    "LogNotifier",
    "NotificationKind",
    "Notifier",
    "Query",
    "QueryBuilder",
    "QueryResponse",
    "SupabaseClient",
]
