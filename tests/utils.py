from __future__ import annotations

import copy
import re
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from policydesk.libs.notifier import NotificationKind
from policydesk.libs.supabase_client import (
    AuthResponse,
    AuthSession,
    Filter,
    Query,
    QueryBuilder,
    QueryResponse,
)
from policydesk.state.operations import Action
from policydesk.state.store import Store

# Embedded relation name -> foreign key on the parent row.
RELATIONS = {"policies": "policy_id", "users": "user_id", "roles": "role_id"}


def make_access_token(
    user_id: str,
    *,
    secret: str = "test-signing-secret-0123456789abcdef",
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    now = datetime.now(UTC)
    payload = {"sub": user_id, "iat": now, "exp": now + expires_in, "role": "authenticated"}
    return jwt.encode(payload, secret, algorithm="HS256")


def seed_tables() -> dict[str, list[dict[str, Any]]]:
    """Small dataset: one admin, two agents (one without clients), three holders."""
    return {
        "roles": [
            {"id": 1, "name": "admin"},
            {"id": 2, "name": "agent"},
            {"id": 3, "name": "policy_holder"},
        ],
        "users": [
            _user("admin-1", "Ada Admin", 1, "2024-01-01T09:00:00+00:00"),
            _user("agent-1", "Alan Agent", 2, "2024-01-02T09:00:00+00:00"),
            _user("agent-2", "Amy Agent", 2, "2024-01-03T09:00:00+00:00"),
            _user("holder-1", "Hal Holder", 3, "2024-01-04T09:00:00+00:00"),
            _user("holder-2", "Hana Holder", 3, "2024-01-05T09:00:00+00:00"),
            _user("holder-3", "Hugo Holder", 3, "2024-01-06T09:00:00+00:00"),
        ],
        "policies": [
            _policy(1, "Term Life", "LIFE-001", "life", 100000, 120),
            _policy(2, "Family Health", "HLT-001", "health", 50000, 80),
            _policy(3, "Auto Basic", "AUT-001", "auto", 20000, 45),
        ],
        "users_policies": [
            {"id": 1, "user_id": "holder-1", "policy_id": 1, "status": "active"},
            {"id": 2, "user_id": "holder-1", "policy_id": 2, "status": "lapsed"},
            {"id": 3, "user_id": "holder-2", "policy_id": 3, "status": "active"},
            {"id": 4, "user_id": "holder-3", "policy_id": 1, "status": "cancelled"},
            {"id": 5, "user_id": "holder-3", "policy_id": 2, "status": "active"},
        ],
        "agent_clients": [
            {"id": 1, "agent_id": "agent-1", "client_id": "holder-1"},
            {"id": 2, "agent_id": "agent-1", "client_id": "holder-2"},
        ],
    }


def _user(user_id: str, name: str, role_id: int, created_at: str) -> dict[str, Any]:
    return {
        "id": user_id,
        "name": name,
        "email": f"{user_id}@example.com",
        "phone": "555-0100",
        "role_id": role_id,
        "created_at": created_at,
    }


def _policy(
    policy_id: int, name: str, number: str, policy_type: str, coverage: int, premium: int
) -> dict[str, Any]:
    return {
        "id": policy_id,
        "name": name,
        "policy_number": number,
        "type": policy_type,
        "coverage": coverage,
        "premium": premium,
        "start_date": "2024-01-01",
        "end_date": "2025-01-01",
    }


class FakeAuth:
    """In-memory auth endpoint keyed by email."""

    def __init__(self) -> None:
        self.accounts: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._next_id = 1

    def register(self, user_id: str, email: str, password: str) -> None:
        self.accounts[email] = {"id": user_id, "email": email, "password": password}

    async def sign_up(self, *, email: str, password: str) -> AuthResponse:
        self.calls.append(("sign_up", {"email": email}))
        if email in self.accounts:
            return AuthResponse(error="User already registered")
        user_id = f"auth-{self._next_id}"
        self._next_id += 1
        self.register(user_id, email, password)
        return AuthResponse(user={"id": user_id, "email": email})

    async def sign_in_with_password(self, *, email: str, password: str) -> AuthResponse:
        self.calls.append(("sign_in", {"email": email}))
        account = self.accounts.get(email)
        if account is None or account["password"] != password:
            return AuthResponse(error="Invalid login credentials")
        user = {"id": account["id"], "email": email}
        session = AuthSession(
            user=user,
            access_token=make_access_token(account["id"]),
            refresh_token=f"refresh-{account['id']}",
        )
        return AuthResponse(user=user, session=session)

    async def reset_password_for_email(self, email: str, *, redirect_to: str) -> AuthResponse:
        self.calls.append(("reset_password", {"email": email, "redirect_to": redirect_to}))
        return AuthResponse()

    async def update_user(self, *, password: str, access_token: str) -> AuthResponse:
        self.calls.append(("update_user", {"access_token": access_token}))
        claims = jwt.decode(access_token, options={"verify_signature": False})
        return AuthResponse(user={"id": claims["sub"]})


class FakeDataAccess:
    """In-memory stand-in for the data-access service.

    Supports the query grammar the slices use: ``eq``/``in`` filters (dotted
    columns filter on embedded relations), embedded ``policies``/``users``/
    ``roles`` selects, ascending/descending order, ranges with exact counts,
    single-row reads and returning writes.
    """

    def __init__(self, tables: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.tables = tables if tables is not None else seed_tables()
        self.rpc_results: dict[str, list[dict[str, Any]]] = {}
        self.failures: dict[str, str] = {}
        self.queries: list[Query] = []
        self.rpc_calls: list[tuple[str, dict[str, Any] | None]] = []
        self.access_token: str | None = None
        self.auth = FakeAuth()

    def set_access_token(self, token: str | None) -> None:
        self.access_token = token

    def table(self, name: str) -> QueryBuilder:
        return QueryBuilder(self, name)

    def queries_for(self, table: str) -> list[Query]:
        return [query for query in self.queries if query.table == table]

    async def rpc(self, function: str, params: dict[str, Any] | None = None) -> QueryResponse:
        self.rpc_calls.append((function, params))
        if function in self.failures:
            return QueryResponse(error=self.failures[function])
        return QueryResponse(data=copy.deepcopy(self.rpc_results.get(function, [])))

    async def execute(self, query: Query) -> QueryResponse:
        self.queries.append(query)
        if query.table in self.failures:
            return QueryResponse(error=self.failures[query.table])

        rows = self.tables.setdefault(query.table, [])
        if query.method == "insert":
            created = []
            for values in query.values:
                row = dict(values)
                if "id" not in row:
                    row["id"] = self._next_id(rows)
                rows.append(row)
                created.append(copy.deepcopy(row))
            return QueryResponse(data=created)

        matching = [row for row in rows if self._matches(self._embed(row, query), query.filters)]

        if query.method == "update":
            for row in matching:
                row.update(query.values)
            return QueryResponse(data=copy.deepcopy(matching))

        if query.method == "delete":
            for row in matching:
                rows.remove(row)
            return QueryResponse(data=copy.deepcopy(matching))

        result = [self._embed(row, query) for row in matching]
        if query.order is not None:
            column, ascending = query.order
            result.sort(
                key=lambda row: (row.get(column) is None, row.get(column)),
                reverse=not ascending,
            )
        count = len(result) if query.count else None
        if query.range is not None:
            start, end = query.range
            result = result[start : end + 1]

        if query.single:
            if len(result) != 1:
                return QueryResponse(
                    error="JSON object requested, multiple (or no) rows returned"
                )
            return QueryResponse(data=result[0])
        return QueryResponse(data=result, count=count)

    @staticmethod
    def _next_id(rows: list[dict[str, Any]]) -> int:
        ids = [row["id"] for row in rows if isinstance(row.get("id"), int)]
        return max(ids, default=0) + 1

    def _embed(self, row: dict[str, Any], query: Query) -> dict[str, Any]:
        embedded = copy.deepcopy(row)
        for relation, foreign_key in RELATIONS.items():
            if not re.search(rf"\b{relation}(!inner)?\(", query.columns):
                continue
            target = next(
                (
                    other
                    for other in self.tables.get(relation, [])
                    if other.get("id") == row.get(foreign_key)
                ),
                None,
            )
            embedded[relation] = copy.deepcopy(target)
        return embedded

    @staticmethod
    def _matches(row: dict[str, Any], filters: list[Filter]) -> bool:
        for item in filters:
            value: Any = row
            for part in item.column.split("."):
                value = value.get(part) if isinstance(value, dict) else None
            if item.op == "eq" and value != item.value:
                return False
            if item.op == "in" and value not in item.value:
                return False
        return True


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[NotificationKind, str]] = []

    def notify(self, kind: NotificationKind, message: str) -> None:
        self.messages.append((kind, message))

    @property
    def errors(self) -> list[str]:
        return [message for kind, message in self.messages if kind is NotificationKind.ERROR]

    @property
    def successes(self) -> list[str]:
        return [message for kind, message in self.messages if kind is NotificationKind.SUCCESS]


class RecordingStore(Store):
    """Store that remembers every dispatched action type."""

    def __init__(self) -> None:
        super().__init__()
        self.actions: list[Action] = []

    def dispatch(self, action: Action) -> None:
        self.actions.append(action)
        super().dispatch(action)

    def action_types(self, prefix: str) -> list[str]:
        return [action.type for action in self.actions if action.type.startswith(f"{prefix}/")]
