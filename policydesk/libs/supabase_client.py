"""
Async client for the hosted data-access service.

Talks to the row/RPC endpoint (PostgREST) and the auth endpoint (GoTrue) of a
Supabase project over httpx. Row queries are described by a ``Query`` value and
built fluently through ``QueryBuilder``; every call resolves to a response
object carrying either data or an error message instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import httpx
import structlog
from policydesk.core.config import get_settings

logger = structlog.get_logger(__name__)

QueryMethod = Literal["select", "insert", "update", "delete"]
FilterOp = Literal["eq", "in"]

_RESERVED = set(',()"')


class DataAccessError(Exception):
    """Base exception for data-access service errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class DataAccessTimeoutError(DataAccessError):
    """Raised when the service does not answer in time."""


@dataclass(slots=True)
class Filter:
    column: str
    op: FilterOp
    value: Any


@dataclass(slots=True)
class Query:
    """Description of a single row-table call."""

    table: str
    method: QueryMethod = "select"
    columns: str = "*"
    filters: list[Filter] = field(default_factory=list)
    order: tuple[str, bool] | None = None
    range: tuple[int, int] | None = None
    count: str | None = None
    single: bool = False
    values: Any = None


@dataclass(slots=True)
class QueryResponse:
    """Rows (or a single row) plus the exact count when one was requested."""

    data: Any = None
    count: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class AuthSession:
    user: dict[str, Any]
    access_token: str
    refresh_token: str


@dataclass(slots=True)
class AuthResponse:
    user: dict[str, Any] | None = None
    session: AuthSession | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class QueryExecutor(Protocol):
    async def execute(self, query: Query) -> QueryResponse:
        ...


class QueryBuilder:
    """Fluent builder mirroring the service's query grammar."""

    def __init__(self, executor: QueryExecutor, table: str) -> None:
        self._executor = executor
        self.query = Query(table=table)

    def select(self, columns: str = "*", *, count: str | None = None) -> QueryBuilder:
        self.query.method = "select"
        self.query.columns = " ".join(columns.split())
        self.query.count = count
        return self

    def insert(self, rows: list[dict[str, Any]] | dict[str, Any]) -> QueryBuilder:
        self.query.method = "insert"
        self.query.values = rows if isinstance(rows, list) else [rows]
        return self

    def update(self, values: dict[str, Any]) -> QueryBuilder:
        self.query.method = "update"
        self.query.values = values
        return self

    def delete(self) -> QueryBuilder:
        self.query.method = "delete"
        return self

    def eq(self, column: str, value: Any) -> QueryBuilder:
        self.query.filters.append(Filter(column=column, op="eq", value=value))
        return self

    def in_(self, column: str, values: list[Any]) -> QueryBuilder:
        self.query.filters.append(Filter(column=column, op="in", value=list(values)))
        return self

    def order(self, column: str, *, ascending: bool = True) -> QueryBuilder:
        self.query.order = (column, ascending)
        return self

    def range(self, start: int, end: int) -> QueryBuilder:
        self.query.range = (start, end)
        return self

    def single(self) -> QueryBuilder:
        self.query.single = True
        return self

    async def execute(self) -> QueryResponse:
        return await self._executor.execute(self.query)


class AuthProtocol(Protocol):
    async def sign_up(self, *, email: str, password: str) -> AuthResponse:
        ...

    async def sign_in_with_password(self, *, email: str, password: str) -> AuthResponse:
        ...

    async def reset_password_for_email(self, email: str, *, redirect_to: str) -> AuthResponse:
        ...

    async def update_user(self, *, password: str, access_token: str) -> AuthResponse:
        ...


class DataAccessProtocol(Protocol):
    """Protocol for the data-access service (allows in-memory fakes)."""

    auth: AuthProtocol

    def table(self, name: str) -> QueryBuilder:
        ...

    def set_access_token(self, token: str | None) -> None:
        ...

    async def execute(self, query: Query) -> QueryResponse:
        ...

    async def rpc(self, function: str, params: dict[str, Any] | None = None) -> QueryResponse:
        ...


class SupabaseClient:
    """Async client for a hosted Supabase project."""

    def __init__(
        self,
        url: str | None = None,
        key: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.url = (url or settings.supabase_url).rstrip("/")
        self.key = key if key is not None else settings.supabase_key
        self.timeout = (
            timeout_seconds if timeout_seconds is not None else settings.http_timeout_seconds
        )

        if not self.key:
            logger.warning("supabase_key_missing", msg="SUPABASE_KEY not configured")

        self._http = httpx.AsyncClient(
            base_url=self.url,
            timeout=self.timeout,
            transport=transport,
            headers={"apikey": self.key, "Authorization": f"Bearer {self.key}"},
        )
        self.auth = SupabaseAuth(self)

    async def __aenter__(self) -> SupabaseClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def set_access_token(self, token: str | None) -> None:
        """Send row requests as the signed-in user (falls back to the anon key)."""
        self._http.headers["Authorization"] = f"Bearer {token or self.key}"

    def table(self, name: str) -> QueryBuilder:
        return QueryBuilder(self, name)

    async def execute(self, query: Query) -> QueryResponse:
        method, params, headers = self._build_request(query)
        body = query.values if query.method in ("insert", "update") else None

        try:
            response = await self.request(
                method,
                f"/rest/v1/{query.table}",
                params=params,
                headers=headers,
                json=body,
            )
        except DataAccessError as exc:
            await logger.awarning(
                "query_failed",
                table=query.table,
                method=query.method,
                error=exc.message,
                status_code=exc.status_code,
            )
            return QueryResponse(error=exc.message)

        data = _json_or_none(response)
        if data is None and not query.single:
            data = []
        return QueryResponse(data=data, count=_parse_count(response))

    async def rpc(self, function: str, params: dict[str, Any] | None = None) -> QueryResponse:
        try:
            response = await self.request("POST", f"/rest/v1/rpc/{function}", json=params or {})
        except DataAccessError as exc:
            await logger.awarning("rpc_failed", function=function, error=exc.message)
            return QueryResponse(error=exc.message)
        return QueryResponse(data=_json_or_none(response))

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: list[tuple[str, str]] | dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """Send a request, mapping transport and HTTP failures to ``DataAccessError``."""
        try:
            response = await self._http.request(
                method, path, params=params, headers=headers, json=json
            )
        except httpx.TimeoutException as exc:
            raise DataAccessTimeoutError(f"Request timed out: {method} {path}") from exc
        except httpx.RequestError as exc:
            raise DataAccessError(f"Request failed: {exc}") from exc

        if response.status_code >= 400:
            raise DataAccessError(_error_message(response), status_code=response.status_code)
        return response

    def _build_request(
        self, query: Query
    ) -> tuple[str, list[tuple[str, str]], dict[str, str]]:
        params: list[tuple[str, str]] = []
        headers: dict[str, str] = {}
        prefer: list[str] = []

        if query.method == "select":
            method = "GET"
            params.append(("select", query.columns))
        elif query.method == "insert":
            method = "POST"
            prefer.append("return=representation")
        elif query.method == "update":
            method = "PATCH"
            prefer.append("return=representation")
        else:
            method = "DELETE"
            prefer.append("return=representation")

        for item in query.filters:
            params.append((item.column, _format_filter(item)))

        if query.order is not None:
            column, ascending = query.order
            params.append(("order", f"{column}.{'asc' if ascending else 'desc'}"))

        if query.range is not None:
            start, end = query.range
            params.append(("offset", str(start)))
            params.append(("limit", str(end - start + 1)))

        if query.count:
            prefer.append(f"count={query.count}")
        if query.single:
            headers["Accept"] = "application/vnd.pgrst.object+json"
        if prefer:
            headers["Prefer"] = ",".join(prefer)

        return method, params, headers


class SupabaseAuth:
    """Auth endpoint calls; failures come back as ``AuthResponse.error``."""

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def sign_up(self, *, email: str, password: str) -> AuthResponse:
        return await self._call(
            "sign_up",
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password},
        )

    async def sign_in_with_password(self, *, email: str, password: str) -> AuthResponse:
        return await self._call(
            "sign_in",
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )

    async def reset_password_for_email(self, email: str, *, redirect_to: str) -> AuthResponse:
        return await self._call(
            "password_reset",
            "POST",
            "/auth/v1/recover",
            params={"redirect_to": redirect_to},
            json={"email": email},
        )

    async def update_user(self, *, password: str, access_token: str) -> AuthResponse:
        return await self._call(
            "update_user",
            "PUT",
            "/auth/v1/user",
            headers={"Authorization": f"Bearer {access_token}"},
            json={"password": password},
        )

    async def _call(
        self,
        action: str,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        json: Any = None,
    ) -> AuthResponse:
        try:
            response = await self._client.request(
                method, path, params=params, headers=headers, json=json
            )
        except DataAccessError as exc:
            await logger.awarning(f"auth_{action}_failed", error=exc.message)
            return AuthResponse(error=exc.message)

        return _parse_auth_payload(_json_or_none(response) or {})


def _format_filter(item: Filter) -> str:
    if item.op == "in":
        return f"in.({','.join(_format_value(value) for value in item.value)})"
    return f"eq.{_format_value(item.value, quote=False)}"


def _format_value(value: Any, *, quote: bool = True) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    text = str(value)
    if quote and _RESERVED.intersection(text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def _parse_count(response: httpx.Response) -> int | None:
    content_range = response.headers.get("content-range")
    if not content_range or "/" not in content_range:
        return None
    total = content_range.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


def _json_or_none(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    payload = _json_or_none(response)
    if isinstance(payload, dict):
        for key in ("message", "msg", "error_description", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return f"Service error {response.status_code}: {response.text}"


def _parse_auth_payload(payload: dict[str, Any]) -> AuthResponse:
    # Sign-in returns tokens plus a nested user; sign-up with email
    # confirmation enabled returns the bare user object.
    if "access_token" in payload:
        user = payload.get("user") or {}
        session = AuthSession(
            user=user,
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token", ""),
        )
        return AuthResponse(user=user, session=session)
    if "id" in payload:
        return AuthResponse(user=payload)
    return AuthResponse(user=payload.get("user"))
