"""
Application root: builds the data-access client, the state container and the
slices around them, and exposes the session-aware entry points views call.
"""

from __future__ import annotations

from typing import Any

import structlog
from policydesk.core.auth import PUBLIC_PATHS, can_access
from policydesk.core.config import Settings, get_settings
from policydesk.core.logging import setup_logging
from policydesk.domain.models import PolicyPage
from policydesk.domain.schemas import LoginForm
from policydesk.domain.services import charts
from policydesk.domain.services.pagination import PageCursor
from policydesk.libs.notifier import LogNotifier, Notifier
from policydesk.libs.supabase_client import DataAccessProtocol, SupabaseClient
from policydesk.session.bridge import SessionBridge, SessionIdentity
from policydesk.session.cookies import CookieMirror
from policydesk.session.store import EncryptedSessionStore, SessionStore
from policydesk.state.operations import Err, Ok, OperationRunner, Result
from policydesk.state.persistence import StatePersistor
from policydesk.state.query_router import PolicyQueryRouter
from policydesk.state.slices.auth import AuthSlice
from policydesk.state.slices.dashboard import DashboardSlice
from policydesk.state.slices.policy import PolicySlice
from policydesk.state.store import AppState, Store

logger = structlog.get_logger()

NOT_SIGNED_IN = "Not signed in"


class Application:
    """Composition of every collaborator behind one signed-in session."""

    def __init__(
        self,
        settings: Settings,
        client: DataAccessProtocol,
        session_store: SessionStore,
        notifier: Notifier,
        cookies: CookieMirror | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.session_store = session_store
        self.notifier = notifier
        self.cookies = cookies or CookieMirror()

        self.persistor = StatePersistor(session_store)
        self.store = Store(self.persistor.load())
        self._unsubscribe = self.store.subscribe(self.persistor.save)

        self.runner = OperationRunner(self.store, notifier)
        self.bridge = SessionBridge(session_store, self.cookies, self.store)
        self.auth = AuthSlice(self.runner, client, self.bridge, settings)
        self.dashboard = DashboardSlice(self.runner, client)
        self.policies = PolicySlice(self.runner, client, settings)
        self.router = PolicyQueryRouter(self.policies)

        self.identity: SessionIdentity | None = None
        self.policy_cursor = PageCursor()

    # --- Session ---

    def bootstrap(self) -> SessionIdentity | None:
        """Restore the previous session; untrusted session data starts a clean one."""
        identity = self.bridge.restore()
        if identity is None:
            if self.store.get_state() != AppState():
                logger.info("stale_state_discarded")
                self.store.reset()
            self.identity = None
            return None

        self.client.set_access_token(identity.access_token)
        self.identity = identity
        return identity

    async def sign_in(self, form: LoginForm | dict[str, Any]) -> Result[SessionIdentity]:
        result = await self.auth.sign_in(form)
        if isinstance(result, Ok):
            self.identity = result.value
            self.policy_cursor = PageCursor()
        return result

    def logout(self) -> None:
        self.auth.logout()
        self.identity = None
        self.policy_cursor = PageCursor()

    def can_open(self, path: str) -> bool:
        """Request-time gate: which views the current session may open."""
        if self.identity is None:
            return any(path.startswith(public) for public in PUBLIC_PATHS)
        return can_access(self.identity.role, path)

    # --- Enrollments ---

    async def load_policies(
        self, page: int | None = None, limit: int | None = None
    ) -> Result[PolicyPage]:
        """Fetch a page of the enrollments visible to the signed-in role."""
        if self.identity is None:
            return Err(NOT_SIGNED_IN)

        target = page or self.policy_cursor.current_page
        result = await self.router.fetch(self.identity.role, self.identity.user_id, target, limit)
        if isinstance(result, Ok):
            self.policy_cursor.current_page = target
            self.policy_cursor.total_pages = result.value.total
        return result

    async def go_to_policy_page(self, page: int) -> Result[PolicyPage] | None:
        """Load ``page`` if it exists; out-of-range pages are ignored.

        The cursor only moves once the page has loaded.
        """
        if not self.policy_cursor.can_go_to(page):
            return None
        return await self.load_policies(page)

    # --- Dashboard ---

    async def load_dashboard(self) -> list[Result[Any]]:
        if self.identity is None:
            return [Err(NOT_SIGNED_IN)]
        results: list[Result[Any]] = [await self.dashboard.get_policies(self.identity.user_id)]
        results.extend(await self.dashboard.load_dashboard(self.identity.user_id))
        return results

    def dashboard_charts(self) -> dict[str, charts.ChartData]:
        state = self.store.get_state().dashboard
        return {
            "policies_by_type_status": charts.stacked_bar(state.policy_counts_by_type_status),
            "coverage": charts.coverage_line(state.coverage_data),
            "coverage_by_type": charts.coverage_bar(state.coverage_type_data),
            "premium_by_type": charts.premium_pie(state.premium_by_type),
        }

    async def aclose(self) -> None:
        self._unsubscribe()
        aclose = getattr(self.client, "aclose", None)
        if aclose is not None:
            await aclose()


def create_application(
    settings: Settings | None = None,
    *,
    client: DataAccessProtocol | None = None,
    session_store: SessionStore | None = None,
    notifier: Notifier | None = None,
) -> Application:
    """Application factory."""
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    application = Application(
        settings=settings,
        client=client
        or SupabaseClient(
            url=settings.supabase_url,
            key=settings.supabase_key,
            timeout_seconds=settings.http_timeout_seconds,
        ),
        session_store=session_store
        or EncryptedSessionStore(settings.session_store_path, settings.session_encryption_key),
        notifier=notifier or LogNotifier(),
    )
    logger.info(
        "application_startup",
        service=settings.app_name,
        environment=settings.environment,
        version=settings.version,
    )
    return application
