from __future__ import annotations

from collections.abc import Iterator

import pytest
from policydesk.app import Application
from policydesk.core.config import Settings, get_settings
from policydesk.session.bridge import SessionBridge
from policydesk.session.cookies import CookieMirror
from policydesk.session.store import MemorySessionStore
from policydesk.state.operations import OperationRunner
from policydesk.state.slices.auth import AuthSlice
from policydesk.state.slices.dashboard import DashboardSlice
from policydesk.state.slices.policy import PolicySlice
from tests.utils import FakeDataAccess, RecordingNotifier, RecordingStore


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Each test sees settings built from a clean environment."""
    for name in ("SUPABASE_JWT_SECRET", "DEFAULT_PAGE_SIZE", "SESSION_ENCRYPTION_KEY"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None, SUPABASE_KEY="test-anon-key")


@pytest.fixture()
def fake_client() -> FakeDataAccess:
    client = FakeDataAccess()
    client.auth.register("holder-1", "holder-1@example.com", "secret-pass")
    client.auth.register("agent-1", "agent-1@example.com", "secret-pass")
    client.auth.register("admin-1", "admin-1@example.com", "secret-pass")
    return client


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture()
def runner(store: RecordingStore, notifier: RecordingNotifier) -> OperationRunner:
    return OperationRunner(store, notifier)


@pytest.fixture()
def session_store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture()
def cookies() -> CookieMirror:
    return CookieMirror()


@pytest.fixture()
def bridge(
    session_store: MemorySessionStore, cookies: CookieMirror, store: RecordingStore
) -> SessionBridge:
    return SessionBridge(session_store, cookies, store)


@pytest.fixture()
def policy_slice(
    runner: OperationRunner, fake_client: FakeDataAccess, settings: Settings
) -> PolicySlice:
    return PolicySlice(runner, fake_client, settings)


@pytest.fixture()
def auth_slice(
    runner: OperationRunner,
    fake_client: FakeDataAccess,
    bridge: SessionBridge,
    settings: Settings,
) -> AuthSlice:
    return AuthSlice(runner, fake_client, bridge, settings)


@pytest.fixture()
def dashboard_slice(runner: OperationRunner, fake_client: FakeDataAccess) -> DashboardSlice:
    return DashboardSlice(runner, fake_client)


@pytest.fixture()
def application(
    settings: Settings,
    fake_client: FakeDataAccess,
    session_store: MemorySessionStore,
    notifier: RecordingNotifier,
) -> Application:
    return Application(settings, fake_client, session_store, notifier)
