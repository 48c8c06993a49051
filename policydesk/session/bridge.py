"""
Session bridge: ties the authenticated identity to the encrypted session store,
the cookie mirror and the state container.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import structlog
from policydesk.core.auth import Role, TokenError, decode_session_token
from policydesk.core.logging import bind_session_context
from policydesk.domain.models import User
from policydesk.libs.supabase_client import AuthSession
from policydesk.session.cookies import CookieMirror
from policydesk.session.store import SessionStore
from policydesk.state.store import Store

logger = structlog.get_logger()

USER_ID_KEY = "user_id"
EMAIL_KEY = "email"
ROLE_KEY = "user_role"
ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"


@dataclass(slots=True)
class SessionIdentity:
    user_id: str
    email: str | None
    role: Role
    access_token: str
    refresh_token: str


class SessionBridge:
    """Writes, restores and tears down the client-side session."""

    def __init__(self, session_store: SessionStore, cookies: CookieMirror, store: Store) -> None:
        self.session_store = session_store
        self.cookies = cookies
        self.store = store

    def establish(self, user: User, session: AuthSession) -> SessionIdentity:
        """Persist a freshly authenticated user.

        Raises:
            ValueError: If the profile carries no role.
        """
        role = user.role_name
        if role is None:
            raise ValueError(f"User {user.id} has no role")

        identity = SessionIdentity(
            user_id=user.id,
            email=user.email or session.user.get("email"),
            role=role,
            access_token=session.access_token,
            refresh_token=session.refresh_token,
        )
        values = {
            USER_ID_KEY: identity.user_id,
            EMAIL_KEY: identity.email,
            ROLE_KEY: identity.role.value,
            ACCESS_TOKEN_KEY: identity.access_token,
            REFRESH_TOKEN_KEY: identity.refresh_token,
        }
        for key, value in values.items():
            self.session_store.set(key, value)

        self.cookies.set("access_token", identity.access_token)
        self.cookies.set("refresh_token", identity.refresh_token)
        self.cookies.set("role", identity.role.value)

        bind_session_context(user_id=identity.user_id, role=identity.role.value)
        logger.info("session_established", user_id=identity.user_id, role=identity.role.value)
        return identity

    def restore(self) -> SessionIdentity | None:
        """Rebuild the identity from the session store, or None when it cannot be trusted."""
        user_id = self.session_store.get(USER_ID_KEY)
        access_token = self.session_store.get(ACCESS_TOKEN_KEY)
        if not user_id or not access_token:
            return None

        role = Role.parse(self.session_store.get(ROLE_KEY))
        if role is None:
            logger.warning("session_role_invalid", user_id=user_id)
            return None

        try:
            claims = decode_session_token(access_token)
        except TokenError:
            logger.warning("session_token_invalid", user_id=user_id)
            return None

        if str(claims.get("sub")) != str(user_id):
            logger.warning("session_subject_mismatch", user_id=user_id)
            return None

        identity = SessionIdentity(
            user_id=str(user_id),
            email=self.session_store.get(EMAIL_KEY),
            role=role,
            access_token=access_token,
            refresh_token=self.session_store.get(REFRESH_TOKEN_KEY) or "",
        )
        bind_session_context(user_id=identity.user_id, role=identity.role.value)
        logger.info("session_restored", user_id=identity.user_id, role=identity.role.value)
        return identity

    def logout(self) -> None:
        """Reset the state container, clear stored keys and expire cookies.

        Every step runs even when an earlier one fails; failures are logged.
        The store is reset first so its persisted snapshot is wiped by the
        clear that follows.
        """
        steps: list[tuple[str, Callable[[], object]]] = [
            ("state", self.store.reset),
            ("session_store", self.session_store.clear),
            ("cookies", self.cookies.clear),
        ]
        for name, step in steps:
            try:
                step()
            except Exception as exc:
                logger.error("logout_step_failed", step=name, error=str(exc), exc_info=True)

        bind_session_context(user_id=None, role=None)
        logger.info("logout_completed")
