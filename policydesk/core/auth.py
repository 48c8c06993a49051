from __future__ import annotations

import re
from enum import Enum

import jwt
from policydesk.core.config import get_settings


class TokenError(Exception):
    """Raised when a session token cannot be decoded or validated."""


class Role(str, Enum):
    ADMIN = "admin"
    AGENT = "agent"
    POLICY_HOLDER = "policy_holder"

    @classmethod
    def contains(cls, value: str) -> bool:
        return value in {role.value for role in cls}

    @classmethod
    def parse(cls, value: str | None) -> Role | None:
        """Return the matching role, or None for anything outside the closed set."""
        if value is None or not cls.contains(value):
            return None
        return cls(value)

    @property
    def label(self) -> str:
        return to_title_case(self.value)


# Views each role may open; consumed by the request-time gate.
ROLE_ROUTES: dict[Role, tuple[str, ...]] = {
    Role.ADMIN: ("/", "/policies", "/users"),
    Role.AGENT: ("/", "/policies"),
    Role.POLICY_HOLDER: ("/", "/policies"),
}

PUBLIC_PATHS: tuple[str, ...] = ("/login", "/signup", "/forgot-password")


def can_access(role: Role, path: str) -> bool:
    """Whether a role may open a view path."""
    if any(path.startswith(public) for public in PUBLIC_PATHS):
        return True
    return path in ROLE_ROUTES[role]


def to_title_case(value: str) -> str:
    """Turn ``policy_holder`` style identifiers into ``Policy Holder``."""
    words = re.sub(r"[_-]+", " ", value.lower()).split(" ")
    return " ".join(word[:1].upper() + word[1:] for word in words)


def decode_session_token(token: str) -> dict:
    """Decode an access token issued by the auth service.

    The signature is only checked when ``SUPABASE_JWT_SECRET`` is configured;
    expiry and the subject claim are always enforced.
    """
    settings = get_settings()
    options = {"require": ["sub", "exp"], "verify_exp": True, "verify_aud": False}

    try:
        if settings.supabase_jwt_secret:
            payload = jwt.decode(
                token,
                settings.supabase_jwt_secret,
                algorithms=["HS256"],
                options=options,
            )
        else:
            payload = jwt.decode(token, options={"verify_signature": False, **options})
    except jwt.PyJWTError as exc:  # pragma: no cover - third-party raises numerous subclasses
        raise TokenError("Invalid token") from exc

    return payload

