"""Cookie mirror for request-time role gating."""

from __future__ import annotations

from urllib.parse import quote

MIRRORED_COOKIES: tuple[str, ...] = ("access_token", "refresh_token", "role")


class CookieMirror:
    """Keeps the mirrored cookie values and the ``Set-Cookie`` lines that carry them."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self.set_cookie_headers: list[str] = []

    def get(self, name: str) -> str | None:
        return self._values.get(name)

    def set(self, name: str, value: str) -> str:
        self._values[name] = value
        header = f"{name}={quote(value, safe='')}; Path=/; SameSite=Strict"
        self.set_cookie_headers.append(header)
        return header

    def expire(self, name: str) -> str:
        self._values.pop(name, None)
        header = f"{name}=; Max-Age=0; Path=/; SameSite=Strict"
        self.set_cookie_headers.append(header)
        return header

    def clear(self) -> list[str]:
        return [self.expire(name) for name in MIRRORED_COOKIES]

    def as_dict(self) -> dict[str, str]:
        return dict(self._values)
