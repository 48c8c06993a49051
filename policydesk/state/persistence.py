"""
Store snapshots in the session store.

``save`` serializes the whole ``AppState`` under a versioned key; ``load``
rebuilds it and falls back to defaults for anything it cannot trust.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError
from policydesk.session.store import SessionStore, SessionStoreError
from policydesk.state.operations import OperationStatus
from policydesk.state.store import AppState

logger = structlog.get_logger()

PERSIST_KEY = "persist:root"
PERSIST_VERSION = 1

SLICES = ("auth", "dashboard", "policy")


class StatePersistor:
    """Explicit save/load pair the application root subscribes to the store."""

    def __init__(
        self,
        session_store: SessionStore,
        *,
        key: str = PERSIST_KEY,
        version: int = PERSIST_VERSION,
    ) -> None:
        self.session_store = session_store
        self.key = key
        self.version = version

    def save(self, state: AppState) -> None:
        """Write a snapshot; a failed write is logged and the store keeps running."""
        try:
            self.session_store.set(
                self.key,
                {"version": self.version, "state": state.model_dump(mode="json")},
            )
        except SessionStoreError as exc:
            logger.warning("persisted_state_write_failed", key=self.key, error=str(exc))

    def load(self) -> AppState:
        blob = self.session_store.get(self.key)
        if blob is None:
            return AppState()

        if not isinstance(blob, dict) or blob.get("version") != self.version:
            logger.warning(
                "persisted_state_version_mismatch",
                key=self.key,
                expected=self.version,
                found=blob.get("version") if isinstance(blob, dict) else None,
            )
            return AppState()

        raw = blob.get("state")
        if not isinstance(raw, dict):
            return AppState()

        try:
            state = AppState.model_validate(_settle_transients(raw))
        except ValidationError as exc:
            logger.warning("persisted_state_invalid", key=self.key, errors=exc.error_count())
            return AppState()

        logger.info("state_rehydrated", key=self.key)
        return state


def _settle_transients(raw: dict[str, Any]) -> dict[str, Any]:
    """Slices never come back in ``loading``: an interrupted request is idle again."""
    settled = dict(raw)
    for name in SLICES:
        slice_state = settled.get(name)
        if not isinstance(slice_state, dict):
            continue
        if slice_state.get("status") == OperationStatus.LOADING.value:
            settled[name] = {**slice_state, "status": OperationStatus.IDLE.value, "error": None}
    return settled
