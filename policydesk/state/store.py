"""
Normalized state container.

One ``Store`` is built by the application root and handed to every consumer.
Each slice owns a reducer; ``reset`` replaces the whole state with defaults in
a single assignment.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from pydantic import BaseModel, Field
from policydesk.state.operations import Action
from policydesk.state.slices.auth import AuthState, auth_reducer
from policydesk.state.slices.dashboard import DashboardState, dashboard_reducer
from policydesk.state.slices.policy import PolicyState, policy_reducer

logger = structlog.get_logger()

RESET_ACTION = "app/reset"

Listener = Callable[["AppState"], None]


class AppState(BaseModel):
    auth: AuthState = Field(default_factory=AuthState)
    dashboard: DashboardState = Field(default_factory=DashboardState)
    policy: PolicyState = Field(default_factory=PolicyState)


class Store:
    """Single state container with reducer-based updates."""

    def __init__(self, initial: AppState | None = None) -> None:
        self._state = initial or AppState()
        self._listeners: list[Listener] = []

    def get_state(self) -> AppState:
        return self._state

    def dispatch(self, action: Action) -> None:
        if action.type == RESET_ACTION:
            next_state = AppState()
        else:
            current = self._state
            next_state = AppState(
                auth=auth_reducer(current.auth, action),
                dashboard=dashboard_reducer(current.dashboard, action),
                policy=policy_reducer(current.policy, action),
            )
        self._state = next_state
        for listener in list(self._listeners):
            listener(next_state)

    def reset(self) -> None:
        """Reinitialize every slice to its empty default in one step."""
        self.dispatch(Action(RESET_ACTION))
        logger.info("store_reset")

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

