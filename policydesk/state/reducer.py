"""Per-slice reducer registry."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from policydesk.state.operations import Action, OperationPhase, OperationStatus, phase_type

S = TypeVar("S", bound=BaseModel)
Handler = Callable[[S, Action], S]


class SliceReducer(Generic[S]):
    """Maps action types to handlers for one slice; unknown actions pass through."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: dict[str, Handler] = {}

    def __call__(self, state: S, action: Action) -> S:
        handler = self._handlers.get(action.type)
        if handler is None:
            return state
        return handler(state, action)

    def on(self, action_type: str) -> Callable[[Handler], Handler]:
        def register(handler: Handler) -> Handler:
            self._handlers[action_type] = handler
            return handler

        return register

    def track(
        self,
        type_prefix: str,
        on_fulfilled: Callable[[S, Action], dict[str, Any]] | None = None,
    ) -> None:
        """Register the three phase handlers of an operation.

        ``on_fulfilled`` returns the slice fields to replace on success.
        """

        def pending(state: S, action: Action) -> S:
            return state.model_copy(update={"status": OperationStatus.LOADING, "error": None})

        def fulfilled(state: S, action: Action) -> S:
            update = on_fulfilled(state, action) if on_fulfilled else {}
            return state.model_copy(update={**update, "status": OperationStatus.SUCCESS})

        def rejected(state: S, action: Action) -> S:
            return state.model_copy(
                update={"status": OperationStatus.ERROR, "error": str(action.payload)}
            )

        self._handlers[phase_type(type_prefix, OperationPhase.PENDING)] = pending
        self._handlers[phase_type(type_prefix, OperationPhase.FULFILLED)] = fulfilled
        self._handlers[phase_type(type_prefix, OperationPhase.REJECTED)] = rejected
