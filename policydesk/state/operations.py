"""
Three-phase async operations.

An operation dispatches ``<type>/pending`` before touching the data-access
service and then exactly one of ``<type>/fulfilled`` or ``<type>/rejected``.
Failures are captured here and returned as ``Err``; nothing is raised to the
caller.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import structlog
from pydantic import BaseModel
from policydesk.domain.schemas import FormValidationError, validate_form
from policydesk.libs.notifier import NotificationKind, Notifier
from policydesk.libs.supabase_client import AuthResponse, DataAccessError, QueryResponse

if TYPE_CHECKING:
    from policydesk.state.store import Store

logger = structlog.get_logger()

T = TypeVar("T")
FormT = TypeVar("FormT", bound=BaseModel)


class OperationStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class OperationPhase(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


class PhaseTransitionError(Exception):
    """Raised when an operation tries to leave the pending -> terminal order."""


@dataclass(frozen=True, slots=True)
class Action:
    type: str
    payload: Any = None
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    message: str

    @property
    def ok(self) -> bool:
        return False


Result = Ok[T] | Err


def phase_type(type_prefix: str, phase: OperationPhase) -> str:
    return f"{type_prefix}/{phase.value}"


def unwrap(response: QueryResponse | AuthResponse) -> Any:
    """Return the response data, raising ``DataAccessError`` for service errors."""
    if response.error is not None:
        raise DataAccessError(response.error)
    if isinstance(response, AuthResponse):
        return response
    return response.data


class OperationRun:
    """Phase bookkeeping for a single invocation."""

    _ALLOWED: dict[OperationPhase | None, set[OperationPhase]] = {
        None: {OperationPhase.PENDING},
        OperationPhase.PENDING: {OperationPhase.FULFILLED, OperationPhase.REJECTED},
        OperationPhase.FULFILLED: set(),
        OperationPhase.REJECTED: set(),
    }

    def __init__(self, type_prefix: str) -> None:
        self.type_prefix = type_prefix
        self.phase: OperationPhase | None = None

    def advance(self, phase: OperationPhase) -> str:
        if phase not in self._ALLOWED[self.phase]:
            current = self.phase.value if self.phase else "start"
            raise PhaseTransitionError(
                f"{self.type_prefix}: cannot move from {current} to {phase.value}"
            )
        self.phase = phase
        return phase_type(self.type_prefix, phase)


class OperationRunner:
    """Runs operation bodies against a store with the three-phase discipline."""

    def __init__(self, store: Store, notifier: Notifier) -> None:
        self.store = store
        self.notifier = notifier

    async def run(
        self,
        type_prefix: str,
        body: Callable[[], Awaitable[T]],
        *,
        arg: Any = None,
        success_message: str | None = None,
        error_message: str | None = None,
        notify: bool = False,
    ) -> Result[T]:
        """Execute ``body`` between a pending and a terminal action.

        With ``notify`` set (mutating operations) the outcome is also sent to
        the notifier; read operations stay silent.
        """
        run = OperationRun(type_prefix)
        self.store.dispatch(Action(run.advance(OperationPhase.PENDING), meta={"arg": arg}))

        try:
            value = await body()
        except (DataAccessError, FormValidationError) as exc:
            message = str(exc)
        except Exception as exc:
            message = error_message or f"{type_prefix} failed"
            await logger.aerror(
                "operation_crashed",
                operation=type_prefix,
                error=str(exc),
                exc_info=exc,
            )
        else:
            self.store.dispatch(
                Action(run.advance(OperationPhase.FULFILLED), payload=value, meta={"arg": arg})
            )
            await logger.adebug("operation_fulfilled", operation=type_prefix)
            if notify and success_message:
                self.notifier.notify(NotificationKind.SUCCESS, success_message)
            return Ok(value)

        self.store.dispatch(
            Action(run.advance(OperationPhase.REJECTED), payload=message, meta={"arg": arg})
        )
        await logger.awarning("operation_rejected", operation=type_prefix, error=message)
        if notify:
            self.notifier.notify(NotificationKind.ERROR, message)
        return Err(message)

    def reject(self, err: Err) -> Err:
        """Surface a refusal decided before the operation started."""
        self.notifier.notify(NotificationKind.ERROR, err.message)
        return err

    def validate(self, form_cls: type[FormT], data: dict[str, Any] | FormT) -> FormT | Err:
        """Validate form input before any network call; failures only notify."""
        try:
            return validate_form(form_cls, data)
        except FormValidationError as exc:
            self.notifier.notify(NotificationKind.ERROR, str(exc))
            return Err(str(exc))
