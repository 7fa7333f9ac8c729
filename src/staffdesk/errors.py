"""
Error taxonomy for case operations and the structured result they surface.

Lifecycle internals raise :class:`CaseError` subclasses. Every public
operation is wrapped with :func:`case_operation`, which turns those errors into
an :class:`OperationResult` so callers (command handlers, sweeps) never see a
raw exception for an expected failure.
"""

from __future__ import annotations

import asyncio
import functools
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from staffdesk.util.logger import get_logger

logger = get_logger("errors")

T = TypeVar("T")


class CaseError(Exception):
    """Base class for every expected failure of a case operation."""

    code = "case_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()


class PermissionDenied(CaseError):
    """Rank or category check failed."""

    code = "permission_denied"


class TargetNotStaff(PermissionDenied):
    """The target member does not hold a staff rank."""

    code = "target_not_staff"


class NotFound(CaseError):
    """Case id could not be resolved."""

    code = "not_found"


class InvalidStateTransition(CaseError):
    """Operation attempted on a case in an incompatible status."""

    code = "invalid_state_transition"


class AlreadyClaimed(InvalidStateTransition):
    """Ticket is already claimed by another staff member."""

    code = "already_claimed"

    def __init__(self, claimed_by: str) -> None:
        super().__init__(f"Ticket is already claimed by {claimed_by}.")
        self.claimed_by = claimed_by


class AlreadyClaimedByYou(InvalidStateTransition):
    """You have already claimed this ticket."""

    code = "already_claimed_by_you"


class AlreadyClosed(InvalidStateTransition):
    """Case is already closed."""

    code = "already_closed"


class DuplicateActiveTicket(CaseError):
    """Creator already has an open ticket."""

    code = "duplicate_active_ticket"


class InsufficientRankToInvestigate(CaseError):
    """Cannot open an office against a higher ranked member."""

    code = "insufficient_rank_to_investigate"


class CannotRemoveCreator(CaseError):
    """The ticket creator cannot be removed from the ticket."""

    code = "cannot_remove_creator"


class InvalidArgument(CaseError):
    """An argument is outside the accepted values."""

    code = "invalid_argument"


class CollaboratorFailure(CaseError):
    """A required collaborator call failed or timed out."""

    code = "collaborator_failure"


class PartialFailure(CaseError):
    """Some sub-operations of a batch failed."""

    code = "partial_failure"

    def __init__(self, succeeded: int, failed: int, report: Any = None) -> None:
        super().__init__(f"{succeeded} sub-operation(s) succeeded, {failed} failed.")
        self.succeeded = succeeded
        self.failed = failed
        self.report = report


@dataclass(slots=True)
class OperationResult(Generic[T]):
    """Outcome of a case operation.

    Attributes:
        ok: True when the operation completed.
        value: The operation's return value (usually the updated record).
        error: The :class:`CaseError` that stopped the operation, if any.
    """
    ok: bool
    value: T | None = None
    error: CaseError | None = None

    @classmethod
    def success(cls, value: T | None = None) -> "OperationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: CaseError) -> "OperationResult[T]":
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        """Return the value, re-raising the error of a failed result."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def case_operation(name: str) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[OperationResult[T]]]]:
    """Decorator that surfaces the errors of an async operation as a result.

    ``CaseError`` becomes a failed result and is logged at INFO. Any other
    exception is logged with its traceback and reported as a
    :class:`CollaboratorFailure`. ``asyncio.CancelledError`` still propagates.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[OperationResult[T]]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> OperationResult[T]:
            try:
                return OperationResult.success(await func(*args, **kwargs))
            except asyncio.CancelledError:
                raise
            except CaseError as exc:
                logger.info("[%s] rejected: %s (%s)", name, exc.message, exc.code)
                return OperationResult.failure(exc)
            except Exception as exc:
                logger.exception("[%s] unexpected failure: %s", name, exc)
                return OperationResult.failure(CollaboratorFailure(f"{name} failed: {exc}"))

        return wrapper

    return decorator
