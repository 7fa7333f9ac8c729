"""Tests for the case error taxonomy and the operation result wrapper."""

import asyncio

import pytest

from staffdesk.errors import (
    AlreadyClaimed,
    CaseError,
    CollaboratorFailure,
    InvalidStateTransition,
    NotFound,
    OperationResult,
    PartialFailure,
    PermissionDenied,
    TargetNotStaff,
    case_operation,
)


def test_default_message_comes_from_docstring():
    error = NotFound()

    assert error.message == "Case id could not be resolved."
    assert error.code == "not_found"


def test_hierarchy():
    assert issubclass(TargetNotStaff, PermissionDenied)
    assert issubclass(AlreadyClaimed, InvalidStateTransition)
    assert issubclass(CollaboratorFailure, CaseError)


def test_already_claimed_carries_claimer():
    error = AlreadyClaimed("mod")

    assert error.claimed_by == "mod"
    assert "mod" in error.message


def test_partial_failure_counts():
    error = PartialFailure(3, 1, report={"x": 1})

    assert (error.succeeded, error.failed, error.report) == (3, 1, {"x": 1})
    assert "3 sub-operation(s) succeeded, 1 failed" in str(error)


def test_unwrap():
    assert OperationResult.success(5).unwrap() == 5
    with pytest.raises(NotFound):
        OperationResult.failure(NotFound()).unwrap()


@pytest.mark.asyncio
async def test_case_operation_wraps_success_and_case_errors():
    @case_operation("TEST")
    async def succeed(value):
        return value

    @case_operation("TEST")
    async def reject():
        raise PermissionDenied("nope")

    ok = await succeed(7)
    denied = await reject()

    assert ok.ok and ok.value == 7 and ok.error is None
    assert not denied.ok
    assert isinstance(denied.error, PermissionDenied)
    assert denied.error.message == "nope"


@pytest.mark.asyncio
async def test_case_operation_maps_unexpected_errors():
    @case_operation("TEST")
    async def explode():
        raise KeyError("missing")

    result = await explode()

    assert isinstance(result.error, CollaboratorFailure)
    assert "TEST failed" in result.error.message


@pytest.mark.asyncio
async def test_case_operation_propagates_cancellation():
    @case_operation("TEST")
    async def cancelled():
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await cancelled()
