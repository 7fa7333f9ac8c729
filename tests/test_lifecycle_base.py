import pytest

from staffdesk.datatypes.case_datatypes import OfficeOutcome, TicketPriority
from staffdesk.errors import InvalidArgument
from staffdesk.lifecycle.lifecycle_base import coerce_enum


def test_coerce_enum_accepts_members_and_values():
    assert coerce_enum(TicketPriority, TicketPriority.LOW, "priority") is TicketPriority.LOW
    assert coerce_enum(TicketPriority, "high", "priority") is TicketPriority.HIGH


def test_coerce_enum_lists_allowed_values():
    with pytest.raises(InvalidArgument) as excinfo:
        coerce_enum(OfficeOutcome, "banished", "outcome")

    message = excinfo.value.message
    assert "banished" in message
    assert all(outcome.value in message for outcome in OfficeOutcome)


def test_coerce_enum_rejects_wrong_type():
    with pytest.raises(InvalidArgument):
        coerce_enum(TicketPriority, None, "priority")
