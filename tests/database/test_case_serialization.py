from datetime import datetime, timedelta, timezone

import pytest

from staffdesk.database.case_serialization import (
    case_from_dict,
    check_kind,
    encode_value,
    parse_datetime,
    record_to_dict,
)
from staffdesk.datatypes.case_datatypes import (
    CaseKind,
    Infraction,
    InfractionType,
    Ticket,
    TicketCategory,
    TicketPriority,
)

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_encode_value():
    assert encode_value(TicketPriority.HIGH) == "high"
    assert encode_value(NOW) == "2024-01-01T00:00:00+00:00"
    assert encode_value(timedelta(hours=1)) == 3600.0
    assert encode_value({"b", "a"}) == ["a", "b"]
    assert encode_value({1: [TicketPriority.LOW]}) == {"1": ["low"]}


def test_naive_datetimes_are_read_as_utc():
    assert parse_datetime("2024-01-01T00:00:00") == NOW


def test_ticket_dict_round_trip():
    ticket = Ticket(
        id="TICKET-0001",
        channel_ref="chan",
        creator_id="u",
        category=TicketCategory.STAFF_REPORT,
        created_at=NOW,
        last_activity=NOW,
        participants={"a", "b"},
    )

    data = record_to_dict(ticket)
    restored = case_from_dict(CaseKind.TICKET, data)

    assert data["participants"] == ["a", "b"]
    assert data["closed_at"] is None
    assert restored == ticket


def test_infraction_decodes_duration_and_snapshot():
    data = {
        "id": "INF-0001",
        "user_id": "t",
        "issuer_id": "ia",
        "type": "suspension_24h",
        "reason": "reason",
        "created_at": NOW.isoformat(),
        "previous_roles": ["moderator", "staff_team"],
        "duration": 86400,
        "unknown_column": "ignored",
    }

    infraction = case_from_dict(CaseKind.INFRACTION, data)

    assert infraction.type is InfractionType.SUSPENSION_24H
    assert infraction.previous_roles == frozenset({"moderator", "staff_team"})
    assert infraction.duration == timedelta(hours=24)
    assert infraction.expiry is None


def test_check_kind():
    ticket = Ticket("T", "c", "u", TicketCategory.GENERAL, NOW, NOW)

    check_kind(CaseKind.TICKET, ticket)
    with pytest.raises(TypeError):
        check_kind(CaseKind.INFRACTION, ticket)
    assert not isinstance(ticket, Infraction)
