"""
Conversion of case records to and from JSON-compatible dictionaries.

Enums are stored by value, datetimes as ISO-8601 strings, durations as
seconds and sets as sorted lists.
"""

from __future__ import annotations

from dataclasses import fields
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Type, TypeVar

from staffdesk.datatypes.case_datatypes import (
    CaseKind,
    Infraction,
    InfractionStatus,
    InfractionType,
    Office,
    OfficeDisposition,
    OfficeOutcome,
    OfficeStatus,
    Ticket,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from staffdesk.datatypes.rank_datatypes import RankCategory

R = TypeVar("R")


def parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def encode_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, list):
        return [encode_value(item) for item in value]
    if isinstance(value, dict):
        return {str(k): encode_value(v) for k, v in value.items()}
    return value


_DECODERS: Dict[type, Dict[str, Callable[[Any], Any]]] = {
    Ticket: {
        "category": TicketCategory,
        "status": TicketStatus,
        "priority": TicketPriority,
        "created_at": parse_datetime,
        "last_activity": parse_datetime,
        "closed_at": parse_datetime,
        "participants": set,
        "viewing_category": RankCategory,
    },
    Office: {
        "status": OfficeStatus,
        "outcome": OfficeOutcome,
        "disposition": OfficeDisposition,
        "created_at": parse_datetime,
        "closed_at": parse_datetime,
        "participants": set,
        "evidence": list,
    },
    Infraction: {
        "type": InfractionType,
        "status": InfractionStatus,
        "created_at": parse_datetime,
        "approved_at": parse_datetime,
        "denied_at": parse_datetime,
        "completed_at": parse_datetime,
        "previous_roles": frozenset,
        "duration": lambda seconds: timedelta(seconds=seconds),
        "expiry": parse_datetime,
        "evidence": list,
    },
}

CASE_TYPES: Dict[CaseKind, type] = {
    CaseKind.TICKET: Ticket,
    CaseKind.OFFICE: Office,
    CaseKind.INFRACTION: Infraction,
}


def record_to_dict(record: Any) -> Dict[str, Any]:
    return {f.name: encode_value(getattr(record, f.name)) for f in fields(record)}


def record_from_dict(cls: Type[R], data: Dict[str, Any]) -> R:
    """Rebuild a record; keys unknown to ``cls`` are ignored, ``None`` is kept as is."""
    decoders = _DECODERS.get(cls, {})
    kwargs: Dict[str, Any] = {}
    for f in fields(cls):  # type: ignore[arg-type]
        if f.name not in data:
            continue
        value = data[f.name]
        decode = decoders.get(f.name)
        kwargs[f.name] = decode(value) if decode is not None and value is not None else value
    return cls(**kwargs)


def case_from_dict(kind: CaseKind, data: Dict[str, Any]) -> Any:
    return record_from_dict(CASE_TYPES[kind], data)


def check_kind(kind: CaseKind, record: Any) -> None:
    expected = CASE_TYPES[kind]
    if not isinstance(record, expected):
        raise TypeError(f"Expected {expected.__name__} for {kind.value}, got {type(record).__name__}")
