"""
SQLite implementation of :class:`~staffdesk.database.case_store.CaseStore`.

All writes go through :meth:`ConnectionManager.transaction`, so the store has
a single serialized writer. Every read decodes a fresh record, which gives
callers the independent copies the protocol requires.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import List

from staffdesk.database.case_serialization import (
    case_from_dict,
    check_kind,
    encode_value,
    parse_datetime,
    record_to_dict,
)
from staffdesk.database.case_store import CasePredicate, CaseRecord
from staffdesk.database.db_connection import ConnectionManager, db_connection
from staffdesk.database.db_schema import SchemaManager
from staffdesk.datatypes.case_datatypes import (
    AuditAction,
    AuditLogEntry,
    CaseKind,
    IntentAction,
    IntentStatus,
    Promotion,
    ScheduledIntent,
)
from staffdesk.util.logger import get_logger

logger = get_logger("sqlite_case_store")

ID_PREFIXES = {
    "ticket": "TICKET",
    "office": "OFFICE",
    "infraction": "INF",
    "intent": "INTENT",
    "promotion": "PROMO",
    "draft": "DRAFT",
}


def _subject_of(record: CaseRecord) -> str | None:
    for attr in ("creator_id", "target_id", "user_id"):
        value = getattr(record, attr, None)
        if value is not None:
            return str(value)
    return None


def _unix(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


class SqliteCaseStore:
    """Case store backed by the shared aiosqlite connection.

    Args:
        connection: Connection manager to use; defaults to the process-wide
            :data:`db_connection` singleton.
    """

    def __init__(self, connection: ConnectionManager = db_connection) -> None:
        self._db = connection

    async def initialize(self) -> None:
        """Create the schema; the connection must already be open."""
        async with self._db.transaction() as conn:
            await SchemaManager.initialize_schema(conn)

    # ------------------------------------------------------------------
    # Cases
    # ------------------------------------------------------------------

    async def get_case(self, kind: CaseKind, case_id: str) -> CaseRecord | None:
        async with self._db.read() as conn:
            cursor = await conn.execute(
                "SELECT data FROM cases WHERE kind = ? AND id = ?",
                (kind.value, str(case_id)),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return case_from_dict(kind, json.loads(row["data"]))

    async def upsert_case(self, kind: CaseKind, record: CaseRecord) -> None:
        check_kind(kind, record)
        payload = json.dumps(record_to_dict(record))
        async with self._db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO cases (kind, id, status, subject_id, data)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(kind, id) DO UPDATE SET
                    status     = excluded.status,
                    subject_id = excluded.subject_id,
                    data       = excluded.data,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (kind.value, record.id, record.status.value, _subject_of(record), payload),
            )

    async def query_cases(
        self,
        kind: CaseKind,
        predicate: CasePredicate | None = None,
        status: str | None = None,
    ) -> List[CaseRecord]:
        query = "SELECT data FROM cases WHERE kind = ?"
        params: list = [kind.value]
        if status is not None:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY rowid"

        async with self._db.read() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()

        records = [case_from_dict(kind, json.loads(row["data"])) for row in rows]
        if predicate is not None:
            records = [record for record in records if predicate(record)]
        return records

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    async def append_audit(self, entry: AuditLogEntry) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                "INSERT INTO audit_log (action_type, user_id, target_id, details, timestamp) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    entry.action_type.value,
                    str(entry.user_id),
                    entry.target_id,
                    json.dumps(encode_value(entry.details)),
                    entry.timestamp.isoformat(),
                ),
            )

    async def list_audit(self, target_id: str | None = None) -> List[AuditLogEntry]:
        query = "SELECT action_type, user_id, target_id, details, timestamp FROM audit_log"
        params: tuple = ()
        if target_id is not None:
            query += " WHERE target_id = ?"
            params = (str(target_id),)
        query += " ORDER BY seq"

        async with self._db.read() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()

        return [
            AuditLogEntry(
                action_type=AuditAction(row["action_type"]),
                user_id=row["user_id"],
                target_id=row["target_id"],
                details=json.loads(row["details"]),
                timestamp=parse_datetime(row["timestamp"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Ids
    # ------------------------------------------------------------------

    async def allocate_id(self, kind: CaseKind | str) -> str:
        key = kind.value if isinstance(kind, CaseKind) else str(kind)
        async with self._db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO id_counters (kind, value) VALUES (?, 1)
                ON CONFLICT(kind) DO UPDATE SET value = value + 1
                """,
                (key,),
            )
            cursor = await conn.execute("SELECT value FROM id_counters WHERE kind = ?", (key,))
            row = await cursor.fetchone()
        prefix = ID_PREFIXES.get(key, key.upper())
        return f"{prefix}-{row['value']:04d}"

    # ------------------------------------------------------------------
    # Scheduled intents
    # ------------------------------------------------------------------

    async def upsert_intent(self, intent: ScheduledIntent) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO scheduled_intents
                    (id, action, channel_ref, case_kind, case_id, due_at, status, attempts)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    due_at   = excluded.due_at,
                    status   = excluded.status,
                    attempts = excluded.attempts
                """,
                (
                    intent.id,
                    intent.action.value,
                    intent.channel_ref,
                    intent.case_kind.value,
                    intent.case_id,
                    _unix(intent.due_at),
                    intent.status.value,
                    intent.attempts,
                ),
            )

    async def due_intents(self, now: datetime) -> List[ScheduledIntent]:
        async with self._db.read() as conn:
            cursor = await conn.execute(
                "SELECT id, action, channel_ref, case_kind, case_id, due_at, status, attempts "
                "FROM scheduled_intents WHERE status = ? AND due_at <= ? ORDER BY due_at, id",
                (IntentStatus.PENDING.value, _unix(now)),
            )
            rows = await cursor.fetchall()

        return [
            ScheduledIntent(
                id=row["id"],
                action=IntentAction(row["action"]),
                channel_ref=row["channel_ref"],
                case_kind=CaseKind(row["case_kind"]),
                case_id=row["case_id"],
                due_at=datetime.fromtimestamp(row["due_at"], tz=timezone.utc),
                status=IntentStatus(row["status"]),
                attempts=row["attempts"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Promotions
    # ------------------------------------------------------------------

    async def insert_promotion(self, record: Promotion) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                "INSERT INTO promotions (id, staff_id, old_rank, new_rank, reason, promoter_id, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.staff_id,
                    record.old_rank,
                    record.new_rank,
                    record.reason,
                    record.promoter_id,
                    record.timestamp.isoformat(),
                ),
            )

    async def list_promotions(self, staff_id: str) -> List[Promotion]:
        async with self._db.read() as conn:
            cursor = await conn.execute(
                "SELECT id, staff_id, old_rank, new_rank, reason, promoter_id, timestamp "
                "FROM promotions WHERE staff_id = ? ORDER BY timestamp, id",
                (str(staff_id),),
            )
            rows = await cursor.fetchall()

        return [
            Promotion(
                id=row["id"],
                staff_id=row["staff_id"],
                old_rank=row["old_rank"],
                new_rank=row["new_rank"],
                reason=row["reason"],
                promoter_id=row["promoter_id"],
                timestamp=parse_datetime(row["timestamp"]),
            )
            for row in rows
        ]
