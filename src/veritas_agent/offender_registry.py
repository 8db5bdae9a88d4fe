"""
Known-offender registry.

Keyed by creator (authority) address.  A record is created the first time an
investigation of one of the creator's tokens ends in the most severe verdict,
and its detection count grows each time another of their tokens is caught.
The first-flag fields (token, verdict, reason, timestamp) never change.

Two backends:

- ``SQLiteOffenderRegistry`` - persistent, aiosqlite with WAL
- ``InMemoryOffenderRegistry`` - process-local, for tests and throwaway runs
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

from .models import KnownOffenderRecord
from .utils import parse_datetime

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class OffenderRegistry(Protocol):
    async def lookup(self, creator_address: str) -> Optional[KnownOffenderRecord]: ...

    async def record_detection(
        self,
        creator_address: str,
        *,
        token_address: str,
        token_name: str,
        verdict: str,
        reason: str,
    ) -> KnownOffenderRecord: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

class InMemoryOffenderRegistry:
    """Dict-backed registry.  The lock keeps read-modify-write atomic across
    overlapping investigations."""

    def __init__(self, *, now: Callable[[], datetime] = _utcnow) -> None:
        self._records: dict[str, KnownOffenderRecord] = {}
        self._lock = asyncio.Lock()
        self._now = now

    async def lookup(self, creator_address: str) -> Optional[KnownOffenderRecord]:
        return self._records.get(creator_address)

    async def record_detection(
        self,
        creator_address: str,
        *,
        token_address: str,
        token_name: str,
        verdict: str,
        reason: str,
    ) -> KnownOffenderRecord:
        async with self._lock:
            now = self._now()
            existing = self._records.get(creator_address)
            if existing is None:
                record = KnownOffenderRecord(
                    creator_address=creator_address,
                    first_flagged_at=now,
                    last_flagged_at=now,
                    detection_count=1,
                    token_address=token_address,
                    token_name=token_name,
                    verdict=verdict,
                    reason=reason,
                    last_token_address=token_address,
                )
            elif token_address == existing.last_token_address:
                return existing
            else:
                record = existing.model_copy(update={
                    "detection_count": existing.detection_count + 1,
                    "last_flagged_at": now,
                    "last_token_address": token_address,
                })
            self._records[creator_address] = record
            return record

    async def seed(self, record: KnownOffenderRecord) -> None:
        """Insert a record verbatim (imports, fixtures)."""
        async with self._lock:
            self._records[record.creator_address] = record

    async def close(self) -> None:
        return None

    def __len__(self) -> int:
        return len(self._records)


# ---------------------------------------------------------------------------
# SQLite backend
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS known_offenders (
    creator_address    TEXT PRIMARY KEY,
    first_flagged_at   TEXT NOT NULL,
    last_flagged_at    TEXT NOT NULL,
    detection_count    INTEGER NOT NULL DEFAULT 1,
    token_address      TEXT NOT NULL DEFAULT '',
    token_name         TEXT NOT NULL DEFAULT '',
    verdict            TEXT NOT NULL DEFAULT 'Danger',
    reason             TEXT NOT NULL DEFAULT '',
    last_token_address TEXT NOT NULL DEFAULT ''
)
"""

# Same token seen again does not count as a new detection
_UPSERT = """
INSERT INTO known_offenders (
    creator_address, first_flagged_at, last_flagged_at, detection_count,
    token_address, token_name, verdict, reason, last_token_address
) VALUES (?, ?, ?, 1, ?, ?, ?, ?, ?)
ON CONFLICT(creator_address) DO UPDATE SET
    detection_count    = detection_count + 1,
    last_flagged_at    = excluded.last_flagged_at,
    last_token_address = excluded.last_token_address
WHERE known_offenders.last_token_address != excluded.last_token_address
"""

_COLUMNS = (
    "creator_address, first_flagged_at, last_flagged_at, detection_count, "
    "token_address, token_name, verdict, reason, last_token_address"
)


class SQLiteOffenderRegistry:
    """Async SQLite-backed registry.

    Uses one persistent connection, created lazily on first access.
    """

    def __init__(self, db_path: str = "data/offenders.db", *, now: Callable[[], datetime] = _utcnow) -> None:
        self._db_path = db_path
        self._conn: Any = None  # aiosqlite.Connection
        self._lock = asyncio.Lock()
        self._conn_lock = asyncio.Lock()
        self._now = now

    async def _get_conn(self) -> Any:
        import aiosqlite

        async with self._conn_lock:
            if self._conn is None:
                if self._db_path != ":memory:":
                    os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)
                conn = await aiosqlite.connect(self._db_path)
                await conn.execute("PRAGMA journal_mode=WAL")
                await conn.execute(_SCHEMA)
                await conn.commit()
                self._conn = conn
        return self._conn

    async def lookup(self, creator_address: str) -> Optional[KnownOffenderRecord]:
        db = await self._get_conn()
        cursor = await db.execute(
            f"SELECT {_COLUMNS} FROM known_offenders WHERE creator_address = ?",
            (creator_address,),
        )
        row = await cursor.fetchone()
        await cursor.close()
        return _row_to_record(row) if row else None

    async def record_detection(
        self,
        creator_address: str,
        *,
        token_address: str,
        token_name: str,
        verdict: str,
        reason: str,
    ) -> KnownOffenderRecord:
        now = self._now().isoformat()
        async with self._lock:
            db = await self._get_conn()
            await db.execute(
                _UPSERT,
                (creator_address, now, now, token_address, token_name,
                 verdict, reason, token_address),
            )
            await db.commit()
            record = await self.lookup(creator_address)
        if record is None:  # pragma: no cover - the row was just written
            raise RuntimeError(f"offender row for {creator_address} vanished")
        return record

    async def seed(self, record: KnownOffenderRecord) -> None:
        """Insert or replace a record verbatim."""
        async with self._lock:
            db = await self._get_conn()
            await db.execute(
                f"INSERT OR REPLACE INTO known_offenders ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.creator_address,
                    record.first_flagged_at.isoformat(),
                    record.last_flagged_at.isoformat(),
                    record.detection_count,
                    record.token_address,
                    record.token_name,
                    record.verdict,
                    record.reason,
                    record.last_token_address,
                ),
            )
            await db.commit()

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None


def _row_to_record(row: tuple) -> KnownOffenderRecord:
    (creator, first, last, count, token, name, verdict, reason, last_token) = row
    return KnownOffenderRecord(
        creator_address=creator,
        first_flagged_at=parse_datetime(first) or _utcnow(),
        last_flagged_at=parse_datetime(last) or _utcnow(),
        detection_count=count,
        token_address=token,
        token_name=name,
        verdict=verdict,
        reason=reason,
        last_token_address=last_token,
    )


def build_registry(backend: str, sqlite_path: str) -> OffenderRegistry:
    if backend == "memory":
        logger.warning("REGISTRY_BACKEND=memory – known offenders are forgotten on restart")
        return InMemoryOffenderRegistry()
    return SQLiteOffenderRegistry(sqlite_path)
