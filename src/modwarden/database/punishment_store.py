"""
Durable per-subject punishment history.

The full history is kept in memory and written out wholesale after every
append: each save replaces the contents of the ``punishment_history`` table
inside one transaction, so the file on disk always holds a complete history.

Startup tolerates a missing file (empty history) and a corrupt one (the file
is moved aside as ``<name>.corrupt-<timestamp>`` and an empty history is used).
Persistence failures after startup are logged; the in-memory history stays
authoritative until the next successful save.
"""

from __future__ import annotations

import datetime
from pathlib import Path
from typing import Dict, Iterable, List

import aiosqlite

from modwarden.database.db_connection import ConnectionManager
from modwarden.database.db_schema import SchemaManager
from modwarden.datatypes.discord_datatypes import UserID
from modwarden.datatypes.punishment_datatypes import PunishmentKind, PunishmentRecord
from modwarden.util.logger import get_logger

logger = get_logger("punishment_store")

_INSERT_SQL = """
    INSERT INTO punishment_history (subject_id, position, moderator_id, kind, reason, duration, timestamp)
    VALUES (?, ?, ?, ?, ?, ?, ?)
"""

_SELECT_SQL = """
    SELECT subject_id, position, moderator_id, kind, reason, duration, timestamp
    FROM punishment_history
    ORDER BY subject_id, position
"""


class PunishmentStore:
    """
    Append-only punishment history keyed by subject.

    Args:
        connection: Connection manager owning the SQLite file.
        path: Location of the history database.
    """

    def __init__(self, connection: ConnectionManager, path: Path) -> None:
        self._connection = connection
        self._path = Path(path)
        self._history: Dict[UserID, List[PunishmentRecord]] = {}
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        """
        Open the history file and read every record into memory.

        Never raises for a missing or unreadable file; both result in an
        empty history.
        """
        if not self._path.exists():
            logger.info("[PUNISHMENT STORE] No history file at %s, starting with an empty history", self._path)
            await self._open_fresh()
            self._history = {}
            self._loaded = True
            return

        try:
            await self._connection.open(self._path)
            await SchemaManager.initialize_schema(self._connection.connection)
            self._history = await self._read_all()
        except (aiosqlite.DatabaseError, ValueError, KeyError, TypeError) as exc:
            logger.error(
                "[PUNISHMENT STORE] History file %s is unreadable (%s); starting with an empty history",
                self._path,
                exc,
            )
            await self._connection.close()
            self._quarantine()
            await self._open_fresh()
            self._history = {}

        self._loaded = True
        total = sum(len(records) for records in self._history.values())
        logger.info(
            "[PUNISHMENT STORE] Loaded %d records for %d subjects from %s",
            total,
            len(self._history),
            self._path,
        )

    async def close(self) -> None:
        await self._connection.close()

    async def _open_fresh(self) -> None:
        await self._connection.open(self._path)
        await SchemaManager.initialize_schema(self._connection.connection)

    def _quarantine(self) -> None:
        stamp = datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        target = self._path.with_name(f"{self._path.name}.corrupt-{stamp}")
        try:
            self._path.rename(target)
            logger.warning("[PUNISHMENT STORE] Moved unreadable history file to %s", target)
        except OSError as exc:
            logger.error("[PUNISHMENT STORE] Could not move unreadable history file %s: %s", self._path, exc)
            return
        for suffix in ("-wal", "-shm"):
            self._path.with_name(self._path.name + suffix).unlink(missing_ok=True)

    async def _read_all(self) -> Dict[UserID, List[PunishmentRecord]]:
        history: Dict[UserID, List[PunishmentRecord]] = {}
        async with self._connection.read() as conn:
            async with conn.execute(_SELECT_SQL) as cursor:
                rows = await cursor.fetchall()
        for row in rows:
            record = PunishmentRecord.from_row(row)
            history.setdefault(record.subject_id, []).append(record)
        return history

    async def record_punishment(self, record: PunishmentRecord) -> None:
        """
        Append ``record`` to its subject's history and persist the whole history.

        The in-memory append always happens; a failed save is logged and the
        record is written with the next successful save.
        """
        self._history.setdefault(record.subject_id, []).append(record)
        logger.debug(
            "[PUNISHMENT STORE] Recorded %s on %s by %s",
            record.kind.value,
            record.subject_id,
            record.moderator_id,
        )
        await self.save()

    def get_history(self, user_id: UserID | int | str) -> List[PunishmentRecord]:
        """Return a copy of the subject's records, oldest first (empty when unknown)."""
        return list(self._history.get(UserID(user_id), ()))

    def latest_of_kind(self, user_id: UserID | int | str, kinds: Iterable[PunishmentKind]) -> PunishmentRecord | None:
        """Return the most recent record of the subject whose kind is in ``kinds``."""
        wanted = set(kinds)
        for record in reversed(self._history.get(UserID(user_id), ())):
            if record.kind in wanted:
                return record
        return None

    def _rows(self) -> List[tuple]:
        rows: List[tuple] = []
        for subject_id, records in self._history.items():
            for position, record in enumerate(records):
                row = record.to_row()
                rows.append((
                    str(subject_id),
                    position,
                    row["moderator_id"],
                    row["kind"],
                    row["reason"],
                    row["duration"],
                    row["timestamp"],
                ))
        return rows

    async def save(self) -> bool:
        """
        Replace the stored history with the in-memory one in a single transaction.

        Returns:
            bool: True when the write committed.
        """
        if not self._connection.is_open:
            logger.warning("[PUNISHMENT STORE] Save skipped, database connection is not open")
            return False

        rows = self._rows()
        try:
            async with self._connection.transaction() as conn:
                await conn.execute("DELETE FROM punishment_history")
                await conn.executemany(_INSERT_SQL, rows)
        except aiosqlite.Error as exc:
            logger.error("[PUNISHMENT STORE] Failed to persist punishment history: %s", exc)
            return False
        return True
