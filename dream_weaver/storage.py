from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable

from .errors import PersistenceFailure
from .models import DreamEntry

JOURNAL_SLOT_KEY = "dreamJournal"

logger = logging.getLogger(__name__)


class JournalStore:
    """Durable slot holding the serialized dream journal.

    ``load`` and ``save`` never raise: journal durability is best-effort and a
    storage problem must not interrupt the workflow.
    """

    def __init__(self, db_file: Path, slot_key: str = JOURNAL_SLOT_KEY):
        self._db_file = Path(db_file)
        self._slot_key = slot_key
        self._lock = threading.Lock()
        try:
            self._init_schema()
        except PersistenceFailure as exc:
            logger.error("Journal storage unavailable: %s", exc)

    def _connect(self) -> sqlite3.Connection:
        self._db_file.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._db_file, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    @contextmanager
    def _connection(self):
        try:
            conn = self._connect()
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceFailure(f"Cannot open {self._db_file}: {exc}") from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceFailure(str(exc)) from exc
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self._connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS storage_slots (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )
            conn.commit()

    def read_slot(self) -> str | None:
        with self._lock, self._connection() as conn:
            row = conn.execute(
                "SELECT value FROM storage_slots WHERE key = ?",
                (self._slot_key,),
            ).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def write_slot(self, value: str) -> None:
        now = datetime.now().astimezone().isoformat()
        with self._lock, self._connection() as conn:
            conn.execute(
                """
                INSERT INTO storage_slots(key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (self._slot_key, value, now),
            )
            conn.commit()

    def load(self) -> list[DreamEntry]:
        try:
            raw = self.read_slot()
        except PersistenceFailure as exc:
            logger.error("Failed to load dream journal: %s", exc)
            return []
        if raw is None:
            return []
        return _parse_journal(raw)

    def save(self, entries: Iterable[DreamEntry]) -> bool:
        payload = json.dumps([entry.to_record() for entry in entries], ensure_ascii=False)
        try:
            self.write_slot(payload)
        except PersistenceFailure as exc:
            logger.error("Failed to save dream journal: %s", exc)
            return False
        return True


def _parse_journal(raw: str) -> list[DreamEntry]:
    try:
        records = json.loads(raw)
    except (ValueError, RecursionError) as exc:
        logger.error("Stored dream journal is not valid JSON: %s", exc)
        return []
    if not isinstance(records, list):
        logger.error("Stored dream journal is not a list; ignoring it.")
        return []

    entries: list[DreamEntry] = []
    seen_ids: set[str] = set()
    for index, record in enumerate(records):
        try:
            entry = DreamEntry.from_record(record)
        except (ValueError, OverflowError, RecursionError) as exc:
            logger.warning("Skipping malformed dream record #%d: %s", index, exc)
            continue
        if entry.id in seen_ids:
            logger.warning("Skipping duplicate dream id %s", entry.id)
            continue
        seen_ids.add(entry.id)
        entries.append(entry)
    return entries
