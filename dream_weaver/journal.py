from __future__ import annotations

import logging
import threading
from typing import Sequence

from .models import DreamEntry
from .storage import JournalStore

logger = logging.getLogger(__name__)


class Journal:
    """In-memory dream journal, written through to its store on every change."""

    def __init__(self, store: JournalStore):
        self._store = store
        self._lock = threading.Lock()
        self._entries: list[DreamEntry] = store.load()
        logger.info("Loaded %d dreams from journal.", len(self._entries))

    @property
    def entries(self) -> list[DreamEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, entry_id: str) -> DreamEntry | None:
        with self._lock:
            for entry in self._entries:
                if entry.id == entry_id:
                    return entry
        return None

    def upsert(self, entry: DreamEntry) -> None:
        with self._lock:
            for index, existing in enumerate(self._entries):
                if existing.id == entry.id:
                    self._entries[index] = entry
                    break
            else:
                self._entries.insert(0, entry)
            snapshot = list(self._entries)
        self._store.save(snapshot)

    def search(self, term: str = "") -> list[DreamEntry]:
        return filter_by_tag(self.entries, term)


def filter_by_tag(entries: Sequence[DreamEntry], term: str) -> list[DreamEntry]:
    needle = (term or "").strip().lower()
    if needle:
        matched = [e for e in entries if any(needle in tag.lower() for tag in e.tags)]
    else:
        matched = list(entries)
    return sorted(matched, key=lambda e: e.created_at, reverse=True)
