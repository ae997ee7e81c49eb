from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from featurelab_web.adapters.storage import KeyValueStorage
from featurelab_web.domain.errors import StorageError
from featurelab_web.domain.models import HistoryEntry, HistoryKind, RunStatus

logger = logging.getLogger(__name__)

STORAGE_KEY = "ai_assistant_history"
MAX_ENTRIES = 100
TITLE_MAX_CHARS = 50


def make_title(prompt: str) -> str:
    collapsed = " ".join((prompt or "").split())
    if len(collapsed) > TITLE_MAX_CHARS:
        return collapsed[:TITLE_MAX_CHARS] + "..."
    return collapsed


def _id_stamp(entry_id: str) -> int:
    head = entry_id.split("-", 1)[0]
    return int(head) if head.isdigit() else 0


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class HistoryStore:
    """
    Repository pattern: capped, durable log of pipeline runs.
    Every operation is a full read-merge-write against one storage key.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        max_entries: int = MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
        suffix_factory: Callable[[], str] = lambda: uuid.uuid4().hex[:9],
    ):
        self.storage = storage
        self.max_entries = max_entries
        self._clock = clock
        self._suffix_factory = suffix_factory

    # -----------------------------
    # Persistence
    # -----------------------------
    def _load(self) -> List[HistoryEntry]:
        try:
            raw = self.storage.get(STORAGE_KEY)
        except StorageError as e:
            logger.error("Failed to read history; using empty history: %s", e)
            return []
        if not raw:
            return []

        try:
            blob = json.loads(raw)
            return [HistoryEntry.from_dict(d) for d in blob["entries"]]
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.error("History blob is corrupt; using empty history: %s", e)
            return []

    def _save(self, entries: List[HistoryEntry]) -> List[HistoryEntry]:
        # oldest entries are dropped first
        kept = entries[-self.max_entries:]
        blob = {
            "entries": [e.to_dict() for e in kept],
            "lastUpdated": _iso(self._clock()),
        }
        try:
            self.storage.set(STORAGE_KEY, json.dumps(blob, ensure_ascii=False))
        except (StorageError, TypeError, ValueError) as e:
            logger.error("Failed to persist history: %s", e)
        return kept

    def _next_id(self, entries: List[HistoryEntry]) -> str:
        now_ms = int(self._clock() * 1000)
        last = max((_id_stamp(e.id) for e in entries), default=0)
        stamp = max(now_ms, last + 1)
        return f"{stamp:013d}-{self._suffix_factory()}"

    @staticmethod
    def _find(entries: List[HistoryEntry], entry_id: str) -> Optional[HistoryEntry]:
        return next((e for e in entries if e.id == entry_id), None)

    # -----------------------------
    # Commands
    # -----------------------------
    def add_entry(self, kind: str, prompt: str, *, has_files: bool = False, file_count: int = 0) -> str:
        if kind not in HistoryKind.ALL:
            raise ValueError(f"Unknown history kind: {kind!r}")

        entries = self._load()
        entry = HistoryEntry(
            id=self._next_id(entries),
            timestamp=_iso(self._clock()),
            kind=kind,
            prompt=prompt or "",
            title=make_title(prompt),
            metadata={"has_files": has_files, "file_count": file_count},
        )
        entries.append(entry)
        self._save(entries)
        logger.info("History entry added: %s (%s)", entry.id, kind, extra={"history_id": entry.id})
        return entry.id

    def update_status(
        self,
        entry_id: str,
        status: str,
        error: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if status not in (RunStatus.PENDING, RunStatus.SUCCESS, RunStatus.ERROR):
            logger.warning("Ignoring unknown history status %r for %s", status, entry_id)
            return

        entries = self._load()
        entry = self._find(entries, entry_id)
        if entry is None:
            logger.warning("History entry not found: %s", entry_id)
            return
        if entry.status in RunStatus.TERMINAL:
            logger.warning("History entry %s is already %s; ignoring %s", entry_id, entry.status, status)
            return

        entry.status = status
        entry.error = (error or "Unknown error") if status == RunStatus.ERROR else None
        if metadata:
            entry.metadata.update(metadata)
        self._save(entries)

    def update_results(self, entry_id: str, partial: Mapping[str, Any]) -> None:
        entries = self._load()
        entry = self._find(entries, entry_id)
        if entry is None:
            logger.warning("History entry not found: %s", entry_id)
            return

        merged: Dict[str, Any] = dict(entry.results)
        merged.update({k: v for k, v in partial.items() if k != "ui_state"})
        if partial.get("ui_state") is not None:
            merged["ui_state"] = {**(entry.results.get("ui_state") or {}), **partial["ui_state"]}
        entry.results = merged
        self._save(entries)

    def delete_entry(self, entry_id: str) -> bool:
        entries = self._load()
        kept = [e for e in entries if e.id != entry_id]
        if len(kept) == len(entries):
            return False
        self._save(kept)
        return True

    def clear(self) -> None:
        try:
            self.storage.remove(STORAGE_KEY)
        except StorageError as e:
            logger.error("Failed to clear history: %s", e)

    # -----------------------------
    # Queries
    # -----------------------------
    def get_history(self) -> List[HistoryEntry]:
        return self._load()

    def get_entry(self, entry_id: str) -> Optional[HistoryEntry]:
        return self._find(self._load(), entry_id)

    def by_type(self, kind: str) -> List[HistoryEntry]:
        return [e for e in self._load() if e.kind == kind]

    def search(self, query: str) -> List[HistoryEntry]:
        needle = (query or "").strip().lower()
        entries = self._load()
        if not needle:
            return entries
        return [e for e in entries if needle in e.title.lower() or needle in e.prompt.lower()]
