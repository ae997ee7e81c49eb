from __future__ import annotations

import json
import logging
import time
from dataclasses import fields
from typing import Any, Callable, Mapping, Optional

from featurelab_web.adapters.storage import KeyValueStorage
from featurelab_web.domain.errors import StorageError
from featurelab_web.domain.models import AppSessionSnapshot

logger = logging.getLogger(__name__)

STORAGE_KEY = "ai-featurelab-state"
DEFAULT_TTL_HOURS = 24

_SNAPSHOT_FIELDS = {f.name for f in fields(AppSessionSnapshot)} - {"extras", "last_updated"}


def _apply(snapshot: AppSessionSnapshot, partial: Mapping[str, Any]) -> AppSessionSnapshot:
    """Known keys land on their field, anything else goes to `extras`."""
    for key, value in partial.items():
        if key in _SNAPSHOT_FIELDS:
            setattr(snapshot, key, value)
        elif key == "extras" and isinstance(value, Mapping):
            snapshot.extras.update(value)
        elif key != "last_updated":
            snapshot.extras[key] = value
    return snapshot


class SessionCache:
    """
    Single resumable UI snapshot with a time-to-live.
    Expired snapshots are removed on read, so later reads see the default too.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        ttl_hours: float = DEFAULT_TTL_HOURS,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.ttl_seconds = ttl_hours * 3600
        self._clock = clock

    def default_snapshot(self) -> AppSessionSnapshot:
        return AppSessionSnapshot()

    def _read(self) -> Optional[AppSessionSnapshot]:
        try:
            raw = self.storage.get(STORAGE_KEY)
        except StorageError as e:
            logger.error("Failed to read session cache: %s", e)
            return None
        if not raw:
            return None

        try:
            data = json.loads(raw)
            snapshot = _apply(AppSessionSnapshot(), data)
            snapshot.last_updated = float(data["last_updated"])
            return snapshot
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.error("Session cache is corrupt; ignoring it: %s", e)
            return None

    def _expired(self, snapshot: AppSessionSnapshot) -> bool:
        return self._clock() - snapshot.last_updated > self.ttl_seconds

    def load(self) -> AppSessionSnapshot:
        snapshot = self._read()
        if snapshot is None:
            return self.default_snapshot()
        if self._expired(snapshot):
            logger.info("Session cache expired; clearing it")
            self.clear()
            return self.default_snapshot()
        return snapshot

    def save(self, partial: Mapping[str, Any]) -> AppSessionSnapshot:
        snapshot = _apply(self.load(), partial)
        snapshot.last_updated = self._clock()
        try:
            self.storage.set(STORAGE_KEY, json.dumps(snapshot.to_dict(), ensure_ascii=False))
        except (StorageError, TypeError, ValueError) as e:
            logger.error("Failed to save session cache: %s", e)
        return snapshot

    def clear(self) -> None:
        try:
            self.storage.remove(STORAGE_KEY)
        except StorageError as e:
            logger.error("Failed to clear session cache: %s", e)

    def has_valid_cache(self) -> bool:
        snapshot = self._read()
        return snapshot is not None and not self._expired(snapshot)

    def cache_age_minutes(self) -> Optional[float]:
        snapshot = self._read()
        if snapshot is None:
            return None
        return (self._clock() - snapshot.last_updated) / 60.0
