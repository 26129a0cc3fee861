"""
Bounded history of schedule saves.

Every archive writes a snapshot under ``backup:<id>`` and pushes its id onto
the front of ``backup_index``. The index keeps at most ``capacity`` ids; ids
pushed past the end are dropped from the index first and their snapshots are
deleted afterwards, so a failure part way through leaves unreferenced
snapshots rather than index entries pointing at nothing.
"""

import datetime
import time
from typing import Any, Callable, List, Optional
from zoneinfo import ZoneInfo

from .exceptions import BackupNotFoundError, StoreUnavailableError
from .logging_config import get_logger
from .schemas import BackupSnapshot, BackupSummary, ScheduleRecord
from .store import BACKUP_INDEX_KEY, KeyValueStore, backup_key

logger = get_logger("backups")

MAX_BACKUP_COUNT = 100
PREVIEW_LENGTH = 100
DATE_FORMAT = "%Y/%m/%d %H:%M:%S"


def epoch_millis() -> int:
    return int(time.time() * 1000)


def make_preview(raw_text: str) -> str:
    if not raw_text:
        return ""
    return raw_text[:PREVIEW_LENGTH] + "..."


class BackupRing:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        capacity: int = MAX_BACKUP_COUNT,
        timezone: str = "Asia/Hong_Kong",
        clock: Callable[[], int] = epoch_millis,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.store = store
        self.capacity = capacity
        self.timezone = ZoneInfo(timezone)
        self._clock = clock

    def format_date(self, timestamp_ms: int) -> str:
        moment = datetime.datetime.fromtimestamp(timestamp_ms / 1000, tz=self.timezone)
        return moment.strftime(DATE_FORMAT)

    async def index(self) -> List[str]:
        stored = await self.store.get_json(BACKUP_INDEX_KEY)
        return [str(backup_id) for backup_id in stored] if stored else []

    async def archive(self, record: ScheduleRecord) -> BackupSnapshot:
        """Store ``record`` as a new snapshot and trim the index to capacity."""
        timestamp = self._clock()
        snapshot = BackupSnapshot(
            id=str(timestamp),
            timestamp=timestamp,
            date=self.format_date(timestamp),
            data=record,
            preview=make_preview(record.raw_text),
        )
        await self.store.put_json(backup_key(snapshot.id), snapshot.model_dump(mode="json", by_alias=True))

        evicted: List[str] = []

        def push(current: Optional[Any]) -> List[str]:
            ids = [snapshot.id] + [str(backup_id) for backup_id in (current or [])]
            kept = ids[:self.capacity]
            # a colliding id can sit on both sides of the cut
            evicted[:] = [backup_id for backup_id in dict.fromkeys(ids[self.capacity:]) if backup_id not in kept]
            return kept

        await self.store.update_json(BACKUP_INDEX_KEY, push)

        for backup_id in evicted:
            try:
                await self.store.delete(backup_key(backup_id))
            except StoreUnavailableError as exc:
                logger.warning(f"Could not delete evicted backup {backup_id}, leaving it orphaned: {exc}")

        if evicted:
            logger.info(f"Archived backup {snapshot.id}, evicted {len(evicted)} old backup(s)")
        else:
            logger.info(f"Archived backup {snapshot.id}")
        return snapshot

    async def list_backups(self) -> List[BackupSummary]:
        """Summaries of the archived snapshots, newest first."""
        summaries: List[BackupSummary] = []
        for backup_id in await self.index():
            stored = await self.store.get_json(backup_key(backup_id))
            if stored is None:
                logger.warning(f"Backup index references missing snapshot {backup_id}, skipping")
                continue
            summaries.append(
                BackupSummary(id=str(stored["id"]), date=stored["date"], preview=stored.get("preview", ""))
            )
        return summaries

    async def get(self, backup_id: str) -> BackupSnapshot:
        stored = await self.store.get_json(backup_key(backup_id))
        if stored is None:
            raise BackupNotFoundError(backup_id)
        return BackupSnapshot.model_validate(stored)

    async def restore(self, backup_id: str) -> ScheduleRecord:
        """Return the record archived under ``backup_id``.

        Leaves the index untouched and archives nothing; persisting the
        returned record as the current state is up to the caller.
        """
        snapshot = await self.get(backup_id)
        return snapshot.data
