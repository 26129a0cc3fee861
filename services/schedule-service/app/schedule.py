import datetime
from typing import Callable

from .backups import BackupRing, epoch_millis
from .logging_config import get_logger
from .parser import DEFAULT_TITLE_PREFIX, parse_schedule_text
from .schemas import ScheduleRecord
from .store import SCHEDULE_KEY, KeyValueStore

logger = get_logger("schedule")


class ScheduleService:
    """Save, load and roll back the single current schedule record."""

    def __init__(
        self,
        store: KeyValueStore,
        ring: BackupRing,
        *,
        title_prefix: str = DEFAULT_TITLE_PREFIX,
        clock: Callable[[], int] = epoch_millis,
    ):
        self.store = store
        self.ring = ring
        self.title_prefix = title_prefix
        self._clock = clock

    def parse(self, raw_text: str) -> ScheduleRecord:
        now_ms = self._clock()
        reference_year = datetime.datetime.fromtimestamp(now_ms / 1000).year
        events = parse_schedule_text(
            raw_text,
            reference_year=reference_year,
            batch_ms=now_ms,
            title_prefix=self.title_prefix,
        )
        return ScheduleRecord(raw_text=raw_text, events=events)

    async def load(self) -> ScheduleRecord | None:
        stored = await self.store.get_json(SCHEDULE_KEY)
        if not stored:
            return None
        return ScheduleRecord.model_validate(stored)

    async def _persist(self, record: ScheduleRecord) -> None:
        await self.store.put_json(SCHEDULE_KEY, record.model_dump(mode="json", by_alias=True))

    async def save(self, raw_text: str) -> ScheduleRecord:
        record = self.parse(raw_text)
        await self._persist(record)
        await self.ring.archive(record)
        logger.info(f"Saved schedule with {len(record.events)} event(s)")
        return record

    async def restore(self, backup_id: str) -> ScheduleRecord:
        record = await self.ring.restore(backup_id)
        await self._persist(record)
        logger.info(f"Restored schedule from backup {backup_id}")
        return record
