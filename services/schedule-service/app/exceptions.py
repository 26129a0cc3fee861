class ScheduleServiceError(Exception):
    """Base class for errors raised by the schedule service core."""


class BackupNotFoundError(ScheduleServiceError):
    def __init__(self, backup_id: str):
        super().__init__(f"Backup {backup_id!r} not found")
        self.backup_id = backup_id


class StoreUnavailableError(ScheduleServiceError):
    """The key-value store could not be reached or refused the operation."""


class StoreConflictError(StoreUnavailableError):
    """An optimistic update kept losing to concurrent writers."""
