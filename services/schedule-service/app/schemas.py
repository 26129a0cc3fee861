import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class ScheduleEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    title: str
    start: datetime.datetime
    end: datetime.datetime
    details: str = ""
    color: str
    case_name: str = Field(alias="caseName")
    original_date: str = Field(default="", alias="originalDate")
    original_time: str = Field(default="", alias="originalTime")
    display: str = "block"


class ScheduleRecord(BaseModel):
    """Current schedule state: the raw text plus the events parsed from it."""

    model_config = ConfigDict(populate_by_name=True)

    raw_text: str = Field(default="", alias="rawText")
    events: List[ScheduleEvent] = Field(default_factory=list)


class BackupSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: int
    date: str
    data: ScheduleRecord
    preview: str = ""


class BackupSummary(BaseModel):
    id: str
    date: str
    preview: str = ""


class RestoreRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    backup_id: str = Field(min_length=1, alias="backupId")


class LoginRequest(BaseModel):
    password: str


class MessageResponse(BaseModel):
    message: str


class RestoreResponse(BaseModel):
    message: str
    data: ScheduleRecord
