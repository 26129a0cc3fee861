"""
Freeform schedule text parser.

Each non-comment line of the input is one appointment written as

    <date> | <time> | <case name> | <details...>

with ``|``, ``｜``, ``,`` or ``，`` accepted as field separators. Dates are
``YYYY年M月D日`` or ``M月D日`` (the year then comes from ``reference_year``),
times are either a ``H:MM - H:MM`` range or a single ``H:MM`` start with a
fixed two hour duration. Lines that do not fit are skipped without error.
"""

import datetime
import re
from typing import Dict, List, Optional, Tuple

from .logging_config import get_logger
from .schemas import ScheduleEvent

logger = get_logger("parser")

DEFAULT_TITLE_PREFIX = "個案："
DEFAULT_DURATION = datetime.timedelta(hours=2)
MIN_FIELDS = 4

COMMENT_PREFIXES = ("--", "//", "#")

CASE_COLORS: Tuple[str, ...] = (
    "#007bff",  # blue
    "#fd7e14",  # orange
    "#28a745",  # green
    "#dc3545",  # red
    "#6f42c1",  # purple
    "#17a2b8",  # cyan
    "#ffc107",  # yellow
    "#e83e8c",  # pink
    "#20c997",  # teal
    "#6610f2",  # indigo
    "#795548",  # brown
    "#198754",  # dark green
    "#0dcaf0",  # light cyan
    "#d63384",  # dark pink
    "#6c757d",  # grey
    "#0d6efd",  # bright blue
    "#ff5722",  # deep orange
    "#9c27b0",  # violet
    "#00bcd4",  # sky blue
    "#ff9800",  # amber
)

FIELD_SEPARATOR = re.compile(r"[|｜,，]")
FULL_DATE = re.compile(r"([0-9]{4})年([0-9]+)月([0-9]+)日")
SHORT_DATE = re.compile(r"([0-9]+)月([0-9]+)日")
TIME_RANGE = re.compile(r"([0-9]{1,2}):([0-9]{2})\s*-\s*([0-9]{1,2}):([0-9]{2})")
SINGLE_TIME = re.compile(r"([0-9]{1,2}):([0-9]{2})")


def split_lines(text: str) -> List[str]:
    """Return the lines that carry appointments, blank and comment lines removed."""
    kept: List[str] = []
    for line in text.strip().split("\n"):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith(COMMENT_PREFIXES):
            continue
        kept.append(line)
    return kept


def split_fields(line: str) -> List[str]:
    return [part.strip() for part in FIELD_SEPARATOR.split(line)]


def local_datetime(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime.datetime:
    """Build a naive datetime, rolling out-of-range components over.

    ``month`` is 1-based. Month 13 becomes January of the following year,
    day 0 the last day of the previous month, hour 25 one o'clock the next
    day. Raises ValueError or OverflowError when the result is outside the
    range ``datetime`` can represent.
    """
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    base = datetime.datetime(year, month, 1)
    return base + datetime.timedelta(days=day - 1, hours=hour, minutes=minute)


def parse_date(value: str, reference_year: int) -> Optional[Tuple[int, int, int]]:
    match = FULL_DATE.search(value)
    if match:
        return int(match.group(1)), int(match.group(2)), int(match.group(3))
    match = SHORT_DATE.search(value)
    if match:
        return reference_year, int(match.group(1)), int(match.group(2))
    return None


def parse_time(value: str) -> Optional[Tuple[Tuple[int, int], Optional[Tuple[int, int]]]]:
    """Return ``((start_h, start_m), (end_h, end_m) or None)``."""
    match = TIME_RANGE.search(value)
    if match:
        start_h, start_m, end_h, end_m = (int(group) for group in match.groups())
        return (start_h, start_m), (end_h, end_m)
    match = SINGLE_TIME.search(value)
    if match:
        return (int(match.group(1)), int(match.group(2))), None
    return None


def event_bounds(
    date_parts: Tuple[int, int, int],
    time_parts: Tuple[Tuple[int, int], Optional[Tuple[int, int]]],
) -> Tuple[datetime.datetime, datetime.datetime]:
    year, month, day = date_parts
    (start_h, start_m), end_parts = time_parts
    start = local_datetime(year, month, day, start_h, start_m)
    if end_parts is None:
        return start, start + DEFAULT_DURATION
    end_h, end_m = end_parts
    return start, local_datetime(year, month, day, end_h, end_m)


def parse_schedule_text(
    text: str,
    *,
    reference_year: int,
    batch_ms: int,
    title_prefix: str = DEFAULT_TITLE_PREFIX,
) -> List[ScheduleEvent]:
    """Parse freeform schedule text into calendar events.

    ``reference_year`` fills in dates written without a year and
    ``batch_ms`` (epoch milliseconds) seeds the event ids. Colours are
    handed out per case name in order of first appearance and are only
    stable within this one call.
    """
    events: List[ScheduleEvent] = []
    case_colors: Dict[str, str] = {}

    for index, line in enumerate(split_lines(text)):
        fields = split_fields(line)
        if len(fields) < MIN_FIELDS:
            logger.debug(f"Skipping line {index}: expected {MIN_FIELDS} fields, got {len(fields)}")
            continue

        date_str, time_str, case_name = fields[0], fields[1], fields[2]
        details = " | ".join(fields[3:])

        if case_name not in case_colors:
            case_colors[case_name] = CASE_COLORS[len(case_colors) % len(CASE_COLORS)]

        date_parts = parse_date(date_str, reference_year)
        time_parts = parse_time(time_str)
        if date_parts is None or time_parts is None or not case_name:
            logger.debug(f"Skipping line {index}: unrecognised date, time or case name")
            continue

        try:
            start, end = event_bounds(date_parts, time_parts)
        except (ValueError, OverflowError):
            logger.debug(f"Skipping line {index}: date out of range")
            continue

        events.append(
            ScheduleEvent(
                id=f"event-{batch_ms}-{index}",
                title=f"{title_prefix}{case_name}",
                start=start,
                end=end,
                details=details,
                color=case_colors[case_name],
                case_name=case_name,
                original_date=date_str,
                original_time=time_str,
            )
        )

    return events
