"""
Calculation engine: retention windows, video durations and clock offsets.

Pure functions. Anything that depends on the current date takes it as an
explicit argument so results are reproducible.
"""

import re
from datetime import date, datetime, timedelta
from typing import Optional, Union

from pipeline.schema import Direction, DurationInfo, OffsetInfo, RetentionInfo
from pipeline.validation_policy import RetentionPolicy
from utils.formatting import parse_datetime, plural

DateLike = Union[str, date, datetime, None]

_HOURS_RE = re.compile(r"(\d+)\s*h(?:ou)?r?s?")
_MINUTES_RE = re.compile(r"(\d+)\s*m(?:in)?(?:ute)?s?")
_SECONDS_RE = re.compile(r"(\d+)\s*s(?:ec)?(?:ond)?s?")


def _as_date(value: DateLike) -> Optional[date]:
    parsed = parse_datetime(value)
    return parsed.date() if parsed else None


def retention_info(
    earliest_date: DateLike,
    today: DateLike,
    policy: RetentionPolicy = RetentionPolicy(),
) -> RetentionInfo:
    """
    Days of footage a DVR still holds, from its earliest available date.

    Both dates are compared at day granularity (time of day ignored).

    Args:
        earliest_date: Earliest recording date available on the DVR
        today: Reference "today"
        policy: Urgency thresholds

    Returns:
        RetentionInfo. ``days`` is None for empty or future dates.
    """
    earliest = _as_date(earliest_date)
    reference = _as_date(today)
    if earliest is None or reference is None:
        return RetentionInfo(days=None, message="", is_urgent=False)

    diff_days = (reference - earliest).days

    if diff_days < 0:
        return RetentionInfo(
            days=None,
            message="Invalid date: Earliest date cannot be in the future",
            is_urgent=False,
        )
    if diff_days == 0:
        message = "DVR retention: Less than 1 day (CRITICAL - Video may be overwritten today)"
        urgent = True
    elif diff_days == 1:
        message = "DVR retention: 1 day (URGENT - Video will be overwritten tomorrow)"
        urgent = True
    elif diff_days <= policy.urgent_max_days:
        message = f"DVR retention: {diff_days} days (URGENT - Video will be overwritten soon)"
        urgent = True
    elif diff_days <= policy.advisory_max_days:
        message = f"DVR retention: {diff_days} days (Video should be recovered within a week)"
        urgent = False
    else:
        message = f"DVR retention: {diff_days} days"
        urgent = False

    return RetentionInfo(days=diff_days, message=message, is_urgent=urgent)


def format_duration(total_minutes: int) -> str:
    """'1 hour 5 minutes', '2 hours', '45 minutes'. Zero components are dropped."""
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        formatted = plural(hours, "hour")
        if minutes > 0:
            formatted += f" {plural(minutes, 'minute')}"
        return formatted
    return plural(minutes, "minute")


def video_duration(start: DateLike, end: DateLike) -> DurationInfo:
    """
    Whole-minute length of a video window.

    Returns an empty result when either end is missing and an explicit
    "Invalid duration" (never a negative value) when end <= start.
    """
    start_dt = parse_datetime(start)
    end_dt = parse_datetime(end)
    if start_dt is None or end_dt is None:
        return DurationInfo()

    diff = end_dt - start_dt
    if diff <= timedelta(0):
        return DurationInfo(formatted="Invalid duration", is_valid=False)

    total_minutes = int(diff.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    return DurationInfo(
        hours=hours,
        minutes=minutes,
        total_minutes=total_minutes,
        formatted=format_duration(total_minutes),
        is_valid=True,
    )


def parse_time_offset(text: Optional[str]) -> OffsetInfo:
    """
    Extract an offset from a description such as "DVR is 1hr 5min 30sec AHEAD".

    Each unit is matched independently; a missing unit counts as zero.
    "behind"/"slow" means BEHIND, "ahead"/"fast" means AHEAD, and AHEAD is
    assumed when neither appears. When no unit is found the formatted value is
    the original text, so already-canonical strings parse back to themselves.
    """
    if not text or not text.strip():
        return OffsetInfo()

    lowered = text.lower()
    hours = _first_int(_HOURS_RE, lowered)
    minutes = _first_int(_MINUTES_RE, lowered)
    seconds = _first_int(_SECONDS_RE, lowered)

    if "behind" in lowered or "slow" in lowered:
        direction = Direction.BEHIND
    else:
        direction = Direction.AHEAD

    parts = []
    if hours > 0:
        parts.append(plural(hours, "hour"))
    if minutes > 0:
        parts.append(plural(minutes, "minute"))
    if seconds > 0:
        parts.append(plural(seconds, "second"))

    if parts:
        formatted = f"DVR is {' '.join(parts)} {direction.value} of real time"
    else:
        formatted = text

    return OffsetInfo(
        hours=hours,
        minutes=minutes,
        seconds=seconds,
        direction=direction,
        formatted=formatted,
    )


def _first_int(pattern: "re.Pattern", text: str) -> int:
    match = pattern.search(text)
    return int(match.group(1)) if match else 0


def adjusted_time(displayed_time: DateLike, offset: Optional[OffsetInfo]) -> Optional[datetime]:
    """
    Real time corresponding to a time shown on the device.

    A device that runs AHEAD shows a later time than reality, so the offset is
    subtracted; a device that runs BEHIND has the offset added.
    """
    displayed = parse_datetime(displayed_time)
    if displayed is None or offset is None:
        return None
    delta = timedelta(seconds=offset.total_seconds)
    if offset.direction == Direction.BEHIND:
        return displayed + delta
    return displayed - delta
