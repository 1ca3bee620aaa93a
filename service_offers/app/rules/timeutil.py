"""
Time helpers shared by the condition evaluator and the engine.
"""

from datetime import date, datetime, timezone
from typing import Optional, Union


def align(moment: Union[date, datetime], reference: datetime) -> datetime:
    """Make ``moment`` comparable with ``reference``.

    Plain dates become midnight. A naive value compared with an aware one is
    taken to be UTC.
    """
    if not isinstance(moment, datetime):
        moment = datetime(moment.year, moment.month, moment.day)

    if moment.tzinfo is None and reference.tzinfo is not None:
        return moment.replace(tzinfo=timezone.utc)
    if moment.tzinfo is not None and reference.tzinfo is None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def within(now: datetime, start: Optional[Union[date, datetime]], end: Optional[Union[date, datetime]]) -> bool:
    """Inclusive window check; a missing bound is open."""
    if start is not None and align(start, now) > now:
        return False
    if end is not None and align(end, now) < now:
        return False
    return True


def local_now() -> datetime:
    """Current wall-clock time, aware of the host's UTC offset."""
    return datetime.now().astimezone()


def minutes_since_midnight(value: str) -> Optional[int]:
    """Parse ``HH:mm`` or ``HH:mm:ss`` (seconds ignored); None when malformed."""
    try:
        parts = value.split(":")
        if len(parts) < 2:
            return None
        return int(parts[0]) * 60 + int(parts[1])
    except (AttributeError, ValueError):
        return None


def sunday_based_weekday(moment: datetime) -> int:
    """Day of week with 0 = Sunday through 6 = Saturday."""
    return (moment.weekday() + 1) % 7
