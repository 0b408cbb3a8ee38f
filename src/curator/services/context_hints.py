"""Describe the listener's current moment (time of day and day of week)."""

from datetime import datetime
from typing import Optional


def _time_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "late night"


def describe_listening_context(now: Optional[datetime] = None) -> str:
    """Return a phrase such as ``"evening on a weekday Tuesday"`` for prompt context."""
    moment = now or datetime.now()
    # Monday is 0, so Saturday and Sunday are 5 and 6.
    work_context = "weekend" if moment.weekday() >= 5 else "weekday"
    return f"{_time_of_day(moment.hour)} on a {work_context} {moment.strftime('%A')}"
