"""Next-run computation for digest schedules.

Schedules use the five cron fields ``minute hour day month weekday``, but
only minute and hour are honoured; the remaining fields are accepted and
ignored. All times are UTC.
"""

from datetime import datetime, timedelta, timezone


def _top_of_next_hour(now: datetime) -> datetime:
    return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)


def next_run_from_schedule(schedule: str, now: datetime | None = None) -> datetime:
    """Return the next UTC run time for ``schedule`` strictly after ``now``.

    Malformed schedules (not five fields, or a minute/hour that is neither
    ``*`` nor an integer in range) fall back to the top of the next hour.

    Examples:
        >>> now = datetime(2024, 1, 1, 8, 30, tzinfo=timezone.utc)
        >>> next_run_from_schedule("0 9 * * *", now).hour
        9
        >>> next_run_from_schedule("0 8 * * *", now).day
        2
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)

    parts = (schedule or "").split()
    if len(parts) != 5:
        return _top_of_next_hour(now)

    minute_field, hour_field = parts[0], parts[1]
    try:
        minute = 0 if minute_field == "*" else int(minute_field)
        hour = None if hour_field == "*" else int(hour_field)
    except ValueError:
        return _top_of_next_hour(now)

    if not 0 <= minute <= 59 or (hour is not None and not 0 <= hour <= 23):
        return _top_of_next_hour(now)

    candidate = now.replace(minute=minute, second=0, microsecond=0)
    if hour is None:
        candidate += timedelta(hours=1)
    else:
        candidate = candidate.replace(hour=hour)

    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate
