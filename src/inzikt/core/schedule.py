"""Next-run computation and cron helpers for scheduled jobs."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from apscheduler.triggers.cron import CronTrigger

from inzikt.models.schedule import JobFrequency

logger = logging.getLogger(__name__)

# Recurring jobs other than hourly fire at this hour (UTC)
RUN_HOUR = 3

_DOW_NAMES = {
    "0": "Sunday",
    "1": "Monday",
    "2": "Tuesday",
    "3": "Wednesday",
    "4": "Thursday",
    "5": "Friday",
    "6": "Saturday",
    "sun": "Sunday",
    "mon": "Monday",
    "tue": "Tuesday",
    "wed": "Wednesday",
    "thu": "Thursday",
    "fri": "Friday",
    "sat": "Saturday",
}


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by MySQL DATETIME) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


_DOW_ABBR = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _crontab_day_of_week(field: str) -> str:
    """Rewrite numeric crontab weekdays (0/7 = Sunday) as names.

    APScheduler numbers weekdays from Monday, so numbers are expanded into
    explicit day names before they reach :class:`CronTrigger`.
    """
    days: list[str] = []
    for token in field.split(","):
        base, _, step_str = token.partition("/")
        step = int(step_str) if step_str.isdigit() else 1
        if base == "*" and step_str:
            values = list(range(0, 7, step))
        elif "-" in base and all(p.isdigit() for p in base.split("-", 1)):
            start, end = (int(p) for p in base.split("-", 1))
            values = list(range(start, end + 1, step))
        elif base.isdigit():
            values = [int(base)]
        else:
            days.append(token)
            continue
        for value in values:
            if value > 7:
                raise ValueError(f"Invalid day of week: {value}")
            name = _DOW_ABBR[value % 7]
            if name not in days:
                days.append(name)
    return ",".join(days)


def _build_trigger(expression: str) -> CronTrigger:
    parts = expression.strip().split()
    if len(parts) != 5:
        raise ValueError(f"Expected 5 fields (minute hour day month weekday), got {len(parts)}")
    minute, hour, day, month, day_of_week = parts
    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=_crontab_day_of_week(day_of_week),
        timezone="UTC",
    )


def validate_cron_expression(expression: str) -> tuple[bool, str]:
    """Validate a 5-part cron expression. Returns (is_valid, error_message)."""
    try:
        _build_trigger(expression)
    except ValueError as exc:
        if str(exc).startswith("Expected 5 fields"):
            return False, str(exc)
        return False, f"Invalid cron expression: {exc}"
    except KeyError as exc:
        return False, f"Invalid cron expression: {exc}"
    return True, ""


def _next_cron_fire(expression: str, now: datetime) -> datetime | None:
    try:
        trigger = _build_trigger(expression)
    except (ValueError, KeyError):
        logger.warning("Invalid cron expression %r, using fallback schedule", expression)
        return None
    fire = trigger.get_next_fire_time(None, now)
    # CronTrigger may return `now` itself when it matches exactly
    if fire is not None and fire <= now:
        fire = trigger.get_next_fire_time(fire, now + timedelta(seconds=1))
    return fire


def compute_next_run(
    frequency: JobFrequency | str,
    cron_expression: str | None = None,
    now: datetime | None = None,
) -> datetime:
    """Return the next run time for a job, strictly after ``now``.

    Pure for a fixed ``now``: hourly → top of the next hour, daily → 03:00 the
    next day, weekly → 03:00 seven days ahead, monthly → 03:00 on the 1st of the
    next month. Custom jobs evaluate their cron expression; a missing or invalid
    expression falls back to midnight the following day.
    """
    now = ensure_utc(now or utcnow())
    frequency = JobFrequency(frequency)

    if frequency == JobFrequency.HOURLY:
        return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)

    if frequency == JobFrequency.WEEKLY:
        return (now + timedelta(days=7)).replace(hour=RUN_HOUR, minute=0, second=0, microsecond=0)

    if frequency == JobFrequency.MONTHLY:
        year, month = (now.year + 1, 1) if now.month == 12 else (now.year, now.month + 1)
        return now.replace(
            year=year, month=month, day=1, hour=RUN_HOUR, minute=0, second=0, microsecond=0
        )

    if frequency == JobFrequency.CUSTOM:
        if cron_expression:
            fire = _next_cron_fire(cron_expression, now)
            if fire is not None:
                return ensure_utc(fire)
        return (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)

    return (now + timedelta(days=1)).replace(hour=RUN_HOUR, minute=0, second=0, microsecond=0)


def describe_schedule(frequency: JobFrequency | str, cron_expression: str | None = None) -> str:
    """Human-readable cadence for a scheduled job."""
    frequency = JobFrequency(frequency)
    if frequency == JobFrequency.HOURLY:
        return "Every hour"
    if frequency == JobFrequency.DAILY:
        return f"Every day at {RUN_HOUR}:00 UTC"
    if frequency == JobFrequency.WEEKLY:
        return f"Every 7 days at {RUN_HOUR}:00 UTC"
    if frequency == JobFrequency.MONTHLY:
        return f"1st of every month at {RUN_HOUR}:00 UTC"
    if cron_expression:
        return cron_to_human(cron_expression)
    return "Every day at 0:00 UTC"


def cron_to_human(expression: str) -> str:
    """Convert a 5-part cron expression to a human-readable description."""
    parts = expression.strip().split()
    if len(parts) != 5:
        return expression

    minute, hour, day, month, dow = parts

    if parts == ["*", "*", "*", "*", "*"]:
        return "Every minute"
    if minute.startswith("*/"):
        n = minute[2:]
        if hour == "*" and day == "*" and month == "*" and dow == "*":
            return f"Every {n} minutes"
    if hour.startswith("*/"):
        n = hour[2:]
        if minute == "0" and day == "*" and month == "*" and dow == "*":
            return f"Every {n} hours"
    if minute != "*" and hour != "*" and day == "*" and month == "*":
        try:
            time_str = f"{int(hour):d}:{int(minute):02d} UTC"
        except ValueError:
            return expression
        if dow == "*":
            return f"Every day at {time_str}"
        if dow == "1-5":
            return f"Weekdays at {time_str}"
        if dow == "0,6":
            return f"Weekends at {time_str}"
        return f"Every {_DOW_NAMES.get(dow.lower(), dow)} at {time_str}"
    if minute != "*" and hour != "*" and day != "*" and month == "*" and dow == "*":
        try:
            time_str = f"{int(hour):d}:{int(minute):02d} UTC"
            suffix = _ordinal(int(day))
        except ValueError:
            return expression
        return f"{suffix} of every month at {time_str}"

    return expression


def _ordinal(n: int) -> str:
    if 11 <= n % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"
