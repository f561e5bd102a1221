"""
Office-Hours Calendar
======================

Pure functions answering "is this instant inside business hours?",
"when does business time resume?" and "how much business time lies
between two instants?".

Every function takes the calendar explicitly. Instants are converted to
the configured zone only to read the local date and time of day; all
comparisons and subtractions happen on UTC instants.
"""

from datetime import datetime, timedelta, timezone

from chat_sla.core import ConfigurationException
from chat_sla.sla.domain.value_objects import OfficeHoursConfig

# Days searched forward for the next working day (one full week).
MAX_SEARCH_DAYS = 7

_ONE_SECOND = timedelta(seconds=1)


def to_utc(instant: datetime) -> datetime:
    """Normalize an instant to aware UTC. Naive values are taken as UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def _local_minute(instant: datetime, config: OfficeHoursConfig):
    """Local wall-clock time truncated to HH:mm."""
    return instant.astimezone(config.zone).time().replace(second=0, microsecond=0)


def is_within_office_hours(instant: datetime, config: OfficeHoursConfig) -> bool:
    """
    Check if an instant falls within office hours.

    The local HH:mm must satisfy start <= HH:mm < end on a working day.

    Args:
        instant: Point in time to check
        config: Office-hours calendar

    Returns:
        True if within office hours, False otherwise
    """
    local = to_utc(instant).astimezone(config.zone)

    if not config.is_working_day(local.isoweekday()):
        return False

    current = _local_minute(local, config)
    return config.start <= current < config.end


def get_next_business_hour_start(instant: datetime, config: OfficeHoursConfig) -> datetime:
    """
    Get the instant at which business time next accrues.

    Returns `instant` itself when it is already within office hours,
    otherwise the open of the same local day (working day, before start)
    or of the next working day.

    Raises:
        ConfigurationException: If no working day exists within a week
    """
    if is_within_office_hours(instant, config):
        return instant

    local = to_utc(instant).astimezone(config.zone)
    local_date = local.date()

    if config.is_working_day(local.isoweekday()) and _local_minute(local, config) < config.start:
        return config.open_at(local_date)

    for days_ahead in range(1, MAX_SEARCH_DAYS + 1):
        candidate = local_date + timedelta(days=days_ahead)
        if config.is_working_day(candidate.isoweekday()):
            return config.open_at(candidate)

    raise ConfigurationException(
        "No working day found within a week; check office hours working days",
        {"working_days": sorted(config.working_days)}
    )


def calculate_business_hours_between(
    start: datetime,
    end: datetime,
    config: OfficeHoursConfig
) -> int:
    """
    Calculate business seconds between two instants.

    Walks local calendar days from start's date to end's date inclusive
    and sums the overlap of [start, end] with each working day's office
    window. Inverted or empty ranges yield 0.

    The overlap is summed exactly and floored once, so resolution is one
    second: splitting a range at a mid point gives the same total for
    whole-second instants, and may lose one second when the instants
    carry fractional seconds.

    Args:
        start: Interval start
        end: Interval end
        config: Office-hours calendar

    Returns:
        Whole business seconds, never negative and never more than end - start
    """
    start = to_utc(start)
    end = to_utc(end)

    if start >= end:
        return 0

    current_day = start.astimezone(config.zone).date()
    last_day = end.astimezone(config.zone).date()

    total = timedelta(0)
    while current_day <= last_day:
        if config.is_working_day(current_day.isoweekday()):
            day_open, day_close = config.window_for(current_day)

            overlap_start = max(start, day_open)
            overlap_end = min(end, day_close)

            if overlap_start < overlap_end:
                total += overlap_end - overlap_start

        current_day += timedelta(days=1)

    return total // _ONE_SECOND
