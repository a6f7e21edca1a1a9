"""
Time calculations for scheduling.

Pure helpers shared by the availability checker, manual professional actions,
portal slot generation and availability blocks. Instants are aware UTC
datetimes; local wall-clock rules are evaluated in the professional's IANA zone.
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional

from ...errors import BusinessHoursError, ValidationError
from ...shared.clock import ensure_utc, get_zone

# Fixed clinic agenda for manual bookings and portal slots
SLOT_DURATION_MINUTES = 50
SLOT_START_HOUR = 8
SLOT_END_HOUR = 18

MIN_PORTAL_YEAR = 2020
MAX_PORTAL_YEAR = 2100


def ranges_overlap(
    starts_at: datetime, ends_at: datetime, other_starts_at: datetime, other_ends_at: datetime
) -> bool:
    """Half-open interval overlap: touching ranges do not conflict"""
    return starts_at < other_ends_at and ends_at > other_starts_at


def validate_time_range(starts_at: datetime, ends_at: datetime) -> tuple[datetime, datetime]:
    """Normalize both ends to UTC and require a non-empty range"""
    starts_at = ensure_utc(starts_at)
    ends_at = ensure_utc(ends_at)
    if ends_at <= starts_at:
        raise ValidationError("endsAt deve ser maior que startsAt")
    return starts_at, ends_at


def sunday_based_weekday(day: date) -> int:
    """0=Sunday ... 6=Saturday"""
    return (day.weekday() + 1) % 7


def validate_manual_schedule_window(starts_at: datetime, ends_at: datetime, zone_name: Optional[str]) -> None:
    """
    Enforce the fixed agenda for bookings made by the professional.

    Raises:
        ValidationError: Empty or inverted range
        BusinessHoursError: 400 for wrong duration or a start off the hour,
            409 for weekends or a start outside 08:00-18:00 local time
    """
    starts_at, ends_at = validate_time_range(starts_at, ends_at)

    duration = ends_at - starts_at
    if duration != timedelta(minutes=SLOT_DURATION_MINUTES):
        raise BusinessHoursError(
            f"A duração da consulta manual deve ser de {SLOT_DURATION_MINUTES} minutos", status_code=400
        )

    local_start = starts_at.astimezone(get_zone(zone_name))

    if local_start.weekday() >= 5:
        raise BusinessHoursError("A profissional não atende aos finais de semana")

    if local_start.minute != 0 or local_start.second != 0 or local_start.microsecond != 0:
        raise BusinessHoursError(
            "A consulta manual deve iniciar em hora cheia (ex.: 09:00, 10:00)", status_code=400
        )

    if local_start.hour < SLOT_START_HOUR or local_start.hour >= SLOT_END_HOUR:
        raise BusinessHoursError(
            f"Horário fora da agenda da profissional ({SLOT_START_HOUR:02d}:00 às {SLOT_END_HOUR:02d}:00)"
        )


def resolve_portal_period(
    month: Optional[int], year: Optional[int], zone_name: Optional[str], now: datetime
) -> tuple[int, int]:
    """Requested month/year, falling back to the current local month for invalid values"""
    local_now = ensure_utc(now).astimezone(get_zone(zone_name))
    resolved_month = month if month is not None and 1 <= month <= 12 else local_now.month
    resolved_year = (
        year if year is not None and MIN_PORTAL_YEAR <= year <= MAX_PORTAL_YEAR else local_now.year
    )
    return resolved_month, resolved_year


def month_bounds(year: int, month: int, zone_name: Optional[str]) -> tuple[datetime, datetime]:
    """UTC instants for the first and one-past-last local day of a month"""
    zone = get_zone(zone_name)
    last_day = calendar.monthrange(year, month)[1]
    start = datetime.combine(date(year, month, 1), time(0, 0), tzinfo=zone)
    end = datetime.combine(date(year, month, last_day) + timedelta(days=1), time(0, 0), tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def generate_month_slots(
    year: int,
    month: int,
    zone_name: Optional[str],
    now: datetime,
    busy_ranges: Iterable[tuple[datetime, datetime]],
) -> list[tuple[datetime, datetime]]:
    """
    Free portal slots for a month.

    One slot per hour from 08:00 to 17:00 local time on weekdays, each
    ``SLOT_DURATION_MINUTES`` long. Slots starting at or before ``now`` and
    slots overlapping any busy range are skipped.
    """
    zone = get_zone(zone_name)
    now = ensure_utc(now)
    busy = [(ensure_utc(start), ensure_utc(end)) for start, end in busy_ranges]
    slots = []

    for day_number in range(1, calendar.monthrange(year, month)[1] + 1):
        day = date(year, month, day_number)
        if day.weekday() >= 5:
            continue

        for hour in range(SLOT_START_HOUR, SLOT_END_HOUR):
            starts_at = datetime.combine(day, time(hour, 0), tzinfo=zone).astimezone(timezone.utc)
            ends_at = starts_at + timedelta(minutes=SLOT_DURATION_MINUTES)

            if starts_at <= now:
                continue
            if any(ranges_overlap(starts_at, ends_at, start, end) for start, end in busy):
                continue

            slots.append((starts_at, ends_at))

    return slots


def group_slots_by_day(
    slots: Iterable[tuple[datetime, datetime]], zone_name: Optional[str]
) -> dict[str, list[tuple[datetime, datetime]]]:
    """Group slots under their local ``YYYY-MM-DD`` day"""
    zone = get_zone(zone_name)
    grouped = {}
    for starts_at, ends_at in slots:
        key = starts_at.astimezone(zone).date().isoformat()
        grouped.setdefault(key, []).append((starts_at, ends_at))
    return grouped


def parse_clock_time(value: str) -> time:
    """Parse ``HH:MM``"""
    try:
        hour_raw, minute_raw = value.split(":")
        return time(int(hour_raw), int(minute_raw))
    except (AttributeError, ValueError) as e:
        raise ValidationError(f"Horário inválido: {value}") from e


def expand_block_days(
    from_date: date,
    to_date: date,
    start_time: time,
    end_time: time,
    weekdays: Optional[Iterable[int]],
    zone_name: Optional[str],
) -> list[tuple[datetime, datetime]]:
    """
    One blocked UTC range per selected day in ``from_date..to_date``.

    ``weekdays`` uses 0=Sunday; empty or None selects every day.

    Raises:
        ValidationError: ``end_time`` not after ``start_time`` or no day selected
    """
    if end_time <= start_time:
        raise ValidationError("endTime deve ser maior que startTime")

    zone = get_zone(zone_name)
    selected = set(weekdays or [])
    ranges = []

    day = from_date
    while day <= to_date:
        if not selected or sunday_based_weekday(day) in selected:
            starts_at = datetime.combine(day, start_time, tzinfo=zone).astimezone(timezone.utc)
            ends_at = datetime.combine(day, end_time, tzinfo=zone).astimezone(timezone.utc)
            ranges.append((starts_at, ends_at))
        day += timedelta(days=1)

    if not ranges:
        raise ValidationError("Nenhum dia selecionado para bloqueio no período informado")

    return ranges
