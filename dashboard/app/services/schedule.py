from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dashboard.app.core.errors import ConfigurationError
from dashboard.app.models import Reservation
from dashboard.app.services.timewindow import normalize

logger = logging.getLogger(__name__)

MIDNIGHT = "00:00"


@dataclass(frozen=True)
class ScheduleMetrics:
    today: int = 0
    this_week: int = 0
    this_month: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def resolve_zone(name: str | None) -> ZoneInfo:
    if not name:
        raise ConfigurationError("Time zone is not set")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown time zone: {name}") from exc


def zone_or_utc(name: str | None) -> ZoneInfo:
    """Like resolve_zone but degrades to UTC instead of failing."""
    try:
        return resolve_zone(name)
    except ConfigurationError:
        logger.warning("Unknown tenant time zone %r, falling back to UTC", name)
        return ZoneInfo("UTC")


def today_in(tz: ZoneInfo, instant: datetime | None = None) -> date:
    """Calendar day in ``tz``. A naive ``instant`` is wall-clock time in ``tz``."""
    instant = instant or datetime.now(timezone.utc)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=tz)
    return instant.astimezone(tz).date()


def reservation_day(value: str | None, tz: ZoneInfo) -> date | None:
    """Calendar day of a reservation's ``date`` value in the tenant zone.

    Plain ``YYYY-MM-DD`` values are already calendar days. Timestamps with
    an offset are converted into the tenant zone first.
    """
    if not value:
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(tz).date()


def _slot_key(reservation: Reservation) -> str:
    return normalize(reservation.time_slot or "") or MIDNIGHT


def _visible(reservation: Reservation) -> bool:
    if reservation.is_blocked:
        return True
    return bool(reservation.name) and bool(reservation.time_slot)


def agenda(reservations: Iterable[Reservation], day: date, tz: ZoneInfo) -> list[Reservation]:
    """Reservations shown for ``day``, ordered by time slot."""
    rows = [
        reservation
        for reservation in reservations
        if reservation_day(reservation.date, tz) == day and _visible(reservation)
    ]
    # Every row shares the same day, so the time slot decides the order.
    return sorted(rows, key=lambda reservation: (day, _slot_key(reservation)))


def week_bounds(day: date) -> tuple[date, date]:
    start = day - timedelta(days=day.weekday())
    return start, start + timedelta(days=6)


def month_bounds(day: date) -> tuple[date, date]:
    start = day.replace(day=1)
    following = (start + timedelta(days=32)).replace(day=1)
    return start, following - timedelta(days=1)


def metrics(
    reservations: Iterable[Reservation],
    tz: ZoneInfo,
    reference_instant: datetime | None = None,
) -> ScheduleMetrics:
    """Confirmed reservation counts for today, this ISO week and this month."""
    today = today_in(tz, reference_instant)
    week_start, week_end = week_bounds(today)
    month_start, month_end = month_bounds(today)

    days = []
    for reservation in reservations:
        if not reservation.is_confirmed:
            continue
        day = reservation_day(reservation.date, tz)
        if day is not None:
            days.append(day)

    return ScheduleMetrics(
        today=sum(1 for day in days if day == today),
        this_week=sum(1 for day in days if week_start <= day <= week_end),
        this_month=sum(1 for day in days if month_start <= day <= month_end),
    )


def previous_day(day: date) -> date:
    return day - timedelta(days=1)


def next_day(day: date) -> date:
    return day + timedelta(days=1)
