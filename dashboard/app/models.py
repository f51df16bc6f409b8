from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from dashboard.app.services.timewindow import hour_fields


class ReservationStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    BLOCKED = "blocked"


# Keys the dashboard derives for display; never written back upstream.
DISPLAY_ONLY_KEYS = frozenset({"dateFormatted", "rawConfirmationCode"})


class Reservation(BaseModel):
    """One row of the reservation book.

    Unknown keys from the remote service are kept as extras and sent back
    untouched on update.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = None
    tenant_id: str | None = Field(default=None, alias="restaurantId")
    date: str = ""
    time_slot: str | None = Field(default=None, alias="timeSlot")
    name: str | None = None
    party_size: int | None = Field(default=None, alias="partySize")
    contact_info: str | None = Field(default=None, alias="contactInfo")
    status: str | None = None
    confirmation_code: str | None = Field(default=None, alias="confirmationCode")

    @field_validator("id", "confirmation_code", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("date", mode="before")
    @classmethod
    def _date_text(cls, value: Any) -> Any:
        return "" if value is None else str(value)

    @field_validator("party_size", mode="before")
    @classmethod
    def _party_size(cls, value: Any) -> Any:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
            try:
                return int(value)
            except ValueError:
                raise ValueError("party size must be a whole number") from None
        return value

    @classmethod
    def blank(cls, day: str, tenant_id: str | None = None) -> "Reservation":
        """Empty editable row pre-filled with the date."""
        return cls(
            date=day,
            tenant_id=tenant_id,
            time_slot="",
            name="",
            contact_info="",
            status="",
            confirmation_code=None,
        )

    @property
    def status_value(self) -> ReservationStatus | None:
        try:
            return ReservationStatus((self.status or "").strip().lower())
        except ValueError:
            return None

    @property
    def is_confirmed(self) -> bool:
        return self.status_value is ReservationStatus.CONFIRMED

    @property
    def is_blocked(self) -> bool:
        return self.status_value is ReservationStatus.BLOCKED

    def is_empty(self) -> bool:
        """True when nothing but the pre-filled date/tenant has been entered."""
        fields = (self.time_slot, self.name, self.contact_info, self.status, self.confirmation_code)
        if any(value not in (None, "") for value in fields) or self.party_size is not None:
            return False
        return not any(value not in (None, "") for value in (self.model_extra or {}).values())

    def updated_fields(self) -> dict[str, Any]:
        """Wire representation of the editable fields (no id, no display keys)."""
        data = self.model_dump(by_alias=True, exclude={"id"})
        for key in DISPLAY_ONLY_KEYS:
            data.pop(key, None)
        return data


class DayHours(BaseModel):
    open: str = ""
    close: str = ""

    @property
    def closed(self) -> bool:
        return not self.open and not self.close


NUMERIC_CONFIG_KEYS = ("maxReservations", "futureCutoff")
# Record bookkeeping keys owned by the remote service.
EXCLUDED_CONFIG_KEYS = frozenset(
    {"restaurantId", "baseId", "tableId", "name", "autonumber", "slug", "calibratedTime", "tableName"}
)


def coerce_count(value: Any) -> int:
    """Integer coercion used by the settings form: unreadable values become 0."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value or "").strip()
    digits = ""
    for index, char in enumerate(text):
        if char.isdigit() or (index == 0 and char in "+-"):
            digits += char
        else:
            break
    try:
        return int(digits)
    except ValueError:
        return 0


class TenantConfig(BaseModel):
    """Business-hours configuration for one restaurant."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    max_reservations: int = Field(default=0, ge=0, alias="maxReservations")
    future_cutoff_days: int = Field(default=0, ge=0, alias="futureCutoff")
    time_zone: str = Field(default="America/Los_Angeles", alias="timeZone")
    hours: dict[str, DayHours] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _fold_hours(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        hours = dict(data.get("hours") or {})
        for day, open_field, close_field in hour_fields():
            if open_field in data or close_field in data:
                hours[day] = {
                    "open": data.pop(open_field, "") or "",
                    "close": data.pop(close_field, "") or "",
                }
        data["hours"] = hours
        for key in NUMERIC_CONFIG_KEYS:
            if key in data:
                data[key] = coerce_count(data[key])
        if not data.get("timeZone") and not data.get("time_zone"):
            data.pop("timeZone", None)
            data.pop("time_zone", None)
        return data

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude={"hours"})
        for day, open_field, close_field in hour_fields():
            hours = self.hours.get(day, DayHours())
            data[open_field] = hours.open
            data[close_field] = hours.close
        return data


class RefreshKind(str, Enum):
    COMPLETE = "reservation.complete"
    CHANGE = "reservation.change"
    CANCEL = "reservation.cancel"


class RefreshSignal(BaseModel):
    """Cross-view nudge to re-fetch. Carries no reservation data."""

    model_config = ConfigDict(populate_by_name=True)

    kind: RefreshKind = Field(alias="type")
    tenant_id: str | None = Field(default=None, alias="tenantId")
    timestamp: float | None = None

    def applies_to(self, tenant_id: str) -> bool:
        return self.tenant_id is None or self.tenant_id == tenant_id


class Session(BaseModel):
    credential: str
    tenant_id: str
    subject_email: str | None = None
    expires_at: datetime
