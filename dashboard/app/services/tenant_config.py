from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError

from dashboard.app.core.errors import ConfigurationError, DataInconsistency, FieldError, FormValidationError
from dashboard.app.models import EXCLUDED_CONFIG_KEYS, TenantConfig
from dashboard.app.services.remote import RemoteApi
from dashboard.app.services.schedule import resolve_zone
from dashboard.app.services.session import SessionManager
from dashboard.app.services.timewindow import hour_fields, normalize_hours

logger = logging.getLogger(__name__)


def _field_errors(exc: ValidationError) -> list[FieldError]:
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "form"
        errors.append(FieldError(field, error.get("input"), error.get("msg", "Invalid value")))
    return errors


def _check_zone(name: Any) -> FieldError | None:
    try:
        resolve_zone(name if isinstance(name, str) else None)
    except ConfigurationError:
        return FieldError("timeZone", name, "Unknown time zone")
    return None


def validate_config_form(form: Mapping[str, Any]) -> TenantConfig:
    """Validate a settings form in full; raises with every bad field at once."""
    errors: list[FieldError] = []
    data = {key: value for key, value in form.items() if key not in EXCLUDED_CONFIG_KEYS}

    try:
        hours = normalize_hours(data)
    except FormValidationError as exc:
        errors.extend(exc.errors)
        hours = {}
    data.update(hours)

    if data.get("timeZone"):
        zone_error = _check_zone(data["timeZone"])
        if zone_error is not None:
            errors.append(zone_error)

    config = None
    try:
        config = TenantConfig.model_validate(data)
    except ValidationError as exc:
        errors.extend(_field_errors(exc))

    if errors or config is None:
        raise FormValidationError(errors)
    return config


class TenantConfigService:
    """Reads and updates a restaurant's business-hours configuration."""

    def __init__(self, api: RemoteApi, session: SessionManager) -> None:
        self._api = api
        self._session = session

    async def load(self, tenant_id: str) -> TenantConfig:
        data = await self._session.call(self._api.fetch_config, tenant_id)
        try:
            return TenantConfig.model_validate(data)
        except ValidationError:
            logger.warning("Config for %s failed validation; keeping defaults for bad fields", tenant_id, exc_info=True)
            cleaned = {key: value for key, value in data.items() if key not in ("maxReservations", "futureCutoff")}
            try:
                return TenantConfig.model_validate(cleaned)
            except ValidationError as exc:
                raise DataInconsistency(f"Config for {tenant_id} could not be decoded") from exc

    async def update(self, tenant_id: str, form: Mapping[str, Any]) -> TenantConfig:
        config = validate_config_form(form)
        payload = {key: value for key, value in config.to_wire().items() if key not in EXCLUDED_CONFIG_KEYS}
        payload["restaurantId"] = tenant_id
        await self._session.call(self._api.update_config, tenant_id, payload)
        logger.info("Updated config for %s", tenant_id)
        return config


class AccountForm(BaseModel):
    """New restaurant account, as entered on the account-creation page."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    slug: str = Field(min_length=1, max_length=100)
    restaurant_id: str = Field(min_length=1, alias="restaurantId")
    base_id: str = Field(default="", alias="baseId")
    table_name: str = Field(default="", alias="tableName")
    max_reservations: int = Field(default=10, ge=0, alias="maxReservations")
    future_cutoff_days: int = Field(default=30, ge=0, alias="futureCutoff")
    time_zone: str = Field(default="America/Los_Angeles", alias="timeZone")


class AccountService:
    """Login-link requests and account creation; neither needs a session."""

    def __init__(self, api: RemoteApi) -> None:
        self._api = api

    async def request_login_link(self, email: str) -> None:
        if not email or "@" not in email:
            raise FormValidationError([FieldError("email", email, "Please enter your email")])
        await self._api.request_login_link(email)

    async def create_account(self, form: Mapping[str, Any]) -> dict[str, Any]:
        errors: list[FieldError] = []
        try:
            hours = normalize_hours(form)
        except FormValidationError as exc:
            errors.extend(exc.errors)
            hours = {}

        hour_keys = {field for _day, open_field, close_field in hour_fields() for field in (open_field, close_field)}
        account = None
        try:
            account = AccountForm.model_validate({k: v for k, v in form.items() if k not in hour_keys})
        except ValidationError as exc:
            errors.extend(_field_errors(exc))
        if account is not None:
            zone_error = _check_zone(account.time_zone)
            if zone_error is not None:
                errors.append(zone_error)

        if errors or account is None:
            raise FormValidationError(errors)

        payload = account.model_dump(by_alias=True)
        for _day, open_field, close_field in hour_fields():
            payload[open_field] = hours.get(open_field, "")
            payload[close_field] = hours.get(close_field, "")
        await self._api.create_account(payload)
        logger.info("Created account %s", account.restaurant_id)
        return payload
