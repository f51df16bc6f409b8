from __future__ import annotations

from dataclasses import dataclass


class DashboardError(Exception):
    """Base class for every error raised by the dashboard services."""

    user_message = "Something went wrong. Please try again."


@dataclass(frozen=True)
class FieldError:
    field: str
    value: object
    message: str

    def as_dict(self) -> dict[str, object]:
        return {"field": self.field, "value": self.value, "message": self.message}


class FormValidationError(DashboardError):
    """Rejected user input. Raised before anything reaches the network."""

    user_message = "Some fields are invalid."

    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = list(errors)
        fields = ", ".join(error.field for error in self.errors)
        super().__init__(f"Invalid fields: {fields}")


class AuthError(DashboardError):
    """Credential missing, expired or rejected by the remote API."""

    user_message = "Your session has expired. Please log in again."


class NetworkError(DashboardError):
    """Remote call failed at the transport level or returned an error status."""

    user_message = "Reservation service unavailable. Please try again shortly."

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DataInconsistency(DashboardError):
    """Remote payload could not be decoded into the expected shape."""

    user_message = "Received unexpected data from the reservation service."


class ConfigurationError(DashboardError):
    """Tenant configuration value that the service cannot work with."""

    user_message = "The restaurant configuration is invalid."
