from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from dashboard.app.core.errors import AuthError, DataInconsistency, NetworkError
from dashboard.app.models import Reservation

logger = logging.getLogger(__name__)


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def parse_reservations(data: Any) -> list[Reservation]:
    """Decode a reservation listing; anything malformed degrades to empty."""
    rows = data.get("reservations", data) if isinstance(data, dict) else data
    if rows is None:
        return []
    if not isinstance(rows, list):
        logger.warning("Reservation payload is %s, not a list; treating as empty", type(rows).__name__)
        return []
    reservations: list[Reservation] = []
    for row in rows:
        if not isinstance(row, dict):
            logger.warning("Skipping non-object reservation row: %r", row)
            continue
        try:
            reservations.append(Reservation.model_validate(row))
        except ValidationError:
            logger.warning("Skipping undecodable reservation row id=%r", row.get("id"), exc_info=True)
    return reservations


class RemoteApi:
    """Thin client for the remote reservation/config service."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_url(cls, base_url: str, *, timeout: float | None = None) -> "RemoteApi":
        return cls(httpx.AsyncClient(base_url=base_url, timeout=timeout))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise NetworkError(f"{method} {path} failed: {exc.__class__.__name__}") from exc

        if response.status_code == 401:
            raise AuthError(f"{method} {path} rejected the credential")
        if response.is_error:
            raise NetworkError(f"{method} {path} returned {response.status_code}", status_code=response.status_code)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise DataInconsistency(f"{method} {path} returned a non-JSON body") from exc

    def _token_from(self, data: Any) -> str:
        token = data.get("token") if isinstance(data, dict) else None
        if not token or not isinstance(token, str):
            raise AuthError("No credential in token response")
        return token

    # auth

    async def request_login_link(self, email: str) -> None:
        await self._request("POST", "/api/auth/login", json={"email": email})

    async def exchange_login_token(self, login_token: str) -> str:
        data = await self._request("POST", "/api/auth/login/verify", json={"token": login_token})
        return self._token_from(data)

    async def renew_credential(self, *, token: str) -> str:
        data = await self._request("POST", "/api/auth/refresh", headers=_bearer(token))
        return self._token_from(data)

    # tenant dashboard

    async def fetch_reservations(self, tenant_id: str, day: str | None = None, *, token: str) -> list[Reservation]:
        params = {"date": day} if day else None
        data = await self._request(
            "GET", f"/api/dashboard/{tenant_id}/reservations", params=params, headers=_bearer(token)
        )
        return parse_reservations(data)

    async def update_reservations(self, tenant_id: str, items: list[dict[str, Any]], *, token: str) -> None:
        await self._request(
            "POST", f"/api/dashboard/{tenant_id}/updateReservation", json=items, headers=_bearer(token)
        )

    async def fetch_refresh_flag(self, tenant_id: str, *, token: str) -> bool:
        data = await self._request("GET", f"/api/dashboard/{tenant_id}/refreshFlag", headers=_bearer(token))
        return _flag(data)

    async def fetch_config(self, tenant_id: str, *, token: str) -> dict[str, Any]:
        data = await self._request("GET", f"/api/dashboard/{tenant_id}/config", headers=_bearer(token))
        if isinstance(data, dict) and isinstance(data.get("config"), dict):
            data = data["config"]
        if not isinstance(data, dict):
            raise DataInconsistency("Config payload is not an object")
        return data

    async def update_config(self, tenant_id: str, payload: dict[str, Any], *, token: str) -> None:
        await self._request("POST", f"/api/dashboard/{tenant_id}/updateConfig", json=payload, headers=_bearer(token))

    # public demo dashboard

    async def fetch_demo_reservations(self, tenant_id: str, day: str | None = None) -> list[Reservation]:
        params = {"date": day} if day else None
        data = await self._request("GET", f"/api/demo-dashboard/{tenant_id}/reservations", params=params)
        return parse_reservations(data)

    async def update_demo_reservations(self, tenant_id: str, items: list[dict[str, Any]]) -> None:
        await self._request("POST", f"/api/demo-dashboard/{tenant_id}/updateReservation", json=items)

    async def fetch_demo_refresh_flag(self, tenant_id: str) -> bool:
        return _flag(await self._request("GET", f"/api/demo-dashboard/{tenant_id}/refreshFlag"))

    # accounts

    async def create_account(self, payload: dict[str, Any]) -> Any:
        return await self._request("POST", "/api/account/create", json=payload)


def _flag(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    return data.get("refresh") == 1
