from datetime import datetime, timedelta, timezone

import jwt
import pytest

from dashboard.app.core.errors import AuthError
from dashboard.app.models import Reservation

TENANT = "mollyscafe1"


def make_token(expires_in: timedelta = timedelta(hours=1), tenant_id: str = TENANT, **claims) -> str:
    exp = datetime.now(timezone.utc) + expires_in
    payload = {"exp": int(exp.timestamp()), "tenantId": tenant_id, "email": "owner@example.com", **claims}
    return jwt.encode(payload, "test-secret", algorithm="HS256")


class FakeApi:
    """Stands in for RemoteApi; keeps the remote reservation book in memory."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.rows: list[dict] = []
        self.config: dict = {"maxReservations": 10, "futureCutoff": 30, "timeZone": "America/Los_Angeles"}
        self.refresh = 0
        self.exchange_token: str | None = make_token()
        self.renew_token: str | None = make_token(timedelta(hours=2))
        self.pushed: list[list[dict]] = []
        self.config_updates: list[dict] = []
        self.accounts: list[dict] = []
        self.login_links: list[str] = []
        self.reject_with_401 = False
        self._next_id = 100

    def _check(self, name: str, token: str | None = None) -> None:
        self.calls.append(name)
        if token is not None and self.reject_with_401:
            raise AuthError(f"{name} rejected")

    def count(self, name: str) -> int:
        return self.calls.count(name)

    async def request_login_link(self, email: str) -> None:
        self._check("request_login_link")
        self.login_links.append(email)

    async def exchange_login_token(self, login_token: str) -> str:
        self._check("exchange_login_token")
        if self.exchange_token is None:
            raise AuthError("Invalid login token")
        return self.exchange_token

    async def renew_credential(self, *, token: str) -> str:
        self._check("renew_credential", token)
        if self.renew_token is None:
            raise AuthError("Renewal refused")
        return self.renew_token

    async def fetch_reservations(self, tenant_id: str, day: str | None = None, *, token: str) -> list[Reservation]:
        self._check("fetch_reservations", token)
        return [Reservation.model_validate(row) for row in self.rows]

    async def update_reservations(self, tenant_id: str, items: list[dict], *, token: str) -> None:
        self._check("update_reservations", token)
        self._apply(items)

    async def fetch_refresh_flag(self, tenant_id: str, *, token: str) -> bool:
        self._check("fetch_refresh_flag", token)
        return self.refresh == 1

    async def fetch_config(self, tenant_id: str, *, token: str) -> dict:
        self._check("fetch_config", token)
        return dict(self.config)

    async def update_config(self, tenant_id: str, payload: dict, *, token: str) -> None:
        self._check("update_config", token)
        self.config_updates.append(payload)

    async def fetch_demo_reservations(self, tenant_id: str, day: str | None = None) -> list[Reservation]:
        self._check("fetch_demo_reservations")
        return [Reservation.model_validate(row) for row in self.rows]

    async def update_demo_reservations(self, tenant_id: str, items: list[dict]) -> None:
        self._check("update_demo_reservations")
        self._apply(items)

    async def fetch_demo_refresh_flag(self, tenant_id: str) -> bool:
        self._check("fetch_demo_refresh_flag")
        return self.refresh == 1

    async def create_account(self, payload: dict) -> dict:
        self._check("create_account")
        self.accounts.append(payload)
        return {"ok": True}

    async def aclose(self) -> None:
        self.calls.append("aclose")

    def _apply(self, items: list[dict]) -> None:
        self.pushed.append(items)
        for item in items:
            fields = dict(item["updatedFields"])
            if item["recordId"] is None:
                self._next_id += 1
                self.rows.append({"id": f"rec{self._next_id}", **fields})
                continue
            for row in self.rows:
                if row["id"] == item["recordId"]:
                    row.update(fields)


@pytest.fixture()
def api() -> FakeApi:
    return FakeApi()
