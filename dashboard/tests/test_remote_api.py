import json

import httpx
import pytest

from conftest import TENANT
from dashboard.app.core.errors import AuthError, DataInconsistency, NetworkError
from dashboard.app.services.remote import RemoteApi, parse_reservations


pytestmark = pytest.mark.asyncio


def _api(handler) -> RemoteApi:
    client = httpx.AsyncClient(base_url="https://remote.test", transport=httpx.MockTransport(handler))
    return RemoteApi(client)


async def test_fetch_sends_bearer_and_date():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["date"] = request.url.params.get("date")
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"reservations": [{"id": 7, "date": "2024-06-10", "partySize": "2"}]})

    api = _api(handler)
    rows = await api.fetch_reservations(TENANT, "2024-06-10", token="abc")
    await api.aclose()

    assert seen == {"path": f"/api/dashboard/{TENANT}/reservations", "date": "2024-06-10", "auth": "Bearer abc"}
    assert rows[0].id == "7" and rows[0].party_size == 2


async def test_bare_list_payload_is_accepted():
    api = _api(lambda request: httpx.Response(200, json=[{"id": "rec1", "name": "Ada"}]))

    rows = await api.fetch_demo_reservations(TENANT)

    assert [row.name for row in rows] == ["Ada"]


@pytest.mark.parametrize("payload", [{"reservations": "nope"}, {"reservations": None}, "oops", 42])
async def test_non_list_payload_degrades_to_empty(payload):
    assert parse_reservations(payload) == []


async def test_undecodable_rows_are_skipped():
    rows = parse_reservations([{"id": "ok"}, "junk", {"id": "bad", "partySize": "many"}])

    assert [row.id for row in rows] == ["ok"]


async def test_401_maps_to_auth_error():
    api = _api(lambda request: httpx.Response(401, json={"error": "expired"}))

    with pytest.raises(AuthError):
        await api.fetch_refresh_flag(TENANT, token="abc")


async def test_server_error_maps_to_network_error():
    api = _api(lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(NetworkError) as excinfo:
        await api.update_reservations(TENANT, [], token="abc")
    assert excinfo.value.status_code == 503


async def test_transport_failure_maps_to_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(NetworkError):
        await _api(handler).fetch_demo_refresh_flag(TENANT)


async def test_non_json_body_is_a_data_inconsistency():
    api = _api(lambda request: httpx.Response(200, text="<html>"))

    with pytest.raises(DataInconsistency):
        await api.fetch_config(TENANT, token="abc")


async def test_config_envelope_is_unwrapped():
    api = _api(lambda request: httpx.Response(200, json={"config": {"maxReservations": 8}}))

    assert await api.fetch_config(TENANT, token="abc") == {"maxReservations": 8}


async def test_refresh_flag_is_set_only_by_one():
    flags = iter([{"refresh": 1}, {"refresh": 0}, {}])
    api = _api(lambda request: httpx.Response(200, json=next(flags)))

    assert await api.fetch_refresh_flag(TENANT, token="abc") is True
    assert await api.fetch_refresh_flag(TENANT, token="abc") is False
    assert await api.fetch_refresh_flag(TENANT, token="abc") is False


async def test_login_exchange_and_renewal():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/auth/login/verify":
            assert json.loads(request.content) == {"token": "one-time"}
            return httpx.Response(200, json={"token": "fresh"})
        if request.url.path == "/api/auth/refresh":
            assert request.headers["authorization"] == "Bearer fresh"
            return httpx.Response(200, json={})
        return httpx.Response(404)

    api = _api(handler)

    assert await api.exchange_login_token("one-time") == "fresh"
    with pytest.raises(AuthError):
        await api.renew_credential(token="fresh")


async def test_update_posts_items_as_json_array():
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"ok": True})

    items = [{"restaurantId": TENANT, "recordId": None, "updatedFields": {"name": "Ada"}}]
    await _api(handler).update_reservations(TENANT, items, token="abc")

    assert captured == [("POST", f"/api/dashboard/{TENANT}/updateReservation", items)]
