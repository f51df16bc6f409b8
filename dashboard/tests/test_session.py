import asyncio
from datetime import timedelta

import pytest

from conftest import TENANT, FakeApi, make_token
from dashboard.app.core.errors import AuthError
from dashboard.app.services.session import SessionManager, SessionState, decode_credential
from dashboard.app.services.storage import MemoryCredentialStore


pytestmark = pytest.mark.asyncio


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def _manager(api: FakeApi, store: MemoryCredentialStore | None = None) -> SessionManager:
    return SessionManager(api, store or MemoryCredentialStore())


async def test_login_token_is_exchanged_stored_and_stripped(api):
    store = MemoryCredentialStore()
    manager = _manager(api, store)
    query = {"token": "one-time", "date": "2024-06-10"}

    state = await manager.bootstrap(query)

    assert state == SessionState.RENEWAL_SCHEDULED
    assert manager.is_authenticated
    assert "token" not in query and query == {"date": "2024-06-10"}
    assert await store.load() == api.exchange_token
    assert manager.current.tenant_id == TENANT
    assert manager.current.subject_email == "owner@example.com"
    assert manager.login_redirect is None
    await manager.close()


async def test_failed_exchange_clears_and_redirects(api):
    store = MemoryCredentialStore()
    await store.save(make_token())
    api.exchange_token = None
    manager = _manager(api, store)

    state = await manager.bootstrap({"token": "stale-link"})

    assert state == SessionState.UNAUTHENTICATED
    assert await store.load() is None
    assert manager.login_redirect == "/login"
    assert not manager.renewal_pending


async def test_stored_credential_is_adopted_without_network(api):
    store = MemoryCredentialStore()
    await store.save(make_token(timedelta(hours=1)))
    manager = _manager(api, store)

    state = await manager.bootstrap({})

    assert state == SessionState.RENEWAL_SCHEDULED
    assert api.calls == []
    await manager.close()


@pytest.mark.parametrize("credential", [make_token(timedelta(minutes=-1)), "not-a-jwt", make_token(tenant_id="")])
async def test_expired_or_malformed_credential_is_discarded(api, credential):
    store = MemoryCredentialStore()
    await store.save(credential)
    manager = _manager(api, store)

    state = await manager.bootstrap()

    assert state == SessionState.UNAUTHENTICATED
    assert await store.load() is None
    assert api.calls == []


async def test_nothing_stored_goes_straight_to_login(api):
    manager = _manager(api)

    assert await manager.bootstrap() == SessionState.UNAUTHENTICATED
    assert manager.login_redirect == "/login"


async def test_near_expiry_renews_immediately_and_reschedules_once(api):
    store = MemoryCredentialStore()
    await store.save(make_token(timedelta(minutes=2)))
    api.renew_token = make_token(timedelta(hours=1))
    manager = _manager(api, store)

    await manager.bootstrap()
    await _settle()

    assert api.count("renew_credential") == 1
    assert await store.load() == api.renew_token
    assert manager.state == SessionState.RENEWAL_SCHEDULED
    assert manager.renewal_pending
    timers = [task for task in asyncio.all_tasks() if task.get_coro().__name__ == "_renew_after" and not task.done()]
    assert len(timers) == 1
    await manager.close()


async def test_renewal_failure_clears_session(api):
    store = MemoryCredentialStore()
    await store.save(make_token(timedelta(minutes=1)))
    api.renew_token = None
    manager = _manager(api, store)

    await manager.bootstrap()
    await _settle()

    assert manager.state == SessionState.UNAUTHENTICATED
    assert await store.load() is None
    assert not manager.renewal_pending


async def test_401_clears_session_and_pending_timer_never_fires(api):
    store = MemoryCredentialStore()
    await store.save(make_token(timedelta(minutes=5, seconds=1)))
    manager = SessionManager(api, store, renewal_lead=timedelta(minutes=5))
    await manager.bootstrap()
    assert manager.renewal_pending

    api.reject_with_401 = True
    with pytest.raises(AuthError):
        await manager.call(api.fetch_reservations, TENANT, "2024-06-10")

    assert manager.state == SessionState.UNAUTHENTICATED
    assert await store.load() is None
    assert not manager.renewal_pending

    api.reject_with_401 = False
    await asyncio.sleep(1.2)
    assert api.count("renew_credential") == 0
    assert await store.load() is None
    assert manager.current is None


async def test_clear_during_inflight_renewal_does_not_resurrect(api):
    store = MemoryCredentialStore()
    await store.save(make_token(timedelta(hours=1)))
    manager = _manager(api, store)
    await manager.bootstrap()

    release = asyncio.Event()
    original = api.renew_credential

    async def slow_renew(*, token):
        await release.wait()
        return await original(token=token)

    api.renew_credential = slow_renew
    renewal = asyncio.create_task(manager.renew())
    await _settle()
    await manager.clear()
    release.set()
    await renewal

    assert manager.state == SessionState.UNAUTHENTICATED
    assert await store.load() is None


async def test_call_without_session_never_hits_network(api):
    manager = _manager(api)

    with pytest.raises(AuthError):
        await manager.call(api.fetch_reservations, TENANT)
    assert api.calls == []


async def test_subscribers_see_transitions(api):
    manager = _manager(api)
    seen = []
    unsubscribe = manager.subscribe(seen.append)

    await manager.establish("one-time")
    await manager.clear()
    unsubscribe()
    await manager.establish("one-time")

    assert seen == [
        SessionState.VERIFYING,
        SessionState.AUTHENTICATED,
        SessionState.RENEWAL_SCHEDULED,
        SessionState.UNAUTHENTICATED,
    ]
    await manager.close()


async def test_decode_credential_reads_claims():
    session = decode_credential(make_token(restaurantId="ignored"))

    assert session.tenant_id == TENANT
    assert session.expires_at.tzinfo is not None


async def test_short_lived_renewals_are_spaced_out(api):
    store = MemoryCredentialStore()
    await store.save(make_token(timedelta(minutes=2)))
    api.renew_token = make_token(timedelta(minutes=1))
    manager = SessionManager(api, store, min_renewal_delay=timedelta(seconds=30))

    await manager.bootstrap()
    await asyncio.sleep(0.05)

    assert api.count("renew_credential") == 1
    assert manager.state == SessionState.RENEWAL_SCHEDULED
    assert manager.renewal_pending
    await manager.close()
