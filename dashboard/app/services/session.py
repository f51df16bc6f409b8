from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, MutableMapping
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, TypeVar

import jwt

from dashboard.app.core.errors import AuthError, DashboardError
from dashboard.app.models import Session
from dashboard.app.services.remote import RemoteApi
from dashboard.app.services.storage import CredentialStore

logger = logging.getLogger(__name__)

T = TypeVar("T")
StateListener = Callable[["SessionState"], None]


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    VERIFYING = "verifying"
    AUTHENTICATED = "authenticated"
    RENEWAL_SCHEDULED = "renewal_scheduled"
    EXPIRED = "expired"


def decode_credential(credential: str) -> Session:
    """Read the claims of a credential without verifying its signature.

    The expiry is only a client-side estimate; the remote API stays the
    authority and answers 401 once the credential is no longer valid.
    """
    try:
        claims = jwt.decode(credential, options={"verify_signature": False, "verify_exp": False})
    except jwt.PyJWTError as exc:
        raise AuthError("Credential could not be decoded") from exc

    exp = claims.get("exp")
    tenant_id = claims.get("tenantId") or claims.get("restaurantId")
    if not isinstance(exp, (int, float)) or isinstance(exp, bool) or not tenant_id:
        raise AuthError("Credential is missing exp or tenant claims")
    return Session(
        credential=credential,
        tenant_id=str(tenant_id),
        subject_email=claims.get("email") or claims.get("subjectEmail") or claims.get("sub"),
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
    )


class SessionManager:
    """Owns the dashboard credential: exchange, persistence, renewal, expiry.

    This is the only component that sends the user back to the login page;
    everything else raises AuthError and lets it come here.
    """

    def __init__(
        self,
        api: RemoteApi,
        store: CredentialStore,
        *,
        renewal_lead: timedelta = timedelta(minutes=5),
        min_renewal_delay: timedelta = timedelta(seconds=30),
        login_path: str = "/login",
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._api = api
        self._store = store
        self._renewal_lead = renewal_lead
        self._min_renewal_delay = min_renewal_delay
        self._renewed_at: datetime | None = None
        self._login_path = login_path
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._state = SessionState.UNAUTHENTICATED
        self._session: Session | None = None
        self._listeners: list[StateListener] = []
        self._renewal_task: asyncio.Task | None = None
        self._generation = 0

    # observable state

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current(self) -> Session | None:
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None and self._state in (
            SessionState.AUTHENTICATED,
            SessionState.RENEWAL_SCHEDULED,
        )

    @property
    def login_redirect(self) -> str | None:
        return self._login_path if self._state == SessionState.UNAUTHENTICATED else None

    @property
    def renewal_pending(self) -> bool:
        return self._renewal_task is not None and not self._renewal_task.done()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, state: SessionState) -> None:
        if state == self._state:
            return
        logger.info("Session %s -> %s", self._state.value, state.value)
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Session state listener failed")

    # lifecycle

    async def bootstrap(self, query: MutableMapping[str, str] | None = None) -> SessionState:
        """Decide the starting state when a dashboard page loads.

        A one-time ``token`` in ``query`` is removed from it so it can't be
        replayed from history or a bookmark.
        """
        login_token = query.pop("token", None) if query is not None else None
        if login_token:
            return await self.establish(login_token)

        stored = await self._store.load()
        if stored:
            try:
                session = decode_credential(stored)
            except AuthError:
                logger.warning("Stored credential is malformed; discarding it")
                await self.clear()
                return self._state
            if session.expires_at > self._now():
                self._adopt(session)
                return self._state
            logger.info("Stored credential expired at %s", session.expires_at.isoformat())
            self._transition(SessionState.EXPIRED)

        await self.clear()
        return self._state

    async def establish(self, login_token: str) -> SessionState:
        self._transition(SessionState.VERIFYING)
        generation = self._invalidate()
        try:
            credential = await self._api.exchange_login_token(login_token)
            session = decode_credential(credential)
        except DashboardError:
            logger.warning("Login token exchange failed", exc_info=True)
            await self.clear()
            return self._state

        if generation != self._generation:
            # cleared or replaced while the exchange was in flight
            return self._state
        await self._store.save(credential)
        self._adopt(session)
        return self._state

    async def renew(self) -> SessionState:
        session = self._session
        if session is None:
            raise AuthError("No session to renew")
        generation = self._generation
        try:
            credential = await self._api.renew_credential(token=session.credential)
            renewed = decode_credential(credential)
        except DashboardError:
            logger.warning("Credential renewal failed", exc_info=True)
            if generation == self._generation:
                await self.clear()
            return self._state

        if generation != self._generation or self._session is not session:
            logger.info("Discarding renewal for a session that is no longer current")
            return self._state
        await self._store.save(credential)
        self._renewed_at = self._now()
        self._adopt(renewed)
        return self._state

    async def clear(self) -> None:
        """Forget the credential and require a new login."""
        self._invalidate()
        self._cancel_renewal()
        self._session = None
        self._renewed_at = None
        await self._store.delete()
        self._transition(SessionState.UNAUTHENTICATED)

    async def close(self) -> None:
        self._cancel_renewal()

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run an authenticated remote call with the current credential."""
        session = self._session
        if session is None or not self.is_authenticated:
            raise AuthError("Not authenticated")
        try:
            return await fn(*args, token=session.credential, **kwargs)
        except AuthError:
            if self._session is session:
                logger.warning("Remote API rejected the credential; clearing session")
                await self.clear()
            raise

    # renewal timer

    def _adopt(self, session: Session) -> None:
        self._session = session
        self._transition(SessionState.AUTHENTICATED)
        self._schedule_renewal(session)

    def _invalidate(self) -> int:
        self._generation += 1
        return self._generation

    def _schedule_renewal(self, session: Session) -> None:
        self._cancel_renewal()
        delay = (session.expires_at - self._renewal_lead - self._now()).total_seconds()
        delay = max(0.0, delay)
        if self._renewed_at is not None:
            # credentials shorter-lived than the lead would otherwise renew back to back
            earliest = (self._renewed_at + self._min_renewal_delay - self._now()).total_seconds()
            delay = max(delay, earliest)
        generation = self._generation
        self._renewal_task = asyncio.create_task(self._renew_after(delay, generation))
        logger.debug("Renewal scheduled in %.1fs", delay)
        self._transition(SessionState.RENEWAL_SCHEDULED)

    def _cancel_renewal(self) -> None:
        task = self._renewal_task
        self._renewal_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _renew_after(self, delay: float, generation: int) -> None:
        await asyncio.sleep(delay)
        if generation != self._generation or self._session is None:
            return
        self._transition(SessionState.AUTHENTICATED)
        await self.renew()
