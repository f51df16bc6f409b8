from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Protocol

from pydantic import ValidationError

from dashboard.app.core.errors import AuthError, DashboardError, FieldError, FormValidationError
from dashboard.app.models import RefreshKind, RefreshSignal, Reservation
from dashboard.app.services import schedule
from dashboard.app.services.broadcast import BroadcastChannel, Subscription, VisibilityEvents, make_signal
from dashboard.app.services.remote import RemoteApi
from dashboard.app.services.session import SessionManager

logger = logging.getLogger(__name__)


class ReservationGateway(Protocol):
    tenant_id: str

    async def fetch(self, day: str | None) -> list[Reservation]: ...

    async def push(self, items: list[dict[str, Any]]) -> None: ...

    async def changed(self) -> bool: ...

    def item(self, reservation: Reservation) -> dict[str, Any]: ...


class TenantGateway:
    """Authenticated per-tenant endpoints, routed through the session."""

    def __init__(self, api: RemoteApi, session: SessionManager, tenant_id: str) -> None:
        self._api = api
        self._session = session
        self.tenant_id = tenant_id

    async def fetch(self, day: str | None) -> list[Reservation]:
        return await self._session.call(self._api.fetch_reservations, self.tenant_id, day)

    async def push(self, items: list[dict[str, Any]]) -> None:
        await self._session.call(self._api.update_reservations, self.tenant_id, items)

    async def changed(self) -> bool:
        return await self._session.call(self._api.fetch_refresh_flag, self.tenant_id)

    def item(self, reservation: Reservation) -> dict[str, Any]:
        return {
            "restaurantId": self.tenant_id,
            "recordId": reservation.id,
            "updatedFields": reservation.updated_fields(),
        }


class DemoGateway:
    """Public demo endpoints. The demo backend reads the tenant from the URL."""

    def __init__(self, api: RemoteApi, tenant_id: str) -> None:
        self._api = api
        self.tenant_id = tenant_id

    async def fetch(self, day: str | None) -> list[Reservation]:
        return await self._api.fetch_demo_reservations(self.tenant_id, day)

    async def push(self, items: list[dict[str, Any]]) -> None:
        await self._api.update_demo_reservations(self.tenant_id, items)

    async def changed(self) -> bool:
        return await self._api.fetch_demo_refresh_flag(self.tenant_id)

    def item(self, reservation: Reservation) -> dict[str, Any]:
        fields = reservation.updated_fields()
        fields.pop("restaurantId", None)
        return {"recordId": reservation.id, "updatedFields": fields}


def _field_name(field: str) -> str | None:
    """Python attribute for a wire alias or attribute name, None for extras."""
    for name, info in Reservation.model_fields.items():
        if field in (name, info.alias):
            return name
    return None


class ReservationSynchronizer:
    """Working copy of one view's reservations, kept in step with the remote book.

    Three independent triggers cause a re-fetch: the change-flag poll, a
    RefreshSignal on the broadcast channel and the page becoming visible.
    """

    def __init__(
        self,
        gateway: ReservationGateway,
        *,
        day: date,
        time_zone: str,
        channel: BroadcastChannel | None = None,
        visibility: VisibilityEvents | None = None,
        poll_interval: float = 3.0,
        editable: bool = True,
    ) -> None:
        self._gateway = gateway
        self._channel = channel
        self._visibility = visibility
        self.poll_interval = poll_interval
        self.editable = editable
        self.day = day
        self.time_zone = time_zone
        self.reservations: list[Reservation] = []
        self.loading = False
        self.last_error: DashboardError | None = None

        self._write_lock = asyncio.Lock()
        self._issued = 0
        self._foreground = 0
        self._applied = 0
        self._poll_task: asyncio.Task | None = None
        self._subscription: Subscription | None = None
        self._visibility_listener = None

    @property
    def tenant_id(self) -> str:
        return self._gateway.tenant_id

    @property
    def started(self) -> bool:
        return self._poll_task is not None

    # reads

    async def fetch_all(self, day: date | None = None, *, background: bool = False) -> list[Reservation]:
        """Replace the working copy with the remote book for ``day``.

        Only the latest-issued fetch may overwrite the working copy, so a slow
        response can never roll the view back behind a newer one.
        """
        if day is not None:
            self.day = day
        self._issued += 1
        ticket = self._issued
        requested_day = self.day.isoformat()
        if not background:
            self._foreground += 1
            self.loading = True
        try:
            rows = await self._gateway.fetch(requested_day)
        except AuthError:
            raise
        except DashboardError as exc:
            logger.warning("Fetching reservations for %s failed: %s", self.tenant_id, exc)
            self.last_error = exc
            return self.reservations
        finally:
            if not background:
                self._foreground -= 1
                self.loading = self._foreground > 0

        if ticket < self._applied:
            logger.debug("Dropping stale fetch #%d (already applied #%d)", ticket, self._applied)
            return self.reservations
        self._applied = ticket
        if self.editable:
            rows = [*rows, Reservation.blank(requested_day, self.tenant_id)]
        self.reservations = rows
        self.last_error = None
        return self.reservations

    async def invalidate(self) -> list[Reservation]:
        self.reservations = []
        return await self.fetch_all()

    async def select_date(self, day: date) -> list[Reservation]:
        if day == self.day and self.reservations:
            return self.reservations
        self.day = day
        return await self.invalidate()

    async def previous_day(self) -> list[Reservation]:
        return await self.select_date(schedule.previous_day(self.day))

    async def next_day(self) -> list[Reservation]:
        return await self.select_date(schedule.next_day(self.day))

    async def set_time_zone(self, time_zone: str) -> list[Reservation]:
        if time_zone == self.time_zone:
            return self.reservations
        logger.info("Time zone for %s changed %s -> %s", self.tenant_id, self.time_zone, time_zone)
        self.time_zone = time_zone
        return await self.invalidate()

    # local edits

    def _resolve(self, record_id: str | None, index: int | None) -> int:
        if record_id:
            for position, row in enumerate(self.reservations):
                if row.id == record_id:
                    return position
            raise KeyError(record_id)
        # Unsaved rows have no id yet; fall back to their position.
        if index is None or not 0 <= index < len(self.reservations) or self.reservations[index].id:
            raise KeyError(index)
        return index

    def apply_local_edit(self, record_id: str | None, index: int | None, field: str, value: Any) -> Reservation:
        """Edit the in-memory working copy only; nothing is sent upstream."""
        position = self._resolve(record_id, index)
        row = self.reservations[position]
        name = _field_name(field)
        if name == "id":
            raise FormValidationError([FieldError(field, value, "The record id cannot be edited")])

        data = row.model_dump(by_alias=True)
        key = (Reservation.model_fields[name].alias or name) if name else field
        data[key] = value
        try:
            updated = Reservation.model_validate(data)
        except ValidationError as exc:
            message = exc.errors()[0]["msg"] if exc.errors() else "Invalid value"
            raise FormValidationError([FieldError(field, value, message)]) from None
        self.reservations[position] = updated
        return updated

    # writes

    async def add_blank_row(self, day: date | None = None) -> list[Reservation]:
        """Create an empty reservation upstream, then reload."""
        requested = (day or self.day).isoformat()
        blank = Reservation.blank(requested, self.tenant_id)
        async with self._write_lock:
            # the row only enters the working copy through the re-fetch
            try:
                await self._gateway.push([self._gateway.item(blank)])
            except AuthError:
                raise
            except DashboardError as exc:
                logger.warning("Adding a row for %s failed: %s", self.tenant_id, exc)
                self.last_error = exc
                return self.reservations
            return await self.fetch_all()

    async def push_edits(self) -> list[Reservation]:
        """Send every non-empty row as an upsert batch, then reconcile."""
        async with self._write_lock:
            # built under the lock so an overlapping push sees the reconciled copy
            items = [self._gateway.item(row) for row in self.reservations if not row.is_empty()]
            if items:
                try:
                    await self._gateway.push(items)
                except AuthError:
                    raise
                except DashboardError as exc:
                    logger.warning("Pushing %d rows for %s failed: %s", len(items), self.tenant_id, exc)
                    self.last_error = exc
                    return self.reservations
            rows = await self.fetch_all()
        if items and self._channel is not None:
            await self._publish(make_signal(RefreshKind.CHANGE, self.tenant_id))
        return rows

    async def _publish(self, signal: RefreshSignal) -> None:
        try:
            await self._channel.publish(signal)
        except Exception:
            logger.warning("Publishing %s failed", signal.kind.value, exc_info=True)

    # triggers

    async def start(self) -> None:
        if self.started:
            return
        self._poll_task = asyncio.create_task(self._poll_loop())
        if self._channel is not None:
            self._subscription = await self._channel.subscribe(self._on_signal)
        if self._visibility is not None:
            self._visibility_listener = self._on_visibility
            self._visibility.add_listener(self._visibility_listener)

    async def close(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()
        if self._visibility is not None and self._visibility_listener is not None:
            self._visibility.remove_listener(self._visibility_listener)
            self._visibility_listener = None

    async def poll_once(self) -> bool:
        """One change-flag check; fetches only when the flag is set."""
        if not await self._gateway.changed():
            return False
        logger.debug("Change flag set for %s", self.tenant_id)
        await self.fetch_all(background=True)
        return True

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except AuthError:
                # a new login may be in flight; a lost session unmounts the view
                logger.info("Skipping poll for %s: not authenticated", self.tenant_id)
            except DashboardError as exc:
                logger.warning("Change-flag poll for %s failed: %s", self.tenant_id, exc)
            await asyncio.sleep(self.poll_interval)

    async def _on_signal(self, signal: RefreshSignal) -> None:
        if not signal.applies_to(self.tenant_id):
            return
        logger.debug("Refresh signal %s for %s", signal.kind.value, self.tenant_id)
        await self._background_fetch()

    async def _on_visibility(self, state: str) -> None:
        if state == "visible":
            await self._background_fetch()

    async def _background_fetch(self) -> None:
        try:
            await self.fetch_all(background=True)
        except AuthError:
            logger.info("Refresh for %s skipped: session is no longer valid", self.tenant_id)
