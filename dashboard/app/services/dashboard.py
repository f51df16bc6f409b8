from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Callable

from dashboard.app.core.errors import AuthError, DashboardError
from dashboard.app.services import schedule
from dashboard.app.services.session import SessionManager, SessionState
from dashboard.app.services.synchronizer import ReservationSynchronizer
from dashboard.app.services.tenant_config import TenantConfigService

logger = logging.getLogger(__name__)


class DashboardView:
    """One open dashboard: a synchronizer plus the schedule views derived from it."""

    def __init__(
        self,
        synchronizer: ReservationSynchronizer,
        *,
        config_service: TenantConfigService | None = None,
        session: SessionManager | None = None,
    ) -> None:
        self.synchronizer = synchronizer
        self._config_service = config_service
        self._session = session
        self._unsubscribe: Callable[[], None] | None = None
        self._closing: asyncio.Task | None = None
        self.mounted = False

    @property
    def tenant_id(self) -> str:
        return self.synchronizer.tenant_id

    async def mount(self) -> None:
        if self.mounted:
            return
        self.mounted = True
        if self._session is not None:
            self._unsubscribe = self._session.subscribe(self._on_session_state)
        await self.synchronizer.start()
        if not await self.reload_config():
            await self.synchronizer.fetch_all()

    async def unmount(self) -> None:
        if not self.mounted:
            return
        self.mounted = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.synchronizer.close()
        logger.info("Unmounted dashboard for %s", self.tenant_id)

    async def reload_config(self) -> bool:
        """Pick up the tenant time zone; True when that caused a re-fetch."""
        if self._config_service is None:
            return False
        try:
            config = await self._config_service.load(self.tenant_id)
        except AuthError:
            raise
        except DashboardError as exc:
            logger.warning("Loading config for %s failed: %s", self.tenant_id, exc)
            return False
        if config.time_zone == self.synchronizer.time_zone:
            return False
        await self.synchronizer.set_time_zone(config.time_zone)
        return True

    def _on_session_state(self, state: SessionState) -> None:
        if state == SessionState.UNAUTHENTICATED and self.mounted:
            self._closing = asyncio.get_running_loop().create_task(self.unmount())

    def snapshot(self, now: datetime | None = None) -> dict[str, Any]:
        sync = self.synchronizer
        tz = schedule.zone_or_utc(sync.time_zone)
        rows = sync.reservations
        return {
            "tenant_id": self.tenant_id,
            "date": sync.day.isoformat(),
            "time_zone": sync.time_zone,
            "loading": sync.loading,
            "error": sync.last_error.user_message if sync.last_error else None,
            "agenda": [row.model_dump(by_alias=True) for row in schedule.agenda(rows, sync.day, tz)],
            "drafts": [
                {"index": index, **row.model_dump(by_alias=True)}
                for index, row in enumerate(rows)
                if row.id is None and schedule.reservation_day(row.date, tz) == sync.day
            ],
            "metrics": schedule.metrics(rows, tz, now).as_dict(),
        }


class ViewRegistry:
    """Mounted views, keyed by (kind, tenant)."""

    def __init__(self) -> None:
        self._views: dict[tuple[str, str], DashboardView] = {}

    def get(self, kind: str, tenant_id: str) -> DashboardView | None:
        view = self._views.get((kind, tenant_id))
        if view is not None and not view.mounted:
            self._views.pop((kind, tenant_id), None)
            return None
        return view

    async def mount(self, kind: str, view: DashboardView) -> DashboardView:
        self._views[(kind, view.tenant_id)] = view
        try:
            await view.mount()
        except Exception:
            self._views.pop((kind, view.tenant_id), None)
            await view.unmount()
            raise
        return view

    async def unmount(self, kind: str, tenant_id: str) -> bool:
        view = self._views.pop((kind, tenant_id), None)
        if view is None:
            return False
        await view.unmount()
        return True

    async def close(self) -> None:
        for key in list(self._views):
            view = self._views.pop(key)
            await view.unmount()

    def __len__(self) -> int:
        return len(self._views)


def initial_day(time_zone: str, requested: date | None = None) -> date:
    return requested or schedule.today_in(schedule.zone_or_utc(time_zone))
