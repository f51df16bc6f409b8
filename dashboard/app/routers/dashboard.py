from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status

from dashboard.app.core.runtime import Runtime
from dashboard.app.models import RefreshSignal
from dashboard.app.routers.deps import get_runtime, require_tenant
from dashboard.app.routers.schemas import DashboardOut, NavigateIn, NewRowIn, RowEditIn, VisibilityIn
from dashboard.app.services.dashboard import DashboardView, initial_day
from dashboard.app.services.synchronizer import DemoGateway, ReservationSynchronizer, TenantGateway


router = APIRouter()

TENANT = "tenant"
DEMO = "demo"


async def _tenant_view(rt: Runtime, tenant_id: str, day: date | None = None) -> DashboardView:
    require_tenant(rt, tenant_id)
    view = rt.views.get(TENANT, tenant_id)
    if view is None:
        time_zone = rt.settings.DEFAULT_TIME_ZONE
        synchronizer = ReservationSynchronizer(
            TenantGateway(rt.api, rt.session, tenant_id),
            day=initial_day(time_zone, day),
            time_zone=time_zone,
            channel=rt.channel,
            visibility=rt.visibility,
            poll_interval=rt.settings.POLL_INTERVAL_SECONDS,
        )
        view = DashboardView(synchronizer, config_service=rt.config_service, session=rt.session)
        await rt.views.mount(TENANT, view)
    elif day is not None:
        await view.synchronizer.select_date(day)
    return view


async def _mounted_view(rt: Runtime, tenant_id: str) -> DashboardView:
    require_tenant(rt, tenant_id)
    view = rt.views.get(TENANT, tenant_id)
    if view is None:
        raise HTTPException(status.HTTP_409_CONFLICT, detail="Open the dashboard before editing it")
    return view


@router.get("/dashboard/{tenant_id}", response_model=DashboardOut)
async def show_dashboard(
    tenant_id: str,
    date: date | None = None,
    rt: Runtime = Depends(get_runtime),
) -> dict:
    view = await _tenant_view(rt, tenant_id, date)
    return view.snapshot()


@router.post("/dashboard/{tenant_id}/rows", response_model=DashboardOut, status_code=status.HTTP_201_CREATED)
async def add_row(tenant_id: str, payload: NewRowIn, rt: Runtime = Depends(get_runtime)) -> dict:
    view = await _mounted_view(rt, tenant_id)
    await view.synchronizer.add_blank_row(payload.date)
    return view.snapshot()


@router.patch("/dashboard/{tenant_id}/rows", response_model=DashboardOut)
async def edit_row(tenant_id: str, payload: RowEditIn, rt: Runtime = Depends(get_runtime)) -> dict:
    view = await _mounted_view(rt, tenant_id)
    try:
        view.synchronizer.apply_local_edit(payload.record_id, payload.index, payload.field, payload.value)
    except KeyError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Row not found") from exc
    return view.snapshot()


@router.post("/dashboard/{tenant_id}/push", response_model=DashboardOut)
async def push_rows(tenant_id: str, rt: Runtime = Depends(get_runtime)) -> dict:
    view = await _mounted_view(rt, tenant_id)
    await view.synchronizer.push_edits()
    return view.snapshot()


@router.post("/dashboard/{tenant_id}/navigate", response_model=DashboardOut)
async def navigate(tenant_id: str, payload: NavigateIn, rt: Runtime = Depends(get_runtime)) -> dict:
    view = await _mounted_view(rt, tenant_id)
    sync = view.synchronizer
    if payload.date is not None:
        await sync.select_date(payload.date)
    elif payload.direction == "previous":
        await sync.previous_day()
    elif payload.direction == "next":
        await sync.next_day()
    else:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Give a date or a direction")
    return view.snapshot()


@router.post("/dashboard/{tenant_id}/visibility", response_model=DashboardOut)
async def report_visibility(tenant_id: str, payload: VisibilityIn, rt: Runtime = Depends(get_runtime)) -> dict:
    """The page hosting the dashboard was hidden or shown again."""
    view = await _mounted_view(rt, tenant_id)
    await rt.visibility.set_state(payload.state)
    return view.snapshot()


@router.delete("/dashboard/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_dashboard(tenant_id: str, rt: Runtime = Depends(get_runtime)) -> None:
    await rt.views.unmount(TENANT, tenant_id)


@router.post("/signals", status_code=status.HTTP_202_ACCEPTED)
async def publish_signal(signal: RefreshSignal, rt: Runtime = Depends(get_runtime)) -> dict[str, str]:
    """Relay a refresh nudge, e.g. from the booking widget after a reservation."""
    await rt.channel.publish(signal)
    return {"published": signal.kind.value}


@router.get("/demo/{tenant_id}", response_model=DashboardOut)
async def show_demo(
    tenant_id: str,
    date: date | None = None,
    rt: Runtime = Depends(get_runtime),
) -> dict:
    view = rt.views.get(DEMO, tenant_id)
    if view is None:
        time_zone = rt.settings.DEFAULT_TIME_ZONE
        synchronizer = ReservationSynchronizer(
            DemoGateway(rt.api, tenant_id),
            day=initial_day(time_zone, date),
            time_zone=time_zone,
            channel=rt.channel,
            visibility=rt.visibility,
            poll_interval=rt.settings.POLL_INTERVAL_SECONDS,
            editable=False,
        )
        view = await rt.views.mount(DEMO, DashboardView(synchronizer))
    elif date is not None:
        await view.synchronizer.select_date(date)
    return view.snapshot()
