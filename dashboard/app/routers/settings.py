from typing import Any

from fastapi import APIRouter, Body, Depends, status

from dashboard.app.core.runtime import Runtime
from dashboard.app.routers.dashboard import TENANT
from dashboard.app.routers.deps import get_runtime, require_tenant


router = APIRouter()


@router.get("/settings/{tenant_id}")
async def read_settings(tenant_id: str, rt: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    require_tenant(rt, tenant_id)
    config = await rt.config_service.load(tenant_id)
    return config.to_wire()


@router.post("/settings/{tenant_id}")
async def update_settings(
    tenant_id: str,
    form: dict[str, Any] = Body(...),
    rt: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    require_tenant(rt, tenant_id)
    config = await rt.config_service.update(tenant_id, form)
    view = rt.views.get(TENANT, tenant_id)
    if view is not None:
        await view.synchronizer.set_time_zone(config.time_zone)
    return {"message": "Config updated", "config": config.to_wire()}


@router.post("/account", status_code=status.HTTP_201_CREATED)
async def create_account(form: dict[str, Any] = Body(...), rt: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    account = await rt.account_service.create_account(form)
    return {"message": "Account successfully created!", "restaurantId": account["restaurantId"]}
