from fastapi import APIRouter, Depends, HTTPException

from dashboard.app.core import redis_client as redis_module
from dashboard.app.core.runtime import Runtime
from dashboard.app.routers.deps import get_runtime


router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, bool]:
    """Basic liveness check."""
    return {"ok": True}


@router.get("/readiness")
async def readiness(rt: Runtime = Depends(get_runtime)) -> dict[str, bool]:
    """Ensure the runtime is wired and Redis (when configured) is reachable."""
    if rt.settings.REDIS_URL:
        if redis_module.redis_client is None:
            raise HTTPException(status_code=503, detail="Redis unavailable")
        try:
            await redis_module.redis_client.ping()
        except Exception as exc:  # pragma: no cover - defensive guard
            raise HTTPException(status_code=503, detail="Redis unavailable") from exc

    return {"ready": True}
