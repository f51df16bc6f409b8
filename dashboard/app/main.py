import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from dashboard.app.core import runtime as runtime_module
from dashboard.app.core.config import settings
from dashboard.app.core.errors import AuthError, DashboardError, FormValidationError, NetworkError
from dashboard.app.core.logging import configure_logging
from dashboard.app.core.redis_client import close_redis, init_redis
from dashboard.app.core.runtime import close_runtime, init_runtime
import dashboard.app.routers.auth as auth
import dashboard.app.routers.dashboard as dashboard
import dashboard.app.routers.health as health
import dashboard.app.routers.settings as settings_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    await init_redis()
    rt = await init_runtime()
    await rt.session.bootstrap()
    try:
        yield
    finally:
        await close_runtime()
        await close_redis()


app = FastAPI(
    title="Reservation Dashboard API",
    lifespan=lifespan,
)


def _login_redirect() -> str:
    rt = runtime_module.runtime
    if rt is not None and rt.session.login_redirect:
        return rt.session.login_redirect
    return settings.LOGIN_PATH


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": exc.user_message, "redirect": _login_redirect()},
    )


@app.exception_handler(FormValidationError)
async def form_error_handler(request: Request, exc: FormValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.user_message, "errors": [error.as_dict() for error in exc.errors]},
    )


@app.exception_handler(NetworkError)
async def network_error_handler(request: Request, exc: NetworkError) -> JSONResponse:
    logger.warning("Remote call failed during %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": exc.user_message})


@app.exception_handler(DashboardError)
async def dashboard_error_handler(request: Request, exc: DashboardError) -> JSONResponse:
    logger.error("Unhandled dashboard error during %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": exc.user_message})


app.include_router(health.router, prefix=settings.API_PREFIX)
app.include_router(auth.router, prefix=settings.API_PREFIX)
app.include_router(dashboard.router, prefix=settings.API_PREFIX)
app.include_router(settings_router.router, prefix=settings.API_PREFIX)
