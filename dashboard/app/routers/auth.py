from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse

from dashboard.app.core.runtime import Runtime
from dashboard.app.routers.deps import get_runtime
from dashboard.app.routers.schemas import LoginLinkIn, SessionOut
from dashboard.app.services.session import SessionState


router = APIRouter()


def _session_out(rt: Runtime) -> SessionOut:
    session = rt.session.current
    return SessionOut(
        state=rt.session.state.value,
        tenant_id=session.tenant_id if session else None,
        subject_email=session.subject_email if session else None,
        expires_at=session.expires_at.isoformat() if session else None,
        redirect=rt.session.login_redirect,
    )


@router.post("/auth/login", status_code=status.HTTP_202_ACCEPTED)
async def request_login_link(payload: LoginLinkIn, rt: Runtime = Depends(get_runtime)) -> dict[str, str]:
    await rt.account_service.request_login_link(payload.email)
    return {"message": "Check your email for a login link!"}


@router.get("/verify")
async def verify(request: Request, rt: Runtime = Depends(get_runtime)) -> RedirectResponse:
    """Exchange the emailed one-time token and land on the dashboard.

    The redirect target never carries the token, so it can't be bookmarked.
    """
    query = dict(request.query_params)
    state = await rt.session.bootstrap(query)
    if state == SessionState.UNAUTHENTICATED or rt.session.current is None:
        return RedirectResponse(rt.session.login_redirect or rt.settings.LOGIN_PATH, status_code=status.HTTP_303_SEE_OTHER)

    target = f"{rt.settings.API_PREFIX}/dashboard/{rt.session.current.tenant_id}"
    if query:
        target = f"{target}?{urlencode(query)}"
    return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/session", response_model=SessionOut)
async def current_session(rt: Runtime = Depends(get_runtime)) -> SessionOut:
    return _session_out(rt)


@router.post("/logout", response_model=SessionOut)
async def logout(rt: Runtime = Depends(get_runtime)) -> SessionOut:
    await rt.views.close()
    await rt.session.clear()
    return _session_out(rt)
