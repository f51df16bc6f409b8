from fastapi import HTTPException, status

from dashboard.app.core import runtime as runtime_module
from dashboard.app.core.errors import AuthError
from dashboard.app.core.runtime import Runtime
from dashboard.app.models import Session


def get_runtime() -> Runtime:
    if runtime_module.runtime is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Dashboard runtime not initialised")
    return runtime_module.runtime


def require_tenant(rt: Runtime, tenant_id: str) -> Session:
    """Current session, which must belong to ``tenant_id``."""
    session = rt.session.current
    if session is None or not rt.session.is_authenticated:
        raise AuthError("Not authenticated")
    if session.tenant_id != tenant_id:
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail="This dashboard belongs to another restaurant")
    return session
