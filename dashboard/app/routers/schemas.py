import datetime as dt
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class LoginLinkIn(BaseModel):
    email: str = Field(min_length=1, max_length=254)


class SessionOut(BaseModel):
    state: str
    tenant_id: str | None = None
    subject_email: str | None = None
    expires_at: str | None = None
    redirect: str | None = None


class RowEditIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    record_id: str | None = Field(default=None, alias="recordId")
    # position in the working copy; only used for rows that have no id yet
    index: int | None = None
    field: str = Field(min_length=1)
    value: Any = None


class NewRowIn(BaseModel):
    date: dt.date | None = None


class NavigateIn(BaseModel):
    direction: Literal["previous", "next"] | None = None
    date: dt.date | None = None


class MetricsOut(BaseModel):
    today: int
    this_week: int
    this_month: int


class DashboardOut(BaseModel):
    tenant_id: str
    date: str
    time_zone: str
    loading: bool
    error: str | None = None
    agenda: list[dict[str, Any]]
    drafts: list[dict[str, Any]]
    metrics: MetricsOut


class VisibilityIn(BaseModel):
    state: Literal["visible", "hidden"]
