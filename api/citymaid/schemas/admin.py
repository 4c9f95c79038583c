from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class DashboardOut(BaseModel):
    total_posts: int
    posts_by_status: dict[str, int] = Field(default_factory=dict)
    total_payments: int
    payments_by_status: dict[str, int] = Field(default_factory=dict)
    approved_revenue: float
    open_unlock_requests: int
    pending_homepage_payments: int
    pending_contact_submissions: int


class StatusEventOut(BaseModel):
    id: int
    entity_type: str
    entity_id: str | None = None
    event_type: str
    actor_type: str
    actor_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
