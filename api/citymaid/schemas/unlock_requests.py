from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from citymaid.schemas.posts import PostSummaryOut

UnlockRequestStatus = Literal["pending", "paid", "approved", "rejected"]
DeliveryStatus = Literal["pending", "sent", "failed", "manual"]
UnlockRequestFilter = Literal["all", "pending", "paid", "approved", "rejected"]


class UnlockRequestOut(BaseModel):
    id: str
    post_id: str
    visitor_id: str
    status: UnlockRequestStatus
    payment_proof: str | None = None
    delivery_status: DeliveryStatus = "pending"
    delivery_notes: str | None = None
    created_at: datetime
    updated_at: datetime
    post: PostSummaryOut | None = None


class UnlockDecisionRequest(BaseModel):
    decision: Literal["approved", "rejected"]
    reason: str | None = None


class UnlockDeliveryPatchRequest(BaseModel):
    delivery_status: DeliveryStatus | None = None
    delivery_notes: str | None = None


class UnlockRequestDeleteOut(BaseModel):
    request_id: str
    deleted_payments: int
