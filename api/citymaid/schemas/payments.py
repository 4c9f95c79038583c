from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from citymaid.schemas.posts import PostOut, PostSummaryOut

PaymentType = Literal["contact_unlock", "post_promotion"]
PaymentMethod = Literal["qr", "esewa", "bank"]
PaymentStatus = Literal["pending", "approved", "rejected", "hidden"]
PaymentDecision = Literal["approved", "rejected", "hidden"]


class PaymentOut(BaseModel):
    id: str
    post_id: str | None = None
    unlock_request_id: str | None = None
    payment_type: PaymentType
    visitor_id: str | None = None
    amount: float
    method: str = "qr"
    reference_id: str | None = None
    customer_name: str | None = None
    receipt_url: str | None = None
    status: PaymentStatus
    approved_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    post: PostSummaryOut | None = None


class PaymentCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    post_id: str | None = None
    payment_type: PaymentType
    amount: float | None = Field(default=None, ge=0)
    method: PaymentMethod = "qr"
    reference_id: str | None = Field(default=None, max_length=200)
    customer_name: str | None = Field(default=None, max_length=200)
    receipt_url: str | None = Field(default=None, max_length=2048)


class PaymentDecisionRequest(BaseModel):
    status: PaymentDecision
    reason: str | None = None


class HomepagePaymentDecisionRequest(BaseModel):
    decision: Literal["approved", "rejected"]
    reason: str | None = None


class HomepagePaymentDecisionOut(BaseModel):
    post: PostOut
    payment_ids: list[str] = Field(default_factory=list)
    decision: Literal["approved", "rejected"]
