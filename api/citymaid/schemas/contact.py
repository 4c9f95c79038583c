from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from citymaid.services.contacts import is_valid_email

SubmissionStatus = Literal["pending", "read", "replied", "closed"]
SubmissionPriority = Literal["low", "normal", "high", "urgent"]


class ContactCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=320)
    message: str = Field(min_length=1, max_length=5000)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        if not is_valid_email(value):
            raise ValueError("please provide a valid email address")
        return value.lower()


class ContactReceiptOut(BaseModel):
    id: str
    status: SubmissionStatus
    created_at: datetime


class ContactSubmissionOut(BaseModel):
    id: str
    name: str
    email: str
    message: str
    source: str = "website"
    visitor_id: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None
    referrer: str | None = None
    status: SubmissionStatus
    priority: SubmissionPriority
    admin_notes: str | None = None
    created_at: datetime
    updated_at: datetime


class ContactSubmissionPatchRequest(BaseModel):
    status: SubmissionStatus | None = None
    priority: SubmissionPriority | None = None
    admin_notes: str | None = Field(default=None, max_length=5000)
