from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from citymaid.schemas.common import Pagination

PostType = Literal["employer", "employee"]
PostStatus = Literal["pending", "approved", "hidden"]
HomepagePaymentStatus = Literal["none", "pending", "approved", "rejected"]


class PostOut(BaseModel):
    id: str
    post_type: PostType
    work: str
    time: str
    place: str
    salary: str
    contact: str
    photo_url: str | None = None
    details: str | None = None
    status: PostStatus
    homepage_payment_status: HomepagePaymentStatus = "none"
    is_featured: bool = False
    can_view_contact: bool = False
    created_at: datetime
    updated_at: datetime


class PostSummaryOut(BaseModel):
    id: str
    post_type: PostType
    work: str
    time: str
    place: str
    salary: str
    contact: str
    photo_url: str | None = None
    status: PostStatus


class PostListOut(BaseModel):
    items: list[PostOut] = Field(default_factory=list)
    pagination: Pagination


class PostCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    post_type: PostType
    work: str = Field(min_length=1, max_length=200)
    time: str = Field(min_length=1, max_length=200)
    place: str = Field(min_length=1, max_length=200)
    salary: str = Field(min_length=1, max_length=100)
    contact: str = Field(min_length=1, max_length=50)
    photo_url: str | None = Field(default=None, max_length=2048)
    details: str | None = Field(default=None, max_length=5000)


class PostPatchRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    status: PostStatus | None = None
    post_type: PostType | None = None
    work: str | None = Field(default=None, min_length=1, max_length=200)
    time: str | None = Field(default=None, min_length=1, max_length=200)
    place: str | None = Field(default=None, min_length=1, max_length=200)
    salary: str | None = Field(default=None, min_length=1, max_length=100)
    contact: str | None = Field(default=None, min_length=1, max_length=50)
    photo_url: str | None = Field(default=None, max_length=2048)
    details: str | None = Field(default=None, max_length=5000)
    reason: str | None = None


class PostDeleteOut(BaseModel):
    post_id: str
    deleted_payments: int
    deleted_unlock_requests: int
