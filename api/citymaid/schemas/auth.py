from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MeOut(BaseModel):
    id: str
    email: str | None = None
    role: str
    is_admin: bool
    scopes: list[str] = Field(default_factory=list)


class ProfileOut(BaseModel):
    id: str
    email: str | None = None
    full_name: str | None = None
    phone: str | None = None
    role: str = "user"
    created_at: datetime
    updated_at: datetime


class ProfilePatchRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=50)
