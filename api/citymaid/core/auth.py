from dataclasses import dataclass, field
from enum import Enum


class PrincipalType(str, Enum):
    HUMAN = "human"


@dataclass(slots=True)
class Principal:
    principal_type: PrincipalType
    subject: str
    scopes: set[str]
    role: str | None = None
    actor_id: str | None = None
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")


@dataclass(slots=True)
class Viewer:
    """Who is looking at a listing: an anonymous visitor, an admin, or nobody known."""

    visitor_id: str | None = None
    principal: Principal | None = field(default=None)

    @property
    def is_admin(self) -> bool:
        return self.principal is not None and self.principal.is_admin
