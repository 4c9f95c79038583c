import re
from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, status

from citymaid.core.auth import Principal, PrincipalType, Viewer
from citymaid.core.config import Settings, get_settings

ROLE_SCOPES: dict[str, set[str]] = {
    "user": {"profile:write"},
    "admin": {"profile:write", "moderation:read", "moderation:write"},
}
ELEVATED_ROLES = ("admin",)
VISITOR_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{7,63}$")


async def get_human_principal(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="human auth requires bearer token",
        )

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="empty bearer token")

    if not settings.supabase_url or not settings.supabase_anon_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth is not configured",
        )

    user = await _fetch_supabase_user(
        supabase_url=settings.supabase_url,
        supabase_anon_key=settings.supabase_anon_key,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")

    role = _resolve_human_role(user)
    email = user.get("email")

    return Principal(
        principal_type=PrincipalType.HUMAN,
        subject=user_id,
        role=role,
        scopes=set(ROLE_SCOPES.get(role, ROLE_SCOPES["user"])),
        actor_id=user_id,
        email=email if isinstance(email, str) and email else None,
    )


async def get_optional_human_principal(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal | None:
    # Public reads fall back to anonymous when the token cannot be verified.
    if not authorization or not settings.supabase_url or not settings.supabase_anon_key:
        return None
    try:
        return await get_human_principal(settings=settings, authorization=authorization)
    except HTTPException as exc:
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            return None
        raise


async def get_visitor_id(
    x_visitor_id: str | None = Header(default=None, alias="X-Visitor-Id"),
) -> str:
    visitor_id = (x_visitor_id or "").strip()
    if not visitor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="visitor requests require X-Visitor-Id",
        )
    if not VISITOR_ID_RE.match(visitor_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="malformed visitor id")
    return visitor_id


async def get_optional_visitor_id(
    x_visitor_id: str | None = Header(default=None, alias="X-Visitor-Id"),
) -> str | None:
    visitor_id = (x_visitor_id or "").strip()
    if not visitor_id or not VISITOR_ID_RE.match(visitor_id):
        return None
    return visitor_id


async def get_viewer(
    principal: Principal | None = Depends(get_optional_human_principal),
    visitor_id: str | None = Depends(get_optional_visitor_id),
) -> Viewer:
    return Viewer(visitor_id=visitor_id, principal=principal)


def require_scopes(principal: Principal, required: set[str]) -> None:
    try:
        principal.require_scopes(required)
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


async def _fetch_supabase_user(
    *,
    supabase_url: str,
    supabase_anon_key: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any]:
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": supabase_anon_key,
    }
    url = f"{supabase_url.rstrip('/')}/auth/v1/user"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth verification unavailable",
        ) from exc

    if response.status_code in {401, 403}:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")
    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth verification failed",
        )

    return response.json()


def _resolve_human_role(user: dict[str, Any]) -> str:
    # user_metadata is writable by the user, so elevated roles come from app_metadata only.
    app_metadata = user.get("app_metadata")
    if not isinstance(app_metadata, dict):
        return "user"

    role = app_metadata.get("role")
    if isinstance(role, str) and role in ROLE_SCOPES:
        return role

    roles = app_metadata.get("roles")
    if isinstance(roles, list):
        for elevated in ELEVATED_ROLES:
            if elevated in roles:
                return elevated

    return "user"
