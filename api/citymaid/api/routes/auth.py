from fastapi import APIRouter, Depends

from citymaid.api.errors import http_error
from citymaid.core.auth import Principal
from citymaid.core.security import get_human_principal, require_scopes
from citymaid.schemas.auth import MeOut, ProfileOut, ProfilePatchRequest
from citymaid.schemas.common import ApiResponse
from citymaid.services.repository import RepositoryError, RepositoryNotFoundError, get_repository

router = APIRouter()


@router.get("/auth/me", response_model=ApiResponse[MeOut])
async def get_me(principal: Principal = Depends(get_human_principal)) -> ApiResponse[MeOut]:
    return ApiResponse(
        data=MeOut(
            id=principal.subject,
            email=principal.email,
            role=principal.role or "user",
            is_admin=principal.is_admin,
            scopes=sorted(principal.scopes),
        )
    )


@router.get("/profile", response_model=ApiResponse[ProfileOut])
async def get_profile(
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[ProfileOut]:
    try:
        try:
            row = await repository.get_profile(user_id=principal.subject)
        except RepositoryNotFoundError:
            # First visit after sign-up: the auth user exists but the profile row does not yet.
            row = await repository.upsert_profile(
                user_id=principal.subject,
                email=principal.email,
                full_name=None,
                phone=None,
            )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=ProfileOut(**row))


@router.patch("/profile", response_model=ApiResponse[ProfileOut])
async def patch_profile(
    payload: ProfilePatchRequest,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[ProfileOut]:
    require_scopes(principal, {"profile:write"})
    try:
        row = await repository.upsert_profile(
            user_id=principal.subject,
            email=principal.email,
            full_name=payload.full_name,
            phone=payload.phone,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=ProfileOut(**row))
