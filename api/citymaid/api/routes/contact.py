from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from citymaid.api.errors import http_error
from citymaid.core.security import get_human_principal, get_optional_visitor_id, require_scopes
from citymaid.schemas.common import ApiResponse
from citymaid.schemas.contact import (
    ContactCreateRequest,
    ContactReceiptOut,
    ContactSubmissionOut,
    ContactSubmissionPatchRequest,
    SubmissionPriority,
    SubmissionStatus,
)
from citymaid.services.repository import RepositoryError, get_repository

router = APIRouter()


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",", maxsplit=1)[0].strip()
        if first_hop:
            return first_hop
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if request.client is not None:
        return request.client.host
    return None


@router.post("", response_model=ApiResponse[ContactReceiptOut], status_code=status.HTTP_201_CREATED)
async def submit_contact_form(
    payload: ContactCreateRequest,
    request: Request,
    visitor_id: str | None = Depends(get_optional_visitor_id),
    repository=Depends(get_repository),
) -> ApiResponse[ContactReceiptOut]:
    try:
        row = await repository.create_contact_submission(
            name=payload.name,
            email=payload.email,
            message=payload.message,
            visitor_id=visitor_id,
            user_agent=request.headers.get("user-agent"),
            ip_address=_client_ip(request),
            referrer=request.headers.get("referer"),
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=ContactReceiptOut(**row))


@router.get("", response_model=ApiResponse[list[ContactSubmissionOut]])
async def list_contact_submissions(
    search: str | None = Query(default=None, min_length=1),
    submission_status: SubmissionStatus | None = Query(default=None, alias="status"),
    priority: SubmissionPriority | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[list[ContactSubmissionOut]]:
    require_scopes(principal, {"moderation:read"})
    try:
        rows = await repository.list_contact_submissions(
            search=search,
            status=submission_status,
            priority=priority,
            limit=limit,
            offset=offset,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=[ContactSubmissionOut(**row) for row in rows])


@router.patch("/{submission_id}", response_model=ApiResponse[ContactSubmissionOut])
async def patch_contact_submission(
    submission_id: str,
    payload: ContactSubmissionPatchRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[ContactSubmissionOut]:
    require_scopes(principal, {"moderation:write"})
    if not principal.actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")
    if payload.status is None and payload.priority is None and payload.admin_notes is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="nothing to update")

    try:
        row = await repository.update_contact_submission(
            submission_id=submission_id,
            status=payload.status,
            priority=payload.priority,
            admin_notes=payload.admin_notes,
            actor_user_id=principal.actor_id,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=ContactSubmissionOut(**row))
