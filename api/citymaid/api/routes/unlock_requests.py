from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from citymaid.api.errors import http_error
from citymaid.api.presenters import present_unlock_request
from citymaid.core.auth import Viewer
from citymaid.core.config import Settings, get_settings
from citymaid.core.security import get_human_principal, get_viewer, get_visitor_id, require_scopes
from citymaid.schemas.common import ApiResponse
from citymaid.schemas.unlock_requests import UnlockRequestOut
from citymaid.services.repository import RepositoryError, get_repository
from citymaid.services.storage import (
    RECEIPT_CONTENT_TYPES,
    StorageError,
    discard_upload,
    get_storage,
    read_upload,
)

router = APIRouter()


@router.post(
    "/posts/{post_id}/contact-unlock-requests",
    response_model=ApiResponse[UnlockRequestOut],
    status_code=status.HTTP_201_CREATED,
)
async def create_unlock_request(
    post_id: str,
    visitor_id: str = Depends(get_visitor_id),
    repository=Depends(get_repository),
) -> ApiResponse[UnlockRequestOut]:
    try:
        row = await repository.create_unlock_request(post_id=post_id, visitor_id=visitor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=present_unlock_request(row, reveal_contact=False))


@router.get("/posts/{post_id}/contact-unlock-requests", response_model=ApiResponse[list[UnlockRequestOut]])
async def list_post_unlock_requests(
    post_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[list[UnlockRequestOut]]:
    require_scopes(principal, {"moderation:read"})
    try:
        rows = await repository.list_unlock_requests(status=None, post_id=post_id, limit=limit, offset=offset)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=[present_unlock_request(row, reveal_contact=True) for row in rows])


@router.get("/contact-unlock-requests/{request_id}", response_model=ApiResponse[UnlockRequestOut])
async def get_unlock_request(
    request_id: str,
    viewer: Viewer = Depends(get_viewer),
    repository=Depends(get_repository),
) -> ApiResponse[UnlockRequestOut]:
    try:
        row = await repository.get_unlock_request(request_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    if not viewer.is_admin and (viewer.visitor_id is None or viewer.visitor_id != row["visitor_id"]):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="contact unlock request not found")
    reveal = viewer.is_admin or row["status"] == "approved"
    return ApiResponse(data=present_unlock_request(row, reveal_contact=reveal))


@router.post(
    "/contact-unlock-requests/{request_id}/payment-proof",
    response_model=ApiResponse[UnlockRequestOut],
)
async def upload_unlock_payment_proof(
    request_id: str,
    file: UploadFile = File(...),
    visitor_id: str = Depends(get_visitor_id),
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    storage=Depends(get_storage),
) -> ApiResponse[UnlockRequestOut]:
    try:
        existing = await repository.get_unlock_request(request_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    if existing["visitor_id"] != visitor_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="contact unlock request not found")
    if existing["status"] != "pending":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"payment proof cannot be attached to a {existing['status']} request",
        )

    content = await read_upload(file, max_bytes=settings.upload_max_bytes)
    try:
        stored = await storage.save_upload(
            bucket=settings.storage_receipts_bucket,
            prefix="unlock",
            filename=file.filename,
            content_type=file.content_type,
            content=content,
            allowed_types=RECEIPT_CONTENT_TYPES,
            max_bytes=settings.upload_max_bytes,
        )
    except StorageError as exc:
        raise http_error(exc) from exc
    try:
        row = await repository.attach_unlock_payment_proof(
            request_id=request_id,
            visitor_id=visitor_id,
            payment_proof=stored.public_url,
        )
    except RepositoryError as exc:
        await discard_upload(storage, stored)
        raise http_error(exc) from exc
    return ApiResponse(data=present_unlock_request(row, reveal_contact=False))
