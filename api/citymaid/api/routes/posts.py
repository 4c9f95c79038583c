import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from citymaid.api.errors import http_error
from citymaid.api.presenters import present_payment, present_post
from citymaid.core.auth import Viewer
from citymaid.core.config import Settings, get_settings
from citymaid.core.security import get_human_principal, get_optional_visitor_id, get_viewer, require_scopes
from citymaid.schemas.common import ApiResponse, Pagination
from citymaid.schemas.payments import PaymentOut
from citymaid.schemas.posts import (
    PostCreateRequest,
    PostDeleteOut,
    PostListOut,
    PostOut,
    PostPatchRequest,
    PostType,
)
from citymaid.services.repository import RepositoryError, get_repository
from citymaid.services.storage import (
    RECEIPT_CONTENT_TYPES,
    StorageError,
    discard_upload,
    get_storage,
    read_upload,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=ApiResponse[PostListOut])
async def list_public_posts(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    post_type: PostType | None = Query(default=None),
    work: str | None = Query(default=None, min_length=1),
    place: str | None = Query(default=None, min_length=1),
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
) -> ApiResponse[PostListOut]:
    page_size = min(limit or settings.public_posts_default_limit, settings.public_posts_max_limit)
    try:
        rows, total = await repository.list_public_posts(
            limit=page_size,
            offset=(page - 1) * page_size,
            post_type=post_type,
            work=work,
            place=place,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc

    return ApiResponse(
        data=PostListOut(
            items=[present_post(row, reveal_contact=False) for row in rows],
            pagination=Pagination.build(page=page, limit=page_size, total=total),
        )
    )


@router.post("", response_model=ApiResponse[PostOut], status_code=status.HTTP_201_CREATED)
async def create_post(
    payload: PostCreateRequest,
    visitor_id: str | None = Depends(get_optional_visitor_id),
    repository=Depends(get_repository),
) -> ApiResponse[PostOut]:
    try:
        row = await repository.create_post(**payload.model_dump(), visitor_id=visitor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=present_post(row, reveal_contact=False))


@router.get("/{post_id}", response_model=ApiResponse[PostOut])
async def get_post(
    post_id: str,
    viewer: Viewer = Depends(get_viewer),
    repository=Depends(get_repository),
) -> ApiResponse[PostOut]:
    try:
        row = await repository.get_post(post_id)
        if row["status"] != "approved" and not viewer.is_admin:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="post not found")
        reveal = viewer.is_admin or await repository.can_visitor_view_contact(
            post_id=post_id,
            visitor_id=viewer.visitor_id,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=present_post(row, reveal_contact=reveal))


@router.patch("/{post_id}", response_model=ApiResponse[PostOut])
async def patch_post(
    post_id: str,
    payload: PostPatchRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[PostOut]:
    require_scopes(principal, {"moderation:write"})
    if not principal.actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")

    changes = payload.model_dump(exclude_unset=True, exclude={"status", "reason"})
    if payload.status is None and not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="nothing to update")

    try:
        row = await repository.update_post(
            post_id=post_id,
            changes=changes,
            status=payload.status,
            actor_user_id=principal.actor_id,
            reason=payload.reason,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    logger.info("post updated id=%s status=%s actor=%s", post_id, row["status"], principal.actor_id)
    return ApiResponse(data=present_post(row, reveal_contact=True))


@router.delete("/{post_id}/delete", response_model=ApiResponse[PostDeleteOut])
async def delete_post(
    post_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[PostDeleteOut]:
    require_scopes(principal, {"moderation:write"})
    if not principal.actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")

    try:
        result = await repository.delete_post(post_id=post_id, actor_user_id=principal.actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=PostDeleteOut(**result))


@router.post(
    "/{post_id}/homepage-feature",
    response_model=ApiResponse[PaymentOut],
    status_code=status.HTTP_201_CREATED,
)
async def request_homepage_feature(
    post_id: str,
    file: UploadFile = File(...),
    visitor_id: str | None = Depends(get_optional_visitor_id),
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    storage=Depends(get_storage),
) -> ApiResponse[PaymentOut]:
    try:
        post = await repository.get_post(post_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    if post["status"] != "approved":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="only approved posts can be featured on the homepage",
        )
    if post["homepage_payment_status"] == "pending":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="a homepage feature request is already pending for this post",
        )

    content = await read_upload(file, max_bytes=settings.upload_max_bytes)
    try:
        stored = await storage.save_upload(
            bucket=settings.storage_receipts_bucket,
            prefix="homepage",
            filename=file.filename,
            content_type=file.content_type,
            content=content,
            allowed_types=RECEIPT_CONTENT_TYPES,
            max_bytes=settings.upload_max_bytes,
        )
    except StorageError as exc:
        raise http_error(exc) from exc
    try:
        row = await repository.request_homepage_feature(
            post_id=post_id,
            receipt_url=stored.public_url,
            visitor_id=visitor_id,
        )
    except RepositoryError as exc:
        await discard_upload(storage, stored)
        raise http_error(exc) from exc
    return ApiResponse(data=present_payment(row, reveal_contact=False))
