from fastapi import APIRouter, Depends, HTTPException, Query, status

from citymaid.api.errors import http_error
from citymaid.api.presenters import present_payment, present_post, present_unlock_request
from citymaid.core.security import get_human_principal, require_scopes
from citymaid.schemas.admin import DashboardOut, StatusEventOut
from citymaid.schemas.common import ApiResponse
from citymaid.schemas.payments import (
    HomepagePaymentDecisionOut,
    HomepagePaymentDecisionRequest,
    PaymentDecisionRequest,
    PaymentOut,
    PaymentStatus,
    PaymentType,
)
from citymaid.schemas.posts import PostOut, PostStatus, PostType
from citymaid.schemas.unlock_requests import (
    UnlockDecisionRequest,
    UnlockDeliveryPatchRequest,
    UnlockRequestDeleteOut,
    UnlockRequestFilter,
    UnlockRequestOut,
)
from citymaid.services.repository import RepositoryError, get_repository

router = APIRouter()


def _require_actor(principal, scopes: set[str]) -> str:
    require_scopes(principal, scopes)
    if not principal.actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")
    return principal.actor_id


@router.get("/dashboard", response_model=ApiResponse[DashboardOut])
async def get_dashboard(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[DashboardOut]:
    require_scopes(principal, {"moderation:read"})
    try:
        stats = await repository.get_dashboard_stats()
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=DashboardOut(**stats))


@router.get("/posts", response_model=ApiResponse[list[PostOut]])
async def list_posts(
    post_status: PostStatus | None = Query(default=None, alias="status"),
    post_type: PostType | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[list[PostOut]]:
    require_scopes(principal, {"moderation:read"})
    try:
        rows = await repository.list_posts(status=post_status, post_type=post_type, limit=limit, offset=offset)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=[present_post(row, reveal_contact=True) for row in rows])


@router.get("/payments", response_model=ApiResponse[list[PaymentOut]])
async def list_payments(
    payment_status: PaymentStatus | None = Query(default=None, alias="status"),
    post_id: str | None = Query(default=None, min_length=1),
    payment_type: PaymentType | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[list[PaymentOut]]:
    require_scopes(principal, {"moderation:read"})
    try:
        rows = await repository.list_payments(
            status=payment_status,
            post_id=post_id,
            payment_type=payment_type,
            limit=limit,
            offset=offset,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=[present_payment(row, reveal_contact=True) for row in rows])


@router.patch("/payments/{payment_id}", response_model=ApiResponse[PaymentOut])
async def decide_payment(
    payment_id: str,
    payload: PaymentDecisionRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[PaymentOut]:
    actor_id = _require_actor(principal, {"moderation:write"})
    try:
        row = await repository.decide_payment(
            payment_id=payment_id,
            decision=payload.status,
            actor_user_id=actor_id,
            reason=payload.reason,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=present_payment(row, reveal_contact=True))


@router.get("/homepage-payments", response_model=ApiResponse[list[PaymentOut]])
async def list_homepage_payments(
    payment_status: PaymentStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[list[PaymentOut]]:
    require_scopes(principal, {"moderation:read"})
    try:
        rows = await repository.list_homepage_payments(status=payment_status, limit=limit, offset=offset)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=[present_payment(row, reveal_contact=True) for row in rows])


@router.patch("/posts/{post_id}/homepage-payment", response_model=ApiResponse[HomepagePaymentDecisionOut])
async def decide_homepage_payment(
    post_id: str,
    payload: HomepagePaymentDecisionRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[HomepagePaymentDecisionOut]:
    actor_id = _require_actor(principal, {"moderation:write"})
    try:
        result = await repository.decide_homepage_payment(
            post_id=post_id,
            decision=payload.decision,
            actor_user_id=actor_id,
            reason=payload.reason,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(
        data=HomepagePaymentDecisionOut(
            post=present_post(result["post"], reveal_contact=True),
            payment_ids=result["payment_ids"],
            decision=result["decision"],
        )
    )


@router.get("/contact-unlock-requests", response_model=ApiResponse[list[UnlockRequestOut]])
async def list_unlock_requests(
    request_status: UnlockRequestFilter = Query(default="all", alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[list[UnlockRequestOut]]:
    require_scopes(principal, {"moderation:read"})
    try:
        rows = await repository.list_unlock_requests(
            status=None if request_status == "all" else request_status,
            post_id=None,
            limit=limit,
            offset=offset,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=[present_unlock_request(row, reveal_contact=True) for row in rows])


@router.patch("/contact-unlock-requests/{request_id}", response_model=ApiResponse[UnlockRequestOut])
async def decide_unlock_request(
    request_id: str,
    payload: UnlockDecisionRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[UnlockRequestOut]:
    actor_id = _require_actor(principal, {"moderation:write"})
    try:
        row = await repository.decide_unlock_request(
            request_id=request_id,
            decision=payload.decision,
            actor_user_id=actor_id,
            reason=payload.reason,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=present_unlock_request(row, reveal_contact=True))


@router.patch(
    "/contact-unlock-requests/{request_id}/delivery-status",
    response_model=ApiResponse[UnlockRequestOut],
)
async def patch_unlock_delivery(
    request_id: str,
    payload: UnlockDeliveryPatchRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[UnlockRequestOut]:
    actor_id = _require_actor(principal, {"moderation:write"})
    if payload.delivery_status is None and payload.delivery_notes is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="nothing to update")
    try:
        row = await repository.update_unlock_delivery(
            request_id=request_id,
            delivery_status=payload.delivery_status,
            delivery_notes=payload.delivery_notes,
            actor_user_id=actor_id,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=present_unlock_request(row, reveal_contact=True))


@router.delete("/contact-unlock-requests/{request_id}", response_model=ApiResponse[UnlockRequestDeleteOut])
async def delete_unlock_request(
    request_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[UnlockRequestDeleteOut]:
    actor_id = _require_actor(principal, {"moderation:write"})
    try:
        result = await repository.delete_unlock_request(request_id=request_id, actor_user_id=actor_id)
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=UnlockRequestDeleteOut(**result))


@router.get("/events", response_model=ApiResponse[list[StatusEventOut]])
async def list_status_events(
    entity_type: str | None = Query(default=None, min_length=1),
    entity_id: str | None = Query(default=None, min_length=1),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ApiResponse[list[StatusEventOut]]:
    require_scopes(principal, {"moderation:read"})
    try:
        rows = await repository.list_status_events(
            entity_type=entity_type,
            entity_id=entity_id,
            limit=limit,
            offset=offset,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=[StatusEventOut(**row) for row in rows])
