from fastapi import APIRouter, Depends, status

from citymaid.api.errors import http_error
from citymaid.api.presenters import present_payment
from citymaid.core.security import get_optional_visitor_id
from citymaid.schemas.common import ApiResponse
from citymaid.schemas.payments import PaymentCreateRequest, PaymentOut
from citymaid.services.repository import RepositoryError, get_repository

router = APIRouter()


@router.post("", response_model=ApiResponse[PaymentOut], status_code=status.HTTP_201_CREATED)
async def create_payment(
    payload: PaymentCreateRequest,
    visitor_id: str | None = Depends(get_optional_visitor_id),
    repository=Depends(get_repository),
) -> ApiResponse[PaymentOut]:
    try:
        row = await repository.create_payment(
            post_id=payload.post_id,
            payment_type=payload.payment_type,
            visitor_id=visitor_id,
            amount=payload.amount,
            method=payload.method,
            reference_id=payload.reference_id,
            customer_name=payload.customer_name,
            receipt_url=payload.receipt_url,
        )
    except RepositoryError as exc:
        raise http_error(exc) from exc
    return ApiResponse(data=present_payment(row, reveal_contact=False))
