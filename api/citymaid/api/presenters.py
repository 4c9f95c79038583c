from typing import Any

from citymaid.schemas.payments import PaymentOut
from citymaid.schemas.posts import PostOut, PostSummaryOut
from citymaid.schemas.unlock_requests import UnlockRequestOut
from citymaid.services.contacts import mask_contact


def present_post(row: dict[str, Any], *, reveal_contact: bool) -> PostOut:
    contact = row["contact"] if reveal_contact else mask_contact(row.get("contact"))
    return PostOut(
        **{**row, "contact": contact},
        is_featured=row.get("homepage_payment_status") == "approved",
        can_view_contact=reveal_contact,
    )


def present_post_summary(row: dict[str, Any] | None, *, reveal_contact: bool) -> PostSummaryOut | None:
    if row is None:
        return None
    contact = row["contact"] if reveal_contact else mask_contact(row.get("contact"))
    return PostSummaryOut(**{**row, "contact": contact})


def present_payment(row: dict[str, Any], *, reveal_contact: bool) -> PaymentOut:
    return PaymentOut(**{**row, "post": present_post_summary(row.get("post"), reveal_contact=reveal_contact)})


def present_unlock_request(row: dict[str, Any], *, reveal_contact: bool) -> UnlockRequestOut:
    return UnlockRequestOut(
        **{**row, "post": present_post_summary(row.get("post"), reveal_contact=reveal_contact)}
    )
