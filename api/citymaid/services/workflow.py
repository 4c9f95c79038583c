from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

PostStatus = Literal["pending", "approved", "hidden"]
HomepagePaymentStatus = Literal["none", "pending", "approved", "rejected"]
PaymentStatus = Literal["pending", "approved", "rejected", "hidden"]
UnlockRequestStatus = Literal["pending", "paid", "approved", "rejected"]
SubmissionStatus = Literal["pending", "read", "replied", "closed"]

POST_TYPES = {"employer", "employee"}
POST_STATUSES = {"pending", "approved", "hidden"}
HOMEPAGE_PAYMENT_STATUSES = {"none", "pending", "approved", "rejected"}
PAYMENT_TYPES = {"contact_unlock", "post_promotion"}
PAYMENT_METHODS = {"qr", "esewa", "bank"}
PAYMENT_STATUSES = {"pending", "approved", "rejected", "hidden"}
UNLOCK_REQUEST_STATUSES = {"pending", "paid", "approved", "rejected"}
OPEN_UNLOCK_REQUEST_STATUSES = ("pending", "paid")
DELIVERY_STATUSES = {"pending", "sent", "failed", "manual"}
SUBMISSION_STATUSES = {"pending", "read", "replied", "closed"}
SUBMISSION_PRIORITIES = {"low", "normal", "high", "urgent"}
EDITABLE_POST_FIELDS = ("post_type", "work", "time", "place", "salary", "contact", "photo_url", "details")

POST_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"approved", "hidden"},
    "approved": {"hidden", "pending"},
    "hidden": {"approved", "pending"},
}
PAYMENT_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"approved", "rejected", "hidden"},
    "approved": {"hidden"},
    "rejected": {"hidden"},
    "hidden": set(),
}
UNLOCK_REQUEST_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"paid", "rejected"},
    "paid": {"approved", "rejected"},
    "approved": set(),
    "rejected": set(),
}
HOMEPAGE_PAYMENT_TRANSITIONS: dict[str, set[str]] = {
    "none": {"pending"},
    "pending": {"approved", "rejected"},
    "approved": {"pending"},
    "rejected": {"pending"},
}
SUBMISSION_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"read", "replied", "closed"},
    "read": {"replied", "closed"},
    "replied": {"closed"},
    "closed": {"read"},
}

_TABLES: dict[str, dict[str, set[str]]] = {
    "post": POST_TRANSITIONS,
    "payment": PAYMENT_TRANSITIONS,
    "contact_unlock_request": UNLOCK_REQUEST_TRANSITIONS,
    "homepage_payment": HOMEPAGE_PAYMENT_TRANSITIONS,
    "contact_submission": SUBMISSION_TRANSITIONS,
}


class TransitionError(ValueError):
    def __init__(self, entity: str, from_status: str, to_status: str) -> None:
        super().__init__(f"invalid {entity.replace('_', ' ')} status transition: {from_status} -> {to_status}")
        self.entity = entity
        self.from_status = from_status
        self.to_status = to_status


@dataclass(slots=True)
class PaymentDecisionEffects:
    """Secondary writes that must commit together with a payment decision."""

    post_status: str | None = None
    homepage_payment_status: str | None = None
    unlock_request_status: str | None = None


def can_transition(entity: str, from_status: str, to_status: str) -> bool:
    if from_status == to_status:
        return True
    allowed = _TABLES[entity].get(from_status)
    return bool(allowed) and to_status in allowed


def validate_transition(entity: str, from_status: str, to_status: str) -> None:
    if not can_transition(entity, from_status, to_status):
        raise TransitionError(entity, from_status, to_status)


def derive_payment_decision_effects(*, payment_type: str, decision: str, from_status: str) -> PaymentDecisionEffects:
    # Hiding an undecided payment withdraws it; whatever it held open is closed as rejected.
    if decision == "hidden" and from_status == "pending":
        decision = "rejected"

    if payment_type == "post_promotion":
        if decision == "approved":
            return PaymentDecisionEffects(post_status="approved", homepage_payment_status="approved")
        if decision == "rejected":
            return PaymentDecisionEffects(homepage_payment_status="rejected")
        return PaymentDecisionEffects()

    if payment_type == "contact_unlock":
        if decision in {"approved", "rejected"}:
            return PaymentDecisionEffects(unlock_request_status=decision)
        return PaymentDecisionEffects()

    return PaymentDecisionEffects()


def derive_payment_status_for_unlock_decision(decision: str) -> str | None:
    status_by_decision = {
        "approved": "approved",
        "rejected": "rejected",
    }
    return status_by_decision.get(decision)
