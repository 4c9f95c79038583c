from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import citymaid.core.security as security
from citymaid.core.config import get_settings
from citymaid.main import app
from citymaid.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
    get_repository,
)
from citymaid.services.storage import StoredObject, get_storage, validate_upload
from citymaid.services.workflow import (
    EDITABLE_POST_FIELDS,
    TransitionError,
    derive_payment_decision_effects,
    derive_payment_status_for_unlock_decision,
    validate_transition,
)

ADMIN_USER = {
    "id": "11111111-1111-1111-1111-111111111111",
    "email": "admin@citymaid.test",
    "app_metadata": {"role": "admin"},
}
REGULAR_USER = {
    "id": "33333333-3333-3333-3333-333333333333",
    "email": "user@citymaid.test",
    "app_metadata": {"role": "user"},
    "user_metadata": {"role": "admin"},
}
USERS_BY_TOKEN = {"admin-token": ADMIN_USER, "user-token": REGULAR_USER}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _check(entity: str, from_status: str, to_status: str) -> None:
    try:
        validate_transition(entity, from_status, to_status)
    except TransitionError as exc:
        raise RepositoryConflictError(str(exc)) from exc


class FakeMarketplaceRepository:
    """In-memory stand-in for PostgresRepository with the same cascade rules."""

    def __init__(self) -> None:
        self.posts: dict[str, dict[str, Any]] = {}
        self.payments: dict[str, dict[str, Any]] = {}
        self.unlock_requests: dict[str, dict[str, Any]] = {}
        self.submissions: dict[str, dict[str, Any]] = {}
        self.profiles: dict[str, dict[str, Any]] = {}
        self.events: list[dict[str, Any]] = []

    def seed_post(self, **overrides: Any) -> dict[str, Any]:
        now = _now()
        row = {
            "id": str(uuid.uuid4()),
            "post_type": "employee",
            "work": "House cleaning",
            "time": "Morning",
            "place": "Kathmandu",
            "salary": "15000",
            "contact": "+977 9812345678",
            "photo_url": None,
            "details": None,
            "status": "pending",
            "homepage_payment_status": "none",
            "created_at": now,
            "updated_at": now,
        }
        row.update(overrides)
        self.posts[row["id"]] = row
        return row

    def seed_payment(self, **overrides: Any) -> dict[str, Any]:
        now = _now()
        row = {
            "id": str(uuid.uuid4()),
            "post_id": None,
            "unlock_request_id": None,
            "payment_type": "contact_unlock",
            "visitor_id": None,
            "amount": 399.0,
            "method": "qr",
            "reference_id": None,
            "customer_name": None,
            "receipt_url": None,
            "status": "pending",
            "approved_at": None,
            "created_at": now,
            "updated_at": now,
        }
        row.update(overrides)
        self.payments[row["id"]] = row
        return row

    def seed_unlock_request(self, **overrides: Any) -> dict[str, Any]:
        now = _now()
        row = {
            "id": str(uuid.uuid4()),
            "post_id": None,
            "visitor_id": "visitor-0001",
            "status": "pending",
            "payment_proof": None,
            "delivery_status": "pending",
            "delivery_notes": None,
            "created_at": now,
            "updated_at": now,
        }
        row.update(overrides)
        self.unlock_requests[row["id"]] = row
        return row

    def _event(self, entity_type: str, entity_id: str, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append(
            {
                "id": len(self.events) + 1,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "event_type": event_type,
                "actor_type": "human",
                "actor_id": None,
                "payload": payload,
                "created_at": _now(),
            }
        )

    def _summary(self, post_id: str | None) -> dict[str, Any] | None:
        post = self.posts.get(post_id or "")
        if post is None:
            return None
        keys = ("id", "post_type", "work", "time", "place", "salary", "contact", "photo_url", "status")
        return {key: post[key] for key in keys}

    def _payment_out(self, row: dict[str, Any]) -> dict[str, Any]:
        return {**row, "post": self._summary(row["post_id"])}

    def _request_out(self, row: dict[str, Any]) -> dict[str, Any]:
        return {**row, "post": self._summary(row["post_id"])}

    def _post(self, post_id: str) -> dict[str, Any]:
        post = self.posts.get(post_id)
        if post is None:
            raise RepositoryNotFoundError("post not found")
        return post

    def _set_post(self, post: dict[str, Any], *, status: str | None, homepage: str | None) -> None:
        if status is not None and status != post["status"]:
            _check("post", post["status"], status)
        if homepage is not None and homepage != post["homepage_payment_status"]:
            _check("homepage_payment", post["homepage_payment_status"], homepage)
        if status is not None:
            post["status"] = status
        if homepage is not None:
            post["homepage_payment_status"] = homepage
        post["updated_at"] = _now()

    def _set_payment(self, payment: dict[str, Any], status: str) -> None:
        if payment["status"] == status:
            return
        _check("payment", payment["status"], status)
        payment["status"] = status
        if status == "approved":
            payment["approved_at"] = _now()
        payment["updated_at"] = _now()

    # posts

    async def create_post(self, **fields: Any) -> dict[str, Any]:
        fields.pop("visitor_id", None)
        row = self.seed_post(**fields)
        self._event("post", row["id"], "created", {"status": "pending"})
        return row

    async def list_public_posts(
        self,
        *,
        limit: int,
        offset: int,
        post_type: str | None = None,
        work: str | None = None,
        place: str | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        rows = [row for row in self.posts.values() if row["status"] == "approved"]
        if post_type:
            rows = [row for row in rows if row["post_type"] == post_type]
        if work:
            rows = [row for row in rows if work.lower() in row["work"].lower()]
        if place:
            rows = [row for row in rows if place.lower() in row["place"].lower()]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        rows.sort(key=lambda row: row["homepage_payment_status"] != "approved")
        return rows[offset : offset + limit], len(rows)

    async def list_posts(self, *, status: str | None, post_type: str | None, limit: int, offset: int) -> list[dict[str, Any]]:
        rows = list(self.posts.values())
        if status:
            rows = [row for row in rows if row["status"] == status]
        if post_type:
            rows = [row for row in rows if row["post_type"] == post_type]
        return rows[offset : offset + limit]

    async def get_post(self, post_id: str) -> dict[str, Any]:
        return self._post(post_id)

    async def can_visitor_view_contact(self, *, post_id: str, visitor_id: str | None) -> bool:
        return any(
            row["post_id"] == post_id and row["visitor_id"] == visitor_id and row["status"] == "approved"
            for row in self.unlock_requests.values()
        )

    async def update_post(
        self,
        *,
        post_id: str,
        changes: dict[str, Any],
        status: str | None,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        unknown = set(changes) - set(EDITABLE_POST_FIELDS)
        if unknown:
            raise RepositoryValidationError("fields are not editable")
        post = self._post(post_id)
        self._set_post(post, status=status, homepage=None)
        post.update(changes)
        return post

    async def delete_post(self, *, post_id: str, actor_user_id: str) -> dict[str, Any]:
        self._post(post_id)
        request_ids = {key for key, row in self.unlock_requests.items() if row["post_id"] == post_id}
        payment_ids = {
            key
            for key, row in self.payments.items()
            if row["post_id"] == post_id or row["unlock_request_id"] in request_ids
        }
        for key in payment_ids:
            del self.payments[key]
        for key in request_ids:
            del self.unlock_requests[key]
        del self.posts[post_id]
        return {
            "post_id": post_id,
            "deleted_payments": len(payment_ids),
            "deleted_unlock_requests": len(request_ids),
        }

    # payments

    async def create_payment(self, **fields: Any) -> dict[str, Any]:
        if fields["payment_type"] == "post_promotion":
            return await self.request_homepage_feature(
                post_id=fields["post_id"],
                receipt_url=fields["receipt_url"],
                visitor_id=fields["visitor_id"],
                amount=fields["amount"],
            )
        if fields["post_id"]:
            self._post(fields["post_id"])
        amount = fields.pop("amount")
        row = self.seed_payment(**fields, amount=399.0 if amount is None else amount)
        return self._payment_out(row)

    async def list_payments(
        self,
        *,
        status: str | None,
        post_id: str | None,
        payment_type: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        rows = list(self.payments.values())
        if status:
            rows = [row for row in rows if row["status"] == status]
        if post_id:
            rows = [row for row in rows if row["post_id"] == post_id]
        if payment_type:
            rows = [row for row in rows if row["payment_type"] == payment_type]
        return [self._payment_out(row) for row in rows[offset : offset + limit]]

    async def list_homepage_payments(self, *, status: str | None, limit: int, offset: int) -> list[dict[str, Any]]:
        return await self.list_payments(
            status=status,
            post_id=None,
            payment_type="post_promotion",
            limit=limit,
            offset=offset,
        )

    async def decide_payment(
        self,
        *,
        payment_id: str,
        decision: str,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        payment = self.payments.get(payment_id)
        if payment is None:
            raise RepositoryNotFoundError("payment not found")
        if payment["status"] != decision:
            _check("payment", payment["status"], decision)
            effects = derive_payment_decision_effects(
                payment_type=payment["payment_type"],
                decision=decision,
                from_status=payment["status"],
            )
            post = self.posts.get(payment["post_id"] or "")
            if post is not None and (effects.post_status or effects.homepage_payment_status):
                self._set_post(post, status=effects.post_status, homepage=effects.homepage_payment_status)
            request = self.unlock_requests.get(payment["unlock_request_id"] or "")
            if request is not None and effects.unlock_request_status:
                if request["status"] != effects.unlock_request_status:
                    _check("contact_unlock_request", request["status"], effects.unlock_request_status)
                    request["status"] = effects.unlock_request_status
            self._set_payment(payment, decision)
        return self._payment_out(payment)

    async def decide_homepage_payment(
        self,
        *,
        post_id: str,
        decision: str,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        post = self._post(post_id)
        pending = [
            row
            for row in self.payments.values()
            if row["post_id"] == post_id and row["payment_type"] == "post_promotion" and row["status"] == "pending"
        ]
        if not pending:
            raise RepositoryNotFoundError("no pending homepage payment for post")
        effects = derive_payment_decision_effects(
            payment_type="post_promotion",
            decision=decision,
            from_status="pending",
        )
        self._set_post(post, status=effects.post_status, homepage=effects.homepage_payment_status)
        for payment in pending:
            self._set_payment(payment, decision)
        return {"post": post, "payment_ids": [row["id"] for row in pending], "decision": decision}

    async def request_homepage_feature(
        self,
        *,
        post_id: str,
        receipt_url: str | None,
        visitor_id: str | None,
        method: str = "qr",
        reference_id: str | None = None,
        customer_name: str | None = None,
        amount: float | None = None,
    ) -> dict[str, Any]:
        post = self._post(post_id)
        if post["status"] != "approved":
            raise RepositoryConflictError("only approved posts can be featured on the homepage")
        if post["homepage_payment_status"] == "pending":
            raise RepositoryConflictError("a homepage feature request is already pending for this post")
        self._set_post(post, status=None, homepage="pending")
        row = self.seed_payment(
            post_id=post_id,
            payment_type="post_promotion",
            visitor_id=visitor_id,
            amount=299.0 if amount is None else amount,
            method=method,
            reference_id=reference_id,
            customer_name=customer_name,
            receipt_url=receipt_url,
        )
        return self._payment_out(row)

    # contact unlock requests

    async def create_unlock_request(self, *, post_id: str, visitor_id: str) -> dict[str, Any]:
        post = self._post(post_id)
        if post["status"] != "approved":
            raise RepositoryConflictError("contact unlock is only available for approved posts")
        for row in self.unlock_requests.values():
            if row["post_id"] != post_id or row["visitor_id"] != visitor_id:
                continue
            if row["status"] == "approved":
                raise RepositoryConflictError("contact already unlocked for this listing")
            if row["status"] in {"pending", "paid"}:
                raise RepositoryConflictError("you already have a pending request for this listing")
        request = self.seed_unlock_request(post_id=post_id, visitor_id=visitor_id)
        self.seed_payment(post_id=post_id, unlock_request_id=request["id"], visitor_id=visitor_id)
        return self._request_out(request)

    async def get_unlock_request(self, request_id: str) -> dict[str, Any]:
        row = self.unlock_requests.get(request_id)
        if row is None:
            raise RepositoryNotFoundError("contact unlock request not found")
        return self._request_out(row)

    async def list_unlock_requests(
        self,
        *,
        status: str | None,
        post_id: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        rows = list(self.unlock_requests.values())
        if status:
            rows = [row for row in rows if row["status"] == status]
        if post_id:
            rows = [row for row in rows if row["post_id"] == post_id]
        return [self._request_out(row) for row in rows[offset : offset + limit]]

    async def attach_unlock_payment_proof(self, *, request_id: str, visitor_id: str, payment_proof: str) -> dict[str, Any]:
        request = self.unlock_requests.get(request_id)
        if request is None or request["visitor_id"] != visitor_id:
            raise RepositoryNotFoundError("contact unlock request not found")
        _check("contact_unlock_request", request["status"], "paid")
        request["status"] = "paid"
        request["payment_proof"] = payment_proof
        for payment in self.payments.values():
            if payment["unlock_request_id"] == request_id and payment["status"] == "pending":
                payment["receipt_url"] = payment_proof
        return self._request_out(request)

    async def decide_unlock_request(
        self,
        *,
        request_id: str,
        decision: str,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        request = self.unlock_requests.get(request_id)
        if request is None:
            raise RepositoryNotFoundError("contact unlock request not found")
        if request["status"] != decision:
            _check("contact_unlock_request", request["status"], decision)
            request["status"] = decision
            payment_status = derive_payment_status_for_unlock_decision(decision)
            for payment in self.payments.values():
                if payment["unlock_request_id"] == request_id and payment["status"] == "pending":
                    self._set_payment(payment, payment_status)
        return self._request_out(request)

    async def update_unlock_delivery(
        self,
        *,
        request_id: str,
        delivery_status: str | None,
        delivery_notes: str | None,
        actor_user_id: str,
    ) -> dict[str, Any]:
        request = self.unlock_requests.get(request_id)
        if request is None:
            raise RepositoryNotFoundError("contact unlock request not found")
        if delivery_status is not None:
            request["delivery_status"] = delivery_status
        if delivery_notes is not None:
            request["delivery_notes"] = delivery_notes
        return self._request_out(request)

    async def delete_unlock_request(self, *, request_id: str, actor_user_id: str) -> dict[str, Any]:
        if request_id not in self.unlock_requests:
            raise RepositoryNotFoundError("contact unlock request not found")
        payment_ids = [key for key, row in self.payments.items() if row["unlock_request_id"] == request_id]
        for key in payment_ids:
            del self.payments[key]
        del self.unlock_requests[request_id]
        return {"request_id": request_id, "deleted_payments": len(payment_ids)}

    # contact submissions

    async def create_contact_submission(self, **fields: Any) -> dict[str, Any]:
        now = _now()
        row = {
            "id": str(uuid.uuid4()),
            **fields,
            "source": "website",
            "status": "pending",
            "priority": "normal",
            "admin_notes": None,
            "created_at": now,
            "updated_at": now,
        }
        self.submissions[row["id"]] = row
        return row

    async def list_contact_submissions(
        self,
        *,
        search: str | None,
        status: str | None,
        priority: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        rows = list(self.submissions.values())
        if search:
            needle = search.lower()
            rows = [
                row
                for row in rows
                if needle in row["name"].lower() or needle in row["email"].lower() or needle in row["message"].lower()
            ]
        if status:
            rows = [row for row in rows if row["status"] == status]
        if priority:
            rows = [row for row in rows if row["priority"] == priority]
        return rows[offset : offset + limit]

    async def update_contact_submission(
        self,
        *,
        submission_id: str,
        status: str | None,
        priority: str | None,
        admin_notes: str | None,
        actor_user_id: str,
    ) -> dict[str, Any]:
        row = self.submissions.get(submission_id)
        if row is None:
            raise RepositoryNotFoundError("contact submission not found")
        if status is not None and status != row["status"]:
            _check("contact_submission", row["status"], status)
            row["status"] = status
        if priority is not None:
            row["priority"] = priority
        if admin_notes is not None:
            row["admin_notes"] = admin_notes
        return row

    # users and admin

    async def get_profile(self, *, user_id: str) -> dict[str, Any]:
        row = self.profiles.get(user_id)
        if row is None:
            raise RepositoryNotFoundError("profile not found")
        return row

    async def upsert_profile(
        self,
        *,
        user_id: str,
        email: str | None,
        full_name: str | None,
        phone: str | None,
    ) -> dict[str, Any]:
        now = _now()
        row = self.profiles.setdefault(
            user_id,
            {"id": user_id, "email": None, "full_name": None, "phone": None, "role": "user", "created_at": now},
        )
        for key, value in {"email": email, "full_name": full_name, "phone": phone}.items():
            if value is not None:
                row[key] = value
        row["updated_at"] = now
        return row

    async def get_dashboard_stats(self) -> dict[str, Any]:
        posts_by_status: dict[str, int] = {}
        for row in self.posts.values():
            posts_by_status[row["status"]] = posts_by_status.get(row["status"], 0) + 1
        payments_by_status: dict[str, int] = {}
        for row in self.payments.values():
            payments_by_status[row["status"]] = payments_by_status.get(row["status"], 0) + 1
        return {
            "total_posts": len(self.posts),
            "posts_by_status": posts_by_status,
            "total_payments": len(self.payments),
            "payments_by_status": payments_by_status,
            "approved_revenue": sum(row["amount"] for row in self.payments.values() if row["status"] == "approved"),
            "open_unlock_requests": sum(
                1 for row in self.unlock_requests.values() if row["status"] in {"pending", "paid"}
            ),
            "pending_homepage_payments": sum(
                1
                for row in self.payments.values()
                if row["payment_type"] == "post_promotion" and row["status"] == "pending"
            ),
            "pending_contact_submissions": sum(1 for row in self.submissions.values() if row["status"] == "pending"),
        }

    async def list_status_events(
        self,
        *,
        entity_type: str | None,
        entity_id: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        rows = self.events
        if entity_type:
            rows = [row for row in rows if row["entity_type"] == entity_type]
        if entity_id:
            rows = [row for row in rows if row["entity_id"] == entity_id]
        return rows[offset : offset + limit]


class FakeStorage:
    def __init__(self) -> None:
        self.uploads: list[StoredObject] = []
        self.removed: list[str] = []

    async def remove(self, *, bucket: str, paths: list[str]) -> None:
        self.uploads = [item for item in self.uploads if not (item.bucket == bucket and item.path in paths)]
        self.removed.extend(paths)

    async def save_upload(
        self,
        *,
        bucket: str,
        prefix: str,
        filename: str | None,
        content_type: str | None,
        content: bytes,
        allowed_types: frozenset[str],
        max_bytes: int,
    ) -> StoredObject:
        validate_upload(
            filename=filename,
            content_type=content_type,
            size=len(content),
            allowed_types=allowed_types,
            max_bytes=max_bytes,
        )
        path = f"{prefix}-{len(self.uploads) + 1}.bin"
        stored = StoredObject(
            bucket=bucket,
            path=path,
            public_url=f"https://storage.citymaid.test/{bucket}/{path}",
            size=len(content),
            content_type=content_type or "",
        )
        self.uploads.append(stored)
        return stored


@pytest.fixture
def fake_repo() -> FakeMarketplaceRepository:
    return FakeMarketplaceRepository()


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def client(
    monkeypatch: pytest.MonkeyPatch,
    fake_repo: FakeMarketplaceRepository,
    fake_storage: FakeStorage,
) -> TestClient:
    monkeypatch.setenv("CM_SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("CM_SUPABASE_ANON_KEY", "anon-key")
    get_settings.cache_clear()

    async def _fake_fetch(**kwargs: Any) -> dict[str, Any]:
        user = USERS_BY_TOKEN.get(kwargs["token"])
        if user is None:
            raise HTTPException(status_code=401, detail="invalid bearer token")
        return user

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)
    app.dependency_overrides[get_repository] = lambda: fake_repo
    app.dependency_overrides[get_storage] = lambda: fake_storage

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    get_settings.cache_clear()
