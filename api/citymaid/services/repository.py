from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from citymaid.core.config import get_settings
from citymaid.services.workflow import (
    EDITABLE_POST_FIELDS,
    OPEN_UNLOCK_REQUEST_STATUSES,
    PAYMENT_METHODS,
    PAYMENT_TYPES,
    POST_TYPES,
    TransitionError,
    derive_payment_decision_effects,
    derive_payment_status_for_unlock_decision,
    validate_transition,
)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates state transition rules."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


@dataclass(slots=True)
class Actor:
    actor_type: str
    actor_id: str | None

    @classmethod
    def human(cls, user_id: str) -> Actor:
        return cls(actor_type="human", actor_id=user_id)

    @classmethod
    def visitor(cls, visitor_id: str | None) -> Actor:
        return cls(actor_type="visitor", actor_id=visitor_id)


_POST_COLUMNS = """
  p.id::text as id,
  p.post_type::text as post_type,
  p.work,
  p."time" as time,
  p.place,
  p.salary,
  p.contact,
  p.photo_url,
  p.details,
  p.status::text as status,
  p.homepage_payment_status::text as homepage_payment_status,
  p.created_at,
  p.updated_at
"""

_POST_SUMMARY_COLUMNS = """
  p.id::text as post_ref_id,
  p.post_type::text as post_ref_post_type,
  p.work as post_ref_work,
  p."time" as post_ref_time,
  p.place as post_ref_place,
  p.salary as post_ref_salary,
  p.contact as post_ref_contact,
  p.photo_url as post_ref_photo_url,
  p.status::text as post_ref_status
"""

_PAYMENT_COLUMNS = """
  pm.id::text as id,
  pm.post_id::text as post_id,
  pm.unlock_request_id::text as unlock_request_id,
  pm.payment_type::text as payment_type,
  pm.visitor_id,
  pm.amount,
  pm.method,
  pm.reference_id,
  pm.customer_name,
  pm.receipt_url,
  pm.status::text as status,
  pm.approved_at,
  pm.created_at,
  pm.updated_at
"""

_UNLOCK_REQUEST_COLUMNS = """
  r.id::text as id,
  r.post_id::text as post_id,
  r.visitor_id,
  r.status::text as status,
  r.payment_proof,
  r.delivery_status::text as delivery_status,
  r.delivery_notes,
  r.created_at,
  r.updated_at
"""

_SUBMISSION_COLUMNS = """
  id::text as id,
  name,
  email,
  message,
  source,
  visitor_id,
  user_agent,
  ip_address,
  referrer,
  status::text as status,
  priority::text as priority,
  admin_notes,
  created_at,
  updated_at
"""

_INVALID_INPUT_ERRORS = (pg_exc.InvalidTextRepresentationError, asyncpg.DataError)


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        contact_unlock_price: int,
        homepage_feature_price: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.contact_unlock_price = contact_unlock_price
        self.homepage_feature_price = homepage_feature_price
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    # Posts

    async def create_post(
        self,
        *,
        post_type: str,
        work: str,
        time: str,
        place: str,
        salary: str,
        contact: str,
        photo_url: str | None = None,
        details: str | None = None,
        visitor_id: str | None = None,
    ) -> dict[str, Any]:
        if post_type not in POST_TYPES:
            raise RepositoryValidationError("post_type must be one of: employee, employer")
        fields = {"work": work, "time": time, "place": place, "salary": salary, "contact": contact}
        normalized = {key: self._coerce_text(value) for key, value in fields.items()}
        missing = sorted(key for key, value in normalized.items() if not value)
        if missing:
            raise RepositoryValidationError(f"missing required fields: {', '.join(missing)}")

        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                post_id = await conn.fetchval(
                    """
                    insert into posts (post_type, work, "time", place, salary, contact, photo_url, details)
                    values ($1::post_type, $2, $3, $4, $5, $6, $7, $8)
                    returning id::text
                    """,
                    post_type,
                    normalized["work"],
                    normalized["time"],
                    normalized["place"],
                    normalized["salary"],
                    normalized["contact"],
                    self._coerce_text(photo_url),
                    self._coerce_text(details),
                )
                await self._record_event(
                    conn,
                    entity_type="post",
                    entity_id=post_id,
                    event_type="created",
                    actor=Actor.visitor(visitor_id),
                    payload={"post_type": post_type, "status": "pending"},
                )
                row = await self._fetch_post_row(conn=conn, post_id=post_id)
        if not row:
            raise RepositoryNotFoundError("post not found")
        logger.info("post created id=%s post_type=%s", post_id, post_type)
        return self._post_row_to_dict(row)

    async def list_public_posts(
        self,
        *,
        limit: int,
        offset: int,
        post_type: str | None = None,
        work: str | None = None,
        place: str | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        pool = await self._get_pool()
        conditions: list[str] = ["p.status = 'approved'"]
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if post_type:
            conditions.append(f"p.post_type = {bind(post_type)}::post_type")
        normalized_work = self._coerce_text(work)
        if normalized_work:
            conditions.append(f"p.work ilike {bind(self._like_pattern(normalized_work))} escape '\\'")
        normalized_place = self._coerce_text(place)
        if normalized_place:
            conditions.append(f"p.place ilike {bind(self._like_pattern(normalized_place))} escape '\\'")

        where_sql = " and ".join(conditions)
        filter_params = list(params)
        limit_token = bind(limit)
        offset_token = bind(offset)

        async with pool.acquire() as conn:
            total = await conn.fetchval(f"select count(*) from posts p where {where_sql}", *filter_params)
            rows = await conn.fetch(
                f"""
                select
                {_POST_COLUMNS}
                from posts p
                where {where_sql}
                order by (p.homepage_payment_status = 'approved') desc, p.created_at desc, p.id asc
                limit {limit_token}
                offset {offset_token}
                """,
                *params,
            )
        return [self._post_row_to_dict(row) for row in rows], int(total or 0)

    async def list_posts(
        self,
        *,
        status: str | None,
        post_type: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select
            {_POST_COLUMNS}
            from posts p
            where ($1::text is null or p.status::text = $1::text)
              and ($2::text is null or p.post_type::text = $2::text)
            order by p.created_at desc, p.id asc
            limit $3
            offset $4
            """,
            status,
            post_type,
            limit,
            offset,
        )
        return [self._post_row_to_dict(row) for row in rows]

    async def get_post(self, post_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await self._fetch_post_row(conn=pool, post_id=post_id)
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("post not found") from exc
        if not row:
            raise RepositoryNotFoundError("post not found")
        return self._post_row_to_dict(row)

    async def can_visitor_view_contact(self, *, post_id: str, visitor_id: str | None) -> bool:
        if not visitor_id:
            return False
        pool = await self._get_pool()
        try:
            exists = await pool.fetchval(
                """
                select 1
                from contact_unlock_requests
                where post_id = $1::uuid
                  and visitor_id = $2
                  and status = 'approved'
                limit 1
                """,
                post_id,
                visitor_id,
            )
        except _INVALID_INPUT_ERRORS:
            return False
        return bool(exists)

    async def update_post(
        self,
        *,
        post_id: str,
        changes: dict[str, Any],
        status: str | None,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        unknown = sorted(set(changes) - set(EDITABLE_POST_FIELDS))
        if unknown:
            raise RepositoryValidationError(f"fields are not editable: {', '.join(unknown)}")
        if "post_type" in changes and changes["post_type"] not in POST_TYPES:
            raise RepositoryValidationError("post_type must be one of: employee, employer")
        for key in ("work", "time", "place", "salary", "contact"):
            if key in changes and not self._coerce_text(changes[key]):
                raise RepositoryValidationError(f"{key} must be a non-empty string")

        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    existing = await self._lock_post(conn, post_id)
                    if not existing:
                        raise RepositoryNotFoundError("post not found")

                    from_status = str(existing["status"])
                    if status is not None and status != from_status:
                        self._validate_transition("post", from_status, status)

                    assignments: list[str] = []
                    params: list[Any] = [post_id]

                    def bind(value: Any) -> str:
                        params.append(value)
                        return f"${len(params)}"

                    for key in EDITABLE_POST_FIELDS:
                        if key not in changes:
                            continue
                        value = self._coerce_text(changes[key])
                        if key == "post_type":
                            assignments.append(f"post_type = {bind(value)}::post_type")
                        elif key == "time":
                            assignments.append(f'"time" = {bind(value)}')
                        else:
                            assignments.append(f"{key} = {bind(value)}")
                    if status is not None and status != from_status:
                        assignments.append(f"status = {bind(status)}::post_status")

                    if assignments:
                        await conn.execute(
                            f"update posts set {', '.join(assignments)} where id = $1::uuid",
                            *params,
                        )

                    if status is not None and status != from_status:
                        await self._record_event(
                            conn,
                            entity_type="post",
                            entity_id=post_id,
                            event_type="status_changed",
                            actor=Actor.human(actor_user_id),
                            payload={"from_status": from_status, "to_status": status, "reason": reason},
                        )
                    edited = sorted(key for key in changes if key in EDITABLE_POST_FIELDS)
                    if edited:
                        await self._record_event(
                            conn,
                            entity_type="post",
                            entity_id=post_id,
                            event_type="edited",
                            actor=Actor.human(actor_user_id),
                            payload={"fields": edited, "reason": reason},
                        )

                    row = await self._fetch_post_row(conn=conn, post_id=post_id)
                    if not row:
                        raise RepositoryNotFoundError("post not found")
                    return self._post_row_to_dict(row)
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("post not found") from exc

    async def delete_post(self, *, post_id: str, actor_user_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    existing = await self._lock_post(conn, post_id)
                    if not existing:
                        raise RepositoryNotFoundError("post not found")

                    # Lock order is posts -> contact_unlock_requests -> payments.
                    await conn.fetch(
                        "select id from contact_unlock_requests where post_id = $1::uuid for update",
                        post_id,
                    )
                    deleted_payments = await conn.fetchval(
                        """
                        with deleted as (
                          delete from payments
                          where post_id = $1::uuid
                             or unlock_request_id in (
                               select id from contact_unlock_requests where post_id = $1::uuid
                             )
                          returning 1
                        )
                        select count(*) from deleted
                        """,
                        post_id,
                    )
                    deleted_requests = await conn.fetchval(
                        """
                        with deleted as (
                          delete from contact_unlock_requests
                          where post_id = $1::uuid
                          returning 1
                        )
                        select count(*) from deleted
                        """,
                        post_id,
                    )
                    await conn.execute("delete from posts where id = $1::uuid", post_id)
                    await self._record_event(
                        conn,
                        entity_type="post",
                        entity_id=post_id,
                        event_type="deleted",
                        actor=Actor.human(actor_user_id),
                        payload={
                            "status": existing["status"],
                            "deleted_payments": int(deleted_payments or 0),
                            "deleted_unlock_requests": int(deleted_requests or 0),
                        },
                    )
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("post not found") from exc

        logger.info(
            "post deleted id=%s payments=%s unlock_requests=%s",
            post_id,
            deleted_payments,
            deleted_requests,
        )
        return {
            "post_id": post_id,
            "deleted_payments": int(deleted_payments or 0),
            "deleted_unlock_requests": int(deleted_requests or 0),
        }

    # Payments

    async def create_payment(
        self,
        *,
        post_id: str | None,
        payment_type: str,
        visitor_id: str | None,
        amount: float | None,
        method: str,
        reference_id: str | None,
        customer_name: str | None,
        receipt_url: str | None,
    ) -> dict[str, Any]:
        if payment_type not in PAYMENT_TYPES:
            raise RepositoryValidationError("payment_type must be one of: contact_unlock, post_promotion")
        if method not in PAYMENT_METHODS:
            raise RepositoryValidationError("method must be one of: bank, esewa, qr")
        if amount is not None and amount < 0:
            raise RepositoryValidationError("amount must not be negative")
        if payment_type == "post_promotion":
            if not post_id:
                raise RepositoryValidationError("post_id is required for homepage feature payments")
            return await self.request_homepage_feature(
                post_id=post_id,
                receipt_url=receipt_url,
                visitor_id=visitor_id,
                method=method,
                reference_id=reference_id,
                customer_name=customer_name,
                amount=amount,
            )

        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    if post_id:
                        post = await conn.fetchrow(
                            "select id from posts where id = $1::uuid for share",
                            post_id,
                        )
                        if not post:
                            raise RepositoryNotFoundError("post not found")
                    payment_id = await self._insert_payment(
                        conn,
                        post_id=post_id,
                        unlock_request_id=None,
                        payment_type=payment_type,
                        visitor_id=visitor_id,
                        amount=amount if amount is not None else self.contact_unlock_price,
                        method=method,
                        reference_id=reference_id,
                        customer_name=customer_name,
                        receipt_url=receipt_url,
                    )
                    await self._record_event(
                        conn,
                        entity_type="payment",
                        entity_id=payment_id,
                        event_type="created",
                        actor=Actor.visitor(visitor_id),
                        payload={"payment_type": payment_type, "post_id": post_id},
                    )
                    row = await self._fetch_payment_row(conn=conn, payment_id=payment_id)
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("post not found") from exc
        if not row:
            raise RepositoryNotFoundError("payment not found")
        return self._payment_row_to_dict(row)

    async def list_payments(
        self,
        *,
        status: str | None,
        post_id: str | None,
        payment_type: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                select
                {_PAYMENT_COLUMNS},
                {_POST_SUMMARY_COLUMNS}
                from payments pm
                left join posts p on p.id = pm.post_id
                where ($1::text is null or pm.status::text = $1::text)
                  and ($2::uuid is null or pm.post_id = $2::uuid)
                  and ($3::text is null or pm.payment_type::text = $3::text)
                order by pm.created_at desc, pm.id asc
                limit $4
                offset $5
                """,
                status,
                post_id,
                payment_type,
                limit,
                offset,
            )
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryValidationError("invalid post id") from exc
        return [self._payment_row_to_dict(row) for row in rows]

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
        pool = await self._get_pool()
        actor = Actor.human(actor_user_id)
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    refs = await conn.fetchrow(
                        """
                        select post_id::text as post_id, unlock_request_id::text as unlock_request_id
                        from payments
                        where id = $1::uuid
                        """,
                        payment_id,
                    )
                    if not refs:
                        raise RepositoryNotFoundError("payment not found")

                    post = await self._lock_post(conn, refs["post_id"]) if refs["post_id"] else None
                    unlock_request = (
                        await self._lock_unlock_request(conn, refs["unlock_request_id"])
                        if refs["unlock_request_id"]
                        else None
                    )
                    payment = await conn.fetchrow(
                        """
                        select payment_type::text as payment_type, status::text as status
                        from payments
                        where id = $1::uuid
                        for update
                        """,
                        payment_id,
                    )
                    if not payment:
                        raise RepositoryNotFoundError("payment not found")

                    from_status = str(payment["status"])
                    if decision != from_status:
                        self._validate_transition("payment", from_status, decision)
                        effects = derive_payment_decision_effects(
                            payment_type=str(payment["payment_type"]),
                            decision=decision,
                            from_status=from_status,
                        )
                        if post is not None:
                            await self._apply_post_effects(
                                conn,
                                post=post,
                                post_status=effects.post_status,
                                homepage_payment_status=effects.homepage_payment_status,
                                actor=actor,
                                reason=reason,
                                source={"payment_id": payment_id},
                            )
                        if effects.unlock_request_status and unlock_request is not None:
                            await self._set_unlock_request_status(
                                conn,
                                request=unlock_request,
                                to_status=effects.unlock_request_status,
                                actor=actor,
                                reason=reason,
                                source={"payment_id": payment_id},
                            )
                        await self._set_payment_status(
                            conn,
                            payment_id=payment_id,
                            from_status=from_status,
                            to_status=decision,
                            actor=actor,
                            reason=reason,
                        )

                    row = await self._fetch_payment_row(conn=conn, payment_id=payment_id)
                    if not row:
                        raise RepositoryNotFoundError("payment not found")
                    return self._payment_row_to_dict(row)
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("payment not found") from exc

    async def decide_homepage_payment(
        self,
        *,
        post_id: str,
        decision: str,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        if decision not in {"approved", "rejected"}:
            raise RepositoryValidationError("decision must be one of: approved, rejected")

        pool = await self._get_pool()
        actor = Actor.human(actor_user_id)
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    post = await self._lock_post(conn, post_id)
                    if not post:
                        raise RepositoryNotFoundError("post not found")

                    payments = await conn.fetch(
                        """
                        select id::text as id, status::text as status
                        from payments
                        where post_id = $1::uuid
                          and payment_type = 'post_promotion'
                          and status = 'pending'
                        order by created_at asc
                        for update
                        """,
                        post_id,
                    )
                    if not payments:
                        raise RepositoryNotFoundError("no pending homepage payment for post")

                    effects = derive_payment_decision_effects(
                        payment_type="post_promotion",
                        decision=decision,
                        from_status="pending",
                    )
                    await self._apply_post_effects(
                        conn,
                        post=post,
                        post_status=effects.post_status,
                        homepage_payment_status=effects.homepage_payment_status,
                        actor=actor,
                        reason=reason,
                        source={"payment_ids": [payment["id"] for payment in payments]},
                    )
                    for payment in payments:
                        await self._set_payment_status(
                            conn,
                            payment_id=payment["id"],
                            from_status=str(payment["status"]),
                            to_status=decision,
                            actor=actor,
                            reason=reason,
                        )

                    row = await self._fetch_post_row(conn=conn, post_id=post_id)
                    if not row:
                        raise RepositoryNotFoundError("post not found")
                    return {
                        "post": self._post_row_to_dict(row),
                        "payment_ids": [payment["id"] for payment in payments],
                        "decision": decision,
                    }
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("post not found") from exc

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
        pool = await self._get_pool()
        actor = Actor.visitor(visitor_id)
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    post = await self._lock_post(conn, post_id)
                    if not post:
                        raise RepositoryNotFoundError("post not found")
                    if post["status"] != "approved":
                        raise RepositoryConflictError("only approved posts can be featured on the homepage")
                    if post["homepage_payment_status"] == "pending":
                        raise RepositoryConflictError("a homepage feature request is already pending for this post")

                    await self._apply_post_effects(
                        conn,
                        post=post,
                        post_status=None,
                        homepage_payment_status="pending",
                        actor=actor,
                        reason=None,
                        source={"action": "homepage_feature_requested"},
                    )
                    payment_id = await self._insert_payment(
                        conn,
                        post_id=post_id,
                        unlock_request_id=None,
                        payment_type="post_promotion",
                        visitor_id=visitor_id,
                        amount=amount if amount is not None else self.homepage_feature_price,
                        method=method,
                        reference_id=reference_id,
                        customer_name=customer_name,
                        receipt_url=receipt_url,
                    )
                    await self._record_event(
                        conn,
                        entity_type="payment",
                        entity_id=payment_id,
                        event_type="created",
                        actor=actor,
                        payload={"payment_type": "post_promotion", "post_id": post_id},
                    )
                    row = await self._fetch_payment_row(conn=conn, payment_id=payment_id)
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("post not found") from exc
        if not row:
            raise RepositoryNotFoundError("payment not found")
        logger.info("homepage feature requested post_id=%s payment_id=%s", post_id, payment_id)
        return self._payment_row_to_dict(row)

    # Contact unlock requests

    async def create_unlock_request(self, *, post_id: str, visitor_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        actor = Actor.visitor(visitor_id)
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    post = await conn.fetchrow(
                        "select status::text as status from posts where id = $1::uuid for share",
                        post_id,
                    )
                    if not post:
                        raise RepositoryNotFoundError("post not found")
                    if post["status"] != "approved":
                        raise RepositoryConflictError("contact unlock is only available for approved posts")

                    existing_status = await conn.fetchval(
                        """
                        select status::text
                        from contact_unlock_requests
                        where post_id = $1::uuid
                          and visitor_id = $2
                          and status in ('pending', 'paid', 'approved')
                        order by created_at desc
                        limit 1
                        """,
                        post_id,
                        visitor_id,
                    )
                    if existing_status == "approved":
                        raise RepositoryConflictError("contact already unlocked for this listing")
                    if existing_status in OPEN_UNLOCK_REQUEST_STATUSES:
                        raise RepositoryConflictError("you already have a pending request for this listing")

                    request_id = await conn.fetchval(
                        """
                        insert into contact_unlock_requests (post_id, visitor_id, status)
                        values ($1::uuid, $2, 'pending')
                        returning id::text
                        """,
                        post_id,
                        visitor_id,
                    )
                    payment_id = await self._insert_payment(
                        conn,
                        post_id=post_id,
                        unlock_request_id=request_id,
                        payment_type="contact_unlock",
                        visitor_id=visitor_id,
                        amount=self.contact_unlock_price,
                        method="qr",
                        reference_id=None,
                        customer_name=None,
                        receipt_url=None,
                    )
                    await self._record_event(
                        conn,
                        entity_type="contact_unlock_request",
                        entity_id=request_id,
                        event_type="created",
                        actor=actor,
                        payload={"post_id": post_id, "payment_id": payment_id},
                    )
                    row = await self._fetch_unlock_request_row(conn=conn, request_id=request_id)
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("you already have a pending request for this listing") from exc
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("post not found") from exc
        if not row:
            raise RepositoryNotFoundError("contact unlock request not found")
        logger.info("contact unlock requested request_id=%s post_id=%s", request_id, post_id)
        return self._unlock_request_row_to_dict(row)

    async def get_unlock_request(self, request_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await self._fetch_unlock_request_row(conn=pool, request_id=request_id)
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("contact unlock request not found") from exc
        if not row:
            raise RepositoryNotFoundError("contact unlock request not found")
        return self._unlock_request_row_to_dict(row)

    async def list_unlock_requests(
        self,
        *,
        status: str | None,
        post_id: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                select
                {_UNLOCK_REQUEST_COLUMNS},
                {_POST_SUMMARY_COLUMNS}
                from contact_unlock_requests r
                left join posts p on p.id = r.post_id
                where ($1::text is null or r.status::text = $1::text)
                  and ($2::uuid is null or r.post_id = $2::uuid)
                order by r.created_at desc, r.id asc
                limit $3
                offset $4
                """,
                status,
                post_id,
                limit,
                offset,
            )
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryValidationError("invalid post id") from exc
        return [self._unlock_request_row_to_dict(row) for row in rows]

    async def attach_unlock_payment_proof(
        self,
        *,
        request_id: str,
        visitor_id: str,
        payment_proof: str,
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        actor = Actor.visitor(visitor_id)
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    request = await self._lock_unlock_request(conn, request_id)
                    if not request or request["visitor_id"] != visitor_id:
                        raise RepositoryNotFoundError("contact unlock request not found")

                    await conn.execute(
                        "update contact_unlock_requests set payment_proof = $2 where id = $1::uuid",
                        request_id,
                        payment_proof,
                    )
                    await self._set_unlock_request_status(
                        conn,
                        request=request,
                        to_status="paid",
                        actor=actor,
                        reason=None,
                        source={"payment_proof": payment_proof},
                    )

                    updated = await conn.fetchval(
                        """
                        with updated as (
                          update payments
                          set receipt_url = $2
                          where unlock_request_id = $1::uuid
                            and status = 'pending'
                          returning 1
                        )
                        select count(*) from updated
                        """,
                        request_id,
                        payment_proof,
                    )
                    if not updated:
                        await self._insert_payment(
                            conn,
                            post_id=request["post_id"],
                            unlock_request_id=request_id,
                            payment_type="contact_unlock",
                            visitor_id=visitor_id,
                            amount=self.contact_unlock_price,
                            method="qr",
                            reference_id=None,
                            customer_name=None,
                            receipt_url=payment_proof,
                        )

                    row = await self._fetch_unlock_request_row(conn=conn, request_id=request_id)
                    if not row:
                        raise RepositoryNotFoundError("contact unlock request not found")
                    return self._unlock_request_row_to_dict(row)
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("contact unlock request not found") from exc

    async def decide_unlock_request(
        self,
        *,
        request_id: str,
        decision: str,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        payment_status = derive_payment_status_for_unlock_decision(decision)
        if payment_status is None:
            raise RepositoryValidationError("decision must be one of: approved, rejected")

        pool = await self._get_pool()
        actor = Actor.human(actor_user_id)
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    request = await self._lock_unlock_request(conn, request_id)
                    if not request:
                        raise RepositoryNotFoundError("contact unlock request not found")

                    if request["status"] != decision:
                        await self._set_unlock_request_status(
                            conn,
                            request=request,
                            to_status=decision,
                            actor=actor,
                            reason=reason,
                            source=None,
                        )
                        payments = await conn.fetch(
                            """
                            select id::text as id, status::text as status
                            from payments
                            where unlock_request_id = $1::uuid
                              and status = 'pending'
                            for update
                            """,
                            request_id,
                        )
                        for payment in payments:
                            await self._set_payment_status(
                                conn,
                                payment_id=payment["id"],
                                from_status=str(payment["status"]),
                                to_status=payment_status,
                                actor=actor,
                                reason=reason,
                            )

                    row = await self._fetch_unlock_request_row(conn=conn, request_id=request_id)
                    if not row:
                        raise RepositoryNotFoundError("contact unlock request not found")
                    return self._unlock_request_row_to_dict(row)
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("contact unlock request not found") from exc

    async def update_unlock_delivery(
        self,
        *,
        request_id: str,
        delivery_status: str | None,
        delivery_notes: str | None,
        actor_user_id: str,
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    request = await self._lock_unlock_request(conn, request_id)
                    if not request:
                        raise RepositoryNotFoundError("contact unlock request not found")
                    await conn.execute(
                        """
                        update contact_unlock_requests
                        set
                          delivery_status = coalesce($2::delivery_status, delivery_status),
                          delivery_notes = coalesce($3, delivery_notes)
                        where id = $1::uuid
                        """,
                        request_id,
                        delivery_status,
                        self._coerce_text(delivery_notes),
                    )
                    await self._record_event(
                        conn,
                        entity_type="contact_unlock_request",
                        entity_id=request_id,
                        event_type="delivery_updated",
                        actor=Actor.human(actor_user_id),
                        payload={
                            "from_delivery_status": request["delivery_status"],
                            "to_delivery_status": delivery_status or request["delivery_status"],
                        },
                    )
                    row = await self._fetch_unlock_request_row(conn=conn, request_id=request_id)
                    if not row:
                        raise RepositoryNotFoundError("contact unlock request not found")
                    return self._unlock_request_row_to_dict(row)
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("contact unlock request not found") from exc

    async def delete_unlock_request(self, *, request_id: str, actor_user_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    request = await self._lock_unlock_request(conn, request_id)
                    if not request:
                        raise RepositoryNotFoundError("contact unlock request not found")
                    deleted_payments = await conn.fetchval(
                        """
                        with deleted as (
                          delete from payments
                          where unlock_request_id = $1::uuid
                          returning 1
                        )
                        select count(*) from deleted
                        """,
                        request_id,
                    )
                    await conn.execute("delete from contact_unlock_requests where id = $1::uuid", request_id)
                    await self._record_event(
                        conn,
                        entity_type="contact_unlock_request",
                        entity_id=request_id,
                        event_type="deleted",
                        actor=Actor.human(actor_user_id),
                        payload={"status": request["status"], "deleted_payments": int(deleted_payments or 0)},
                    )
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("contact unlock request not found") from exc
        return {"request_id": request_id, "deleted_payments": int(deleted_payments or 0)}

    # Contact submissions

    async def create_contact_submission(
        self,
        *,
        name: str,
        email: str,
        message: str,
        visitor_id: str | None,
        user_agent: str | None,
        ip_address: str | None,
        referrer: str | None,
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            insert into contact_submissions (
              name,
              email,
              message,
              source,
              visitor_id,
              user_agent,
              ip_address,
              referrer,
              priority
            )
            values ($1, $2, $3, 'website', $4, $5, $6, $7, 'normal')
            returning
            {_SUBMISSION_COLUMNS}
            """,
            name,
            email,
            message,
            visitor_id,
            user_agent,
            ip_address,
            referrer,
        )
        logger.info("contact submission stored id=%s", row["id"])
        return self._submission_row_to_dict(row)

    async def list_contact_submissions(
        self,
        *,
        search: str | None,
        status: str | None,
        priority: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        normalized_search = self._coerce_text(search)
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select
            {_SUBMISSION_COLUMNS}
            from contact_submissions
            where (
              $1::text is null
              or name ilike $1 escape '\\'
              or email ilike $1 escape '\\'
              or message ilike $1 escape '\\'
            )
              and ($2::text is null or status::text = $2::text)
              and ($3::text is null or priority::text = $3::text)
            order by created_at desc, id asc
            limit $4
            offset $5
            """,
            self._like_pattern(normalized_search) if normalized_search else None,
            status,
            priority,
            limit,
            offset,
        )
        return [self._submission_row_to_dict(row) for row in rows]

    async def update_contact_submission(
        self,
        *,
        submission_id: str,
        status: str | None,
        priority: str | None,
        admin_notes: str | None,
        actor_user_id: str,
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    existing = await conn.fetchrow(
                        """
                        select status::text as status, priority::text as priority
                        from contact_submissions
                        where id = $1::uuid
                        for update
                        """,
                        submission_id,
                    )
                    if not existing:
                        raise RepositoryNotFoundError("contact submission not found")
                    from_status = str(existing["status"])
                    if status is not None and status != from_status:
                        self._validate_transition("contact_submission", from_status, status)

                    row = await conn.fetchrow(
                        f"""
                        update contact_submissions
                        set
                          status = coalesce($2::submission_status, status),
                          priority = coalesce($3::submission_priority, priority),
                          admin_notes = coalesce($4, admin_notes)
                        where id = $1::uuid
                        returning
                        {_SUBMISSION_COLUMNS}
                        """,
                        submission_id,
                        status,
                        priority,
                        admin_notes,
                    )
                    if status is not None and status != from_status:
                        await self._record_event(
                            conn,
                            entity_type="contact_submission",
                            entity_id=submission_id,
                            event_type="status_changed",
                            actor=Actor.human(actor_user_id),
                            payload={"from_status": from_status, "to_status": status},
                        )
                    return self._submission_row_to_dict(row)
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("contact submission not found") from exc

    # Users

    async def get_profile(self, *, user_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                select id::text as id, email, full_name, phone, role, created_at, updated_at
                from users
                where id = $1::uuid
                """,
                user_id,
            )
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryNotFoundError("profile not found") from exc
        if not row:
            raise RepositoryNotFoundError("profile not found")
        return dict(row)

    async def upsert_profile(
        self,
        *,
        user_id: str,
        email: str | None,
        full_name: str | None,
        phone: str | None,
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                insert into users (id, email, full_name, phone)
                values ($1::uuid, $2, $3, $4)
                on conflict (id) do update
                set
                  email = coalesce(excluded.email, users.email),
                  full_name = coalesce(excluded.full_name, users.full_name),
                  phone = coalesce(excluded.phone, users.phone)
                returning id::text as id, email, full_name, phone, role, created_at, updated_at
                """,
                user_id,
                self._coerce_text(email),
                self._coerce_text(full_name),
                self._coerce_text(phone),
            )
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryValidationError("invalid user id") from exc
        return dict(row)

    # Admin

    async def get_dashboard_stats(self) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            post_rows = await conn.fetch("select status::text as key, count(*) as count from posts group by status")
            payment_rows = await conn.fetch(
                "select status::text as key, count(*) as count from payments group by status"
            )
            row = await conn.fetchrow(
                """
                select
                  (select coalesce(sum(amount), 0) from payments where status = 'approved') as approved_revenue,
                  (select count(*) from contact_unlock_requests where status in ('pending', 'paid'))
                    as open_unlock_requests,
                  (select count(*) from payments where payment_type = 'post_promotion' and status = 'pending')
                    as pending_homepage_payments,
                  (select count(*) from contact_submissions where status = 'pending') as pending_contact_submissions
                """
            )
        posts_by_status = {str(item["key"]): int(item["count"]) for item in post_rows}
        payments_by_status = {str(item["key"]): int(item["count"]) for item in payment_rows}
        return {
            "total_posts": sum(posts_by_status.values()),
            "posts_by_status": posts_by_status,
            "total_payments": sum(payments_by_status.values()),
            "payments_by_status": payments_by_status,
            "approved_revenue": float(row["approved_revenue"] or 0),
            "open_unlock_requests": int(row["open_unlock_requests"] or 0),
            "pending_homepage_payments": int(row["pending_homepage_payments"] or 0),
            "pending_contact_submissions": int(row["pending_contact_submissions"] or 0),
        }

    async def list_status_events(
        self,
        *,
        entity_type: str | None,
        entity_id: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                """
                select
                  id,
                  entity_type,
                  entity_id::text as entity_id,
                  event_type,
                  actor_type,
                  actor_id,
                  payload,
                  created_at
                from status_events
                where ($1::text is null or entity_type = $1::text)
                  and ($2::uuid is null or entity_id = $2::uuid)
                order by created_at desc, id desc
                limit $3
                offset $4
                """,
                entity_type,
                entity_id,
                limit,
                offset,
            )
        except _INVALID_INPUT_ERRORS as exc:
            raise RepositoryValidationError("invalid entity id") from exc
        return [self._event_row_to_dict(row) for row in rows]

    # Shared write helpers

    async def _apply_post_effects(
        self,
        conn: asyncpg.Connection,
        *,
        post: asyncpg.Record,
        post_status: str | None,
        homepage_payment_status: str | None,
        actor: Actor,
        reason: str | None,
        source: dict[str, Any],
    ) -> None:
        post_id = post["id"]
        from_status = str(post["status"])
        from_homepage = str(post["homepage_payment_status"])
        change_status = post_status is not None and post_status != from_status
        change_homepage = homepage_payment_status is not None and homepage_payment_status != from_homepage
        if change_status:
            self._validate_transition("post", from_status, post_status)
        if change_homepage:
            self._validate_transition("homepage_payment", from_homepage, homepage_payment_status)
        if not change_status and not change_homepage:
            return

        await conn.execute(
            """
            update posts
            set
              status = coalesce($2::post_status, status),
              homepage_payment_status = coalesce($3::homepage_payment_status, homepage_payment_status)
            where id = $1::uuid
            """,
            post_id,
            post_status if change_status else None,
            homepage_payment_status if change_homepage else None,
        )
        payload: dict[str, Any] = {"reason": reason, **source}
        if change_status:
            payload.update({"from_status": from_status, "to_status": post_status})
        if change_homepage:
            payload.update(
                {
                    "from_homepage_payment_status": from_homepage,
                    "to_homepage_payment_status": homepage_payment_status,
                }
            )
        await self._record_event(
            conn,
            entity_type="post",
            entity_id=post_id,
            event_type="status_changed",
            actor=actor,
            payload=payload,
        )

    async def _set_unlock_request_status(
        self,
        conn: asyncpg.Connection,
        *,
        request: asyncpg.Record,
        to_status: str,
        actor: Actor,
        reason: str | None,
        source: dict[str, Any] | None,
    ) -> None:
        from_status = str(request["status"])
        if from_status == to_status:
            return
        self._validate_transition("contact_unlock_request", from_status, to_status)
        await conn.execute(
            "update contact_unlock_requests set status = $2::unlock_request_status where id = $1::uuid",
            request["id"],
            to_status,
        )
        await self._record_event(
            conn,
            entity_type="contact_unlock_request",
            entity_id=request["id"],
            event_type="status_changed",
            actor=actor,
            payload={"from_status": from_status, "to_status": to_status, "reason": reason, **(source or {})},
        )

    async def _set_payment_status(
        self,
        conn: asyncpg.Connection,
        *,
        payment_id: str,
        from_status: str,
        to_status: str,
        actor: Actor,
        reason: str | None,
    ) -> None:
        if from_status == to_status:
            return
        self._validate_transition("payment", from_status, to_status)
        await conn.execute(
            """
            update payments
            set
              status = $2::payment_status,
              approved_at = case when $2::payment_status = 'approved' then now() else approved_at end
            where id = $1::uuid
            """,
            payment_id,
            to_status,
        )
        await self._record_event(
            conn,
            entity_type="payment",
            entity_id=payment_id,
            event_type="status_changed",
            actor=actor,
            payload={"from_status": from_status, "to_status": to_status, "reason": reason},
        )

    async def _insert_payment(
        self,
        conn: asyncpg.Connection,
        *,
        post_id: str | None,
        unlock_request_id: str | None,
        payment_type: str,
        visitor_id: str | None,
        amount: float,
        method: str,
        reference_id: str | None,
        customer_name: str | None,
        receipt_url: str | None,
    ) -> str:
        return await conn.fetchval(
            """
            insert into payments (
              post_id,
              unlock_request_id,
              payment_type,
              visitor_id,
              amount,
              method,
              reference_id,
              customer_name,
              receipt_url,
              status
            )
            values ($1::uuid, $2::uuid, $3::payment_type, $4, $5::numeric, $6, $7, $8, $9, 'pending')
            returning id::text
            """,
            post_id,
            unlock_request_id,
            payment_type,
            visitor_id,
            Decimal(str(amount)),
            method,
            self._coerce_text(reference_id),
            self._coerce_text(customer_name),
            self._coerce_text(receipt_url),
        )

    async def _record_event(
        self,
        conn: asyncpg.Connection,
        *,
        entity_type: str,
        entity_id: str | None,
        event_type: str,
        actor: Actor,
        payload: dict[str, Any],
    ) -> None:
        await conn.execute(
            """
            insert into status_events (entity_type, entity_id, event_type, actor_type, actor_id, payload)
            values ($1, $2::uuid, $3, $4, $5, $6::jsonb)
            """,
            entity_type,
            entity_id,
            event_type,
            actor.actor_type,
            actor.actor_id,
            json.dumps(payload, default=str),
        )

    # Row access

    async def _lock_post(self, conn: asyncpg.Connection, post_id: str) -> asyncpg.Record | None:
        return await conn.fetchrow(
            """
            select
              id::text as id,
              status::text as status,
              homepage_payment_status::text as homepage_payment_status
            from posts
            where id = $1::uuid
            for update
            """,
            post_id,
        )

    async def _lock_unlock_request(self, conn: asyncpg.Connection, request_id: str) -> asyncpg.Record | None:
        return await conn.fetchrow(
            """
            select
              id::text as id,
              post_id::text as post_id,
              visitor_id,
              status::text as status,
              delivery_status::text as delivery_status
            from contact_unlock_requests
            where id = $1::uuid
            for update
            """,
            request_id,
        )

    async def _fetch_post_row(
        self,
        *,
        conn: asyncpg.Connection | asyncpg.Pool,
        post_id: str,
    ) -> asyncpg.Record | None:
        return await conn.fetchrow(
            f"""
            select
            {_POST_COLUMNS}
            from posts p
            where p.id = $1::uuid
            """,
            post_id,
        )

    async def _fetch_payment_row(
        self,
        *,
        conn: asyncpg.Connection | asyncpg.Pool,
        payment_id: str,
    ) -> asyncpg.Record | None:
        return await conn.fetchrow(
            f"""
            select
            {_PAYMENT_COLUMNS},
            {_POST_SUMMARY_COLUMNS}
            from payments pm
            left join posts p on p.id = pm.post_id
            where pm.id = $1::uuid
            """,
            payment_id,
        )

    async def _fetch_unlock_request_row(
        self,
        *,
        conn: asyncpg.Connection | asyncpg.Pool,
        request_id: str,
    ) -> asyncpg.Record | None:
        return await conn.fetchrow(
            f"""
            select
            {_UNLOCK_REQUEST_COLUMNS},
            {_POST_SUMMARY_COLUMNS}
            from contact_unlock_requests r
            left join posts p on p.id = r.post_id
            where r.id = $1::uuid
            """,
            request_id,
        )

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("CM_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _validate_transition(entity: str, from_status: str, to_status: str) -> None:
        try:
            validate_transition(entity, from_status, to_status)
        except TransitionError as exc:
            raise RepositoryConflictError(str(exc)) from exc

    @staticmethod
    def _post_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "post_type": row["post_type"],
            "work": row["work"],
            "time": row["time"],
            "place": row["place"],
            "salary": row["salary"],
            "contact": row["contact"],
            "photo_url": row["photo_url"],
            "details": row["details"],
            "status": row["status"],
            "homepage_payment_status": row["homepage_payment_status"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _post_summary_to_dict(row: asyncpg.Record) -> dict[str, Any] | None:
        if row["post_ref_id"] is None:
            return None
        return {
            "id": row["post_ref_id"],
            "post_type": row["post_ref_post_type"],
            "work": row["post_ref_work"],
            "time": row["post_ref_time"],
            "place": row["post_ref_place"],
            "salary": row["post_ref_salary"],
            "contact": row["post_ref_contact"],
            "photo_url": row["post_ref_photo_url"],
            "status": row["post_ref_status"],
        }

    def _payment_row_to_dict(self, row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "post_id": row["post_id"],
            "unlock_request_id": row["unlock_request_id"],
            "payment_type": row["payment_type"],
            "visitor_id": row["visitor_id"],
            "amount": float(row["amount"]) if row["amount"] is not None else 0.0,
            "method": row["method"],
            "reference_id": row["reference_id"],
            "customer_name": row["customer_name"],
            "receipt_url": row["receipt_url"],
            "status": row["status"],
            "approved_at": row["approved_at"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "post": self._post_summary_to_dict(row),
        }

    def _unlock_request_row_to_dict(self, row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "post_id": row["post_id"],
            "visitor_id": row["visitor_id"],
            "status": row["status"],
            "payment_proof": row["payment_proof"],
            "delivery_status": row["delivery_status"],
            "delivery_notes": row["delivery_notes"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "post": self._post_summary_to_dict(row),
        }

    @staticmethod
    def _submission_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "name": row["name"],
            "email": row["email"],
            "message": row["message"],
            "source": row["source"],
            "visitor_id": row["visitor_id"],
            "user_agent": row["user_agent"],
            "ip_address": row["ip_address"],
            "referrer": row["referrer"],
            "status": row["status"],
            "priority": row["priority"],
            "admin_notes": row["admin_notes"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _event_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        payload = row["payload"]
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                payload = {}
        if not isinstance(payload, dict):
            payload = {}
        return {
            "id": int(row["id"]),
            "entity_type": row["entity_type"],
            "entity_id": row["entity_id"],
            "event_type": row["event_type"],
            "actor_type": row["actor_type"],
            "actor_id": row["actor_id"],
            "payload": payload,
            "created_at": row["created_at"],
        }

    @staticmethod
    def _like_pattern(value: str) -> str:
        escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"

    @staticmethod
    def _coerce_text(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return str(value)


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        contact_unlock_price=settings.contact_unlock_price,
        homepage_feature_price=settings.homepage_feature_price,
    )
