#!/usr/bin/env python3
"""Emit SQL that grants a CityMaid role to a Supabase auth user."""

from __future__ import annotations

import argparse


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, role: str, user_id: str | None, email: str | None, actor: str) -> str:
    role_value = _quote_sql(role)
    actor_value = _quote_sql(actor)

    if user_id:
        target_where = f"id = {_quote_sql(user_id)}::uuid"
        payload = f"jsonb_build_object('user_id', {_quote_sql(user_id)}, 'role', {role_value})"
    else:
        assert email is not None
        target_where = f"email = {_quote_sql(email)}"
        payload = f"jsonb_build_object('email', {_quote_sql(email)}, 'role', {role_value})"

    return f"""-- CityMaid role bootstrap SQL
-- Run this in the Supabase SQL editor (or another privileged Postgres session).

update auth.users
set raw_app_meta_data = coalesce(raw_app_meta_data, '{{}}'::jsonb) || jsonb_build_object('role', {role_value})
where {target_where};

insert into public.users (id, email, role)
select id, email, {role_value}
from auth.users
where {target_where}
on conflict (id) do update set role = excluded.role, email = coalesce(excluded.email, public.users.email);

insert into public.status_events (entity_type, event_type, actor_type, actor_id, payload)
values ('user', 'role_granted', 'system', {actor_value}, {payload});
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to grant a CityMaid role to a Supabase user.")
    parser.add_argument(
        "--role",
        choices=["user", "admin"],
        default="admin",
        help="Role to assign in auth.users.raw_app_meta_data.role",
    )
    identity_group = parser.add_mutually_exclusive_group(required=True)
    identity_group.add_argument("--user-id", help="Supabase auth.users id (UUID)")
    identity_group.add_argument("--email", help="Supabase auth.users email")
    parser.add_argument("--actor", default="cli", help="Actor label recorded in status_events")
    args = parser.parse_args()

    print(
        render_sql(
            role=args.role,
            user_id=args.user_id,
            email=args.email,
            actor=args.actor,
        )
    )


if __name__ == "__main__":
    main()
