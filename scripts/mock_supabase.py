#!/usr/bin/env python3
"""Local stand-in for the Supabase auth and storage endpoints the API calls."""

from __future__ import annotations

import argparse
import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

_USERS_BY_TOKEN: dict[str, dict[str, object]] = {
    "admin-token": {
        "id": "11111111-1111-1111-1111-111111111111",
        "email": "admin@citymaid.test",
        "app_metadata": {"role": "admin"},
        "user_metadata": {},
    },
    "user-token": {
        "id": "33333333-3333-3333-3333-333333333333",
        "email": "user@citymaid.test",
        "app_metadata": {"role": "user"},
        "user_metadata": {"role": "admin"},
    },
}
_STORAGE_PREFIX = "/storage/v1/object/"


class MockSupabaseHandler(BaseHTTPRequestHandler):
    server_version = "MockSupabase/1.0"
    # bucket/path -> size in bytes
    objects: dict[str, int] = {}

    def do_GET(self) -> None:  # noqa: N802 - stdlib handler signature
        if self.path == "/healthz":
            self._write_json(HTTPStatus.OK, {"status": "ok", "objects": len(self.objects)})
            return

        if self.path != "/auth/v1/user":
            self._write_json(HTTPStatus.NOT_FOUND, {"detail": "not found"})
            return

        token = self._bearer_token()
        user = _USERS_BY_TOKEN.get(token) if token else None
        if user is None:
            self._write_json(HTTPStatus.UNAUTHORIZED, {"detail": "invalid token"})
            return
        self._write_json(HTTPStatus.OK, user)

    def do_POST(self) -> None:  # noqa: N802 - stdlib handler signature
        if not self.path.startswith(_STORAGE_PREFIX) or self._bearer_token() is None:
            self._write_json(HTTPStatus.NOT_FOUND, {"detail": "not found"})
            return

        key = self.path[len(_STORAGE_PREFIX) :]
        length = int(self.headers.get("Content-Length", "0"))
        self.rfile.read(length)
        if key in self.objects and self.headers.get("x-upsert") != "true":
            self._write_json(HTTPStatus.CONFLICT, {"error": "Duplicate", "message": "The resource already exists"})
            return
        self.objects[key] = length
        self._write_json(HTTPStatus.OK, {"Key": key})

    def do_DELETE(self) -> None:  # noqa: N802 - stdlib handler signature
        if not self.path.startswith(_STORAGE_PREFIX):
            self._write_json(HTTPStatus.NOT_FOUND, {"detail": "not found"})
            return
        bucket = self.path[len(_STORAGE_PREFIX) :].strip("/")
        length = int(self.headers.get("Content-Length", "0"))
        body = json.loads(self.rfile.read(length) or b"{}")
        removed = []
        for prefix in body.get("prefixes", []):
            if self.objects.pop(f"{bucket}/{prefix}", None) is not None:
                removed.append({"name": prefix})
        self._write_json(HTTPStatus.OK, removed)

    def log_message(self, _: str, *args: object) -> None:
        if args:
            print("mock-supabase:", *args)

    def _bearer_token(self) -> str | None:
        authorization = self.headers.get("Authorization", "")
        if not authorization.lower().startswith("bearer "):
            return None
        return authorization.split(" ", maxsplit=1)[1].strip() or None

    def _write_json(self, status: HTTPStatus, payload: object) -> None:
        raw = json.dumps(payload).encode("utf-8")
        self.send_response(status.value)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock Supabase auth and storage endpoints.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=54321)
    args = parser.parse_args()

    server = ThreadingHTTPServer((args.host, args.port), MockSupabaseHandler)
    print(f"mock-supabase listening on http://{args.host}:{args.port}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
