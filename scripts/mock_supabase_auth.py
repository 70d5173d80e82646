#!/usr/bin/env python3
"""Local stand-in for the Supabase ``/auth/v1/user`` endpoint.

Bearer tokens map to app store users through ``--token TOKEN=USER_ID[:ROLE]``.
"""

from __future__ import annotations

import argparse
import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

DEFAULT_TOKENS = {
    "author-token": ("sample-author", "user"),
    "readonly-token": ("readonly-user", "readonly"),
}


def parse_token_spec(raw: str) -> tuple[str, tuple[str, str]]:
    token, separator, identity = raw.partition("=")
    if not separator or not token or not identity:
        raise argparse.ArgumentTypeError(f"expected TOKEN=USER_ID[:ROLE], got {raw!r}")
    user_id, _, role = identity.partition(":")
    return token, (user_id, role or "user")


def build_handler(tokens: dict[str, tuple[str, str]]) -> type[BaseHTTPRequestHandler]:
    class MockSupabaseHandler(BaseHTTPRequestHandler):
        server_version = "MockSupabase/1.0"

        def do_GET(self) -> None:  # noqa: N802 - stdlib handler signature
            if self.path == "/healthz":
                self._write_json(HTTPStatus.OK, {"status": "ok"})
                return

            if self.path != "/auth/v1/user":
                self._write_json(HTTPStatus.NOT_FOUND, {"detail": "not found"})
                return

            authorization = self.headers.get("Authorization", "")
            if not authorization.lower().startswith("bearer "):
                self._write_json(HTTPStatus.UNAUTHORIZED, {"detail": "missing bearer token"})
                return

            token = authorization.split(" ", maxsplit=1)[1].strip()
            identity = tokens.get(token)
            if identity is None:
                self._write_json(HTTPStatus.UNAUTHORIZED, {"detail": "invalid token"})
                return

            user_id, role = identity
            self._write_json(
                HTTPStatus.OK,
                {"id": user_id, "app_metadata": {"role": role}, "user_metadata": {}},
            )

        def log_message(self, _: str, *args: object) -> None:
            # Keep logs terse for test runs.
            if args:
                print("mock-supabase:", *args)

        def _write_json(self, status: HTTPStatus, payload: dict[str, object]) -> None:
            raw = json.dumps(payload).encode("utf-8")
            self.send_response(status.value)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(raw)))
            self.end_headers()
            self.wfile.write(raw)

    return MockSupabaseHandler


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock Supabase auth /auth/v1/user endpoint.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=54321)
    parser.add_argument(
        "--token",
        action="append",
        type=parse_token_spec,
        default=[],
        help="Extra bearer token mapping TOKEN=USER_ID[:ROLE]",
    )
    args = parser.parse_args()

    tokens = dict(DEFAULT_TOKENS)
    tokens.update(dict(args.token))
    server = ThreadingHTTPServer((args.host, args.port), build_handler(tokens))
    print(f"mock-supabase listening on http://{args.host}:{args.port}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
