"""Application entrypoint — start the API server or run one-off commands."""

from __future__ import annotations

import argparse
import asyncio
import sys

import uvicorn

from vitalsync.config import get_settings
from vitalsync.logger import setup_logging
from vitalsync.models import KeySlot


async def _issue_key(external_id: str, slot: KeySlot) -> str:
    from vitalsync.auth.credentials import KeyIssuer
    from vitalsync.storage.database import dispose_db, get_session_factory, init_db

    await init_db()
    try:
        async with get_session_factory()() as session:
            return await KeyIssuer(session, nbytes=get_settings().key_bytes).issue(external_id, slot)
    finally:
        await dispose_db()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="vitalsync",
        description="Biometric and emotion telemetry ingestion service.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── serve ─────────────────────────────────────────────────
    serve_parser = sub.add_parser("serve", help="Start the API server.")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument("--reload", action="store_true")

    # ── init-db ───────────────────────────────────────────────
    sub.add_parser("init-db", help="Create database tables.")

    # ── issue-key ─────────────────────────────────────────────
    key_parser = sub.add_parser("issue-key", help="Issue (rotate) a device key for a user.")
    key_parser.add_argument("external_id", help="Identity-provider user id.")
    key_parser.add_argument(
        "--slot",
        choices=[s.value for s in KeySlot],
        default=KeySlot.IOT.value,
    )

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)

    if args.command == "serve":
        uvicorn.run(
            "vitalsync.api.server:app",
            host=args.host or settings.api_host,
            port=args.port or settings.api_port,
            reload=args.reload,
        )
    elif args.command == "init-db":
        from vitalsync.storage.database import init_db

        asyncio.run(init_db())
        print("Database tables created.")
    elif args.command == "issue-key":
        key = asyncio.run(_issue_key(args.external_id, KeySlot(args.slot)))
        print(key)
        print("Store this key now; it cannot be shown again.", file=sys.stderr)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
