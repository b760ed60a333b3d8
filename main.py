"""CLI entry point.

    python main.py serve --port 8000
    python main.py listen --url http://localhost:8000 --session-id <id>
"""

import argparse
import asyncio
import json
import sys

from src.logging_config import LogFormat, LoggingConfig, configure_logging


def _parse_dev_session(spec: str):
    from src.realtime.registry import ConnectionIdentity

    parts = spec.split(":")
    if len(parts) < 2:
        raise argparse.ArgumentTypeError(f"Expected SESSION:USER[:FACULTY[:admin]], got {spec!r}")
    return ConnectionIdentity.create(
        session_id=parts[0],
        user_id=parts[1],
        faculty_id=parts[2] if len(parts) > 2 and parts[2] else None,
        is_admin=len(parts) > 3 and parts[3] == "admin",
    )


def _serve(args) -> int:
    import uvicorn

    from src.api import SessionStore, create_app

    sessions = SessionStore()
    for identity in args.dev_session:
        sessions.add(identity)
    app = create_app(sessions=sessions, logging_config=args.logging_config)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


async def _listen(args) -> int:
    from src.realtime_client import (
        ClientConfig,
        HTTPStreamTransport,
        IdentityContext,
        InMemoryIdentityProvider,
        RealtimeClient,
    )

    provider = InMemoryIdentityProvider(
        IdentityContext.create(session_id=args.session_id, user_id=args.user_id)
    )
    client = RealtimeClient(HTTPStreamTransport(args.url), provider, ClientConfig.from_env())
    done = asyncio.Event()
    exit_code = 0

    def on_event(event):
        print(f"[{event.priority.value:8s}] {event.event_type.value}: {json.dumps(event.payload)}")

    def on_fatal(exc):
        nonlocal exit_code
        print(f"ERROR: {exc}", file=sys.stderr)
        exit_code = 1
        done.set()

    def on_identity(identity):
        if identity is None:
            print("Session revoked; signed out.", file=sys.stderr)
            done.set()

    client.on_any(on_event)
    client.on_fatal_error(on_fatal)
    provider.subscribe(on_identity)

    client.connect()
    try:
        await done.wait()
    finally:
        client.disconnect()
    return exit_code


def main():
    parser = argparse.ArgumentParser(
        description="Trackivity - targeted real-time event delivery"
    )
    parser.add_argument(
        "--log-format", choices=[f.value for f in LogFormat], default=LogFormat.CONSOLE.value,
        help="Log output format (default: console)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the realtime API server")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument(
        "--dev-session", action="append", default=[], type=_parse_dev_session,
        metavar="SESSION:USER[:FACULTY[:admin]]",
        help="Seed a session for local testing (repeatable)"
    )

    listen = sub.add_parser("listen", help="Subscribe to a stream and print events")
    listen.add_argument("--url", default="http://localhost:8000", help="API base URL")
    listen.add_argument("--session-id", required=True, help="Session to authenticate with")
    listen.add_argument("--user-id", default="cli", help="User id of the session")

    args = parser.parse_args()
    args.logging_config = configure_logging(LoggingConfig(format=LogFormat(args.log_format)))

    if args.command == "serve":
        return _serve(args)
    try:
        return asyncio.run(_listen(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
