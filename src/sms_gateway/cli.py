from __future__ import annotations

import argparse
from collections.abc import Iterable, Sequence

from .config import configure_logging
from .db import InboundMessage, SessionLocal
from .errors import InvalidArgument, TransportError
from .sms import OutboundMessageRequest, ProviderResponse
from .twilio_client import get_provider_client


def _format_str(value: str | None) -> str:
    """Normalise None/whitespace for display."""
    if value is None:
        return ""
    return value.strip()


def print_response(result: ProviderResponse) -> None:
    if result.success:
        print(f"ok: sid={result.message_id} status={_format_str(result.message_status) or '-'}")
    else:
        print(f"failed: HTTP {result.status_code}: {result.error}")
        print(result.raw_body)


def iter_recent_messages(limit: int) -> Iterable[InboundMessage]:
    """Yield recent inbound messages ordered by newest first."""
    db = SessionLocal()
    try:
        rows = (
            db.query(InboundMessage)
            .order_by(InboundMessage.received_at.desc())
            .limit(limit)
            .all()
        )
        yield from rows
    finally:
        db.close()


def print_recent_messages(limit: int) -> None:
    """Print recent inbound messages in a human-readable form."""
    for m in iter_recent_messages(limit):
        print("-" * 80)
        print(f"#{m.id} | {m.message_sid} | {m.channel} | at={m.received_at}")
        print(f"{m.from_number} -> {m.to_number}")
        print()
        print(_format_str(m.body))
        for url in m.media_urls:
            print(f"  media: {url}")
        if m.latitude is not None and m.longitude is not None:
            print(f"  location: {m.latitude}, {m.longitude}")
        print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sms-gateway")
    sub = parser.add_subparsers(dest="command", required=True)

    send = sub.add_parser("send", help="send a message through Twilio")
    send.add_argument("to")
    send.add_argument("body")
    send.add_argument("--from", dest="from_", default=None)

    status = sub.add_parser("status", help="look up a sent message by SID")
    status.add_argument("message_id")

    recent = sub.add_parser("recent", help="show recently received messages")
    recent.add_argument("--limit", type=int, default=20)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    if args.command == "recent":
        print_recent_messages(args.limit)
        return 0

    try:
        client = get_provider_client()
        if args.command == "send":
            request = OutboundMessageRequest(to=args.to, body=args.body, from_=args.from_)
            result = client.send(request)
        else:
            result = client.fetch_status(args.message_id)
    except (InvalidArgument, RuntimeError) as e:
        print(f"error: {e}")
        return 2
    except TransportError as e:
        print(f"transport error: {e.message}")
        return 1

    print_response(result)
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
