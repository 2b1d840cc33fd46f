"""CLI interface for the bookflow derivation engine."""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date

from dotenv import load_dotenv

from bookflow.client import BookstoreClient, create_client
from bookflow.observe import logging_observer
from bookflow.parser import assemble, parse_date
from bookflow.views import derive_view


def json_serializer(obj):
    """JSON serializer for objects not serializable by default."""
    if isinstance(obj, date):
        return obj.isoformat()
    raise TypeError(f"Type {type(obj)} not serializable")


def output_json(data):
    """Output data as JSON to stdout."""
    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")
    elif isinstance(data, list) and data and hasattr(data[0], "model_dump"):
        data = [item.model_dump(mode="json") for item in data]
    print(json.dumps(data, default=json_serializer, indent=2))


def error(message: str):
    """Output error to stderr and exit."""
    print(json.dumps({"error": message}), file=sys.stderr)
    sys.exit(1)


def read_payloads(path: str | None) -> list:
    """Read a JSON object or list from a file, or stdin when path is None or "-"."""
    if path is None or path == "-":
        text = sys.stdin.read()
    else:
        with open(path, encoding="utf-8") as fh:
            text = fh.read()
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        error(f"Invalid JSON input: {e}")
    return data if isinstance(data, list) else [data]


def cmd_derive(args, observer):
    """Derive views for raw payloads read from a file or stdin."""
    now = parse_date(args.now) if args.now else None
    if args.now and now is None:
        error(f"Invalid --now value: {args.now}")
    views = [
        derive_view(assemble(payload, args.kind, observer, now=now), now, observer)
        for payload in read_payloads(args.file)
    ]
    output_json(views)


async def cmd_borrowings(client: BookstoreClient, args):
    """List borrow requests with derived state."""
    records = await client.get_borrowings(status=args.status, search=args.search)
    views = [derive_view(r, observer=client.observer) for r in records]
    if args.overdue:
        views = [v for v in views if v.temporal.is_overdue]
    output_json(views)


async def cmd_returns(client: BookstoreClient, args):
    """List return requests with derived state."""
    records = await client.get_return_requests()
    output_json([derive_view(r, observer=client.observer) for r in records])


async def cmd_deliveries(client: BookstoreClient, args):
    """List deliveries with derived state."""
    records = await client.get_deliveries()
    views = [derive_view(r, observer=client.observer) for r in records]
    if args.trackable:
        views = [v for v in views if v.location.can_track]
    output_json(views)


async def cmd_fines(client: BookstoreClient, args):
    """List the customer's fines."""
    output_json(await client.get_fines())


async def run_command(args, observer):
    """Run a fetch subcommand against the backend."""
    load_dotenv()

    client = create_client(base_url=args.base_url, observer=observer)
    try:
        await args.func(client, args)
    finally:
        await client.close()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="bookflow",
        description="Derive canonical status, overdue, fine and tracking state for bookstore records",
    )
    parser.add_argument("--verbose", action="store_true", help="Log diagnostics about malformed data to stderr")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # derive command
    derive_parser = subparsers.add_parser("derive", help="Derive views from raw JSON payloads")
    derive_parser.add_argument("kind", choices=["borrow", "return", "delivery"], help="Record kind")
    derive_parser.add_argument("file", nargs="?", help="JSON file (object or list); stdin if omitted")
    derive_parser.add_argument("--now", help="Evaluate overdue state at this ISO timestamp")
    derive_parser.set_defaults(func=cmd_derive, is_local=True)

    # fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Fetch records from the backend and derive views")
    fetch_parser.add_argument("--base-url", help="Backend API URL (default: $BOOKSTORE_API_URL)")
    fetch_subparsers = fetch_parser.add_subparsers(dest="resource", required=True)

    borrowings_parser = fetch_subparsers.add_parser("borrowings", help="List borrow requests")
    borrowings_parser.add_argument("--status", help="Backend status filter")
    borrowings_parser.add_argument("--search", help="Search text")
    borrowings_parser.add_argument("--overdue", action="store_true", help="Only show overdue borrowings")
    borrowings_parser.set_defaults(func=cmd_borrowings)

    returns_parser = fetch_subparsers.add_parser("returns", help="List return requests")
    returns_parser.set_defaults(func=cmd_returns)

    deliveries_parser = fetch_subparsers.add_parser("deliveries", help="List deliveries")
    deliveries_parser.add_argument("--trackable", action="store_true", help="Only show deliveries with live tracking")
    deliveries_parser.set_defaults(func=cmd_deliveries)

    fines_parser = fetch_subparsers.add_parser("fines", help="List fines")
    fines_parser.set_defaults(func=cmd_fines)

    args = parser.parse_args()

    observer = None
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)
        observer = logging_observer()

    try:
        if getattr(args, "is_local", False):
            args.func(args, observer)
        else:
            asyncio.run(run_command(args, observer))
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as e:
        error(str(e))


if __name__ == "__main__":
    main()
