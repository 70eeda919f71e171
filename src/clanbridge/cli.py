"""Summary: Command-line interface for ClanBridge.

Importance: Lets operators inspect and repair remote store data without the web API.
Alternatives: Use the database console of the hosting provider.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import time
from datetime import datetime, timezone

from clanbridge.app import AppServices, build_services
from clanbridge.config import AppConfig


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="ClanBridge CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("token", help="Fetch a service account token and show its expiry")

    get = subparsers.add_parser("get", help="Print the JSON stored at a path")
    get.add_argument("path", type=str)

    notifications = subparsers.add_parser("notifications", help="List notifications of a user")
    notifications.add_argument("owner_id", type=str)
    notifications.add_argument("--limit", type=int, default=20)
    notifications.add_argument("--unread", action="store_true")

    notify = subparsers.add_parser("notify", help="Create a notification for a user")
    notify.add_argument("owner_id", type=str)
    notify.add_argument("type", type=str)
    notify.add_argument("--from", dest="from_user_id", type=str, default=None)
    notify.add_argument("--data", type=str, default="{}", help="JSON object")

    mark_all = subparsers.add_parser("mark-all-read", help="Mark all notifications read")
    mark_all.add_argument("owner_id", type=str)

    conversations = subparsers.add_parser("conversations", help="List conversations of a user")
    conversations.add_argument("user_id", type=str)

    return parser


async def run_command(args: argparse.Namespace, services: AppServices) -> None:
    """Summary: Execute one parsed command against the services.

    Importance: Keeps command handling testable without a real event loop entrypoint.
    Alternatives: Run each command in its own asyncio.run call.
    """

    if args.command == "token":
        token = await services.tokens.get_token()
        remaining = int(token.expires_at - time.time())
        expires = datetime.fromtimestamp(token.expires_at, tz=timezone.utc).isoformat()
        print(f"Token cached until {expires} ({remaining}s).")
        return

    if args.command == "get":
        print(json.dumps(await services.bridge.get(args.path), indent=2, sort_keys=True))
        return

    if args.command == "notifications":
        items = await services.notifications.list_notifications(
            args.owner_id, limit=args.limit, unread_only=args.unread
        )
        for item in items:
            marker = " " if item.read else "*"
            print(f"{marker} {item.id}: {item.type} from {item.from_user_id} ({item.timestamp})")
        return

    if args.command == "notify":
        data = json.loads(args.data)
        if not isinstance(data, dict):
            raise ValueError("--data must be a JSON object")
        from_info = None
        if args.from_user_id:
            from_info = await services.users.public_info(args.from_user_id)
        notification = await services.notifications.create(
            args.owner_id,
            args.type,
            from_user_id=args.from_user_id,
            from_user_info=from_info,
            data=data,
        )
        print(f"Created notification {notification.id}.")
        return

    if args.command == "mark-all-read":
        count = await services.notifications.mark_all_read(args.owner_id)
        print(f"Marked {count} notifications read.")
        return

    if args.command == "conversations":
        for conversation in await services.conversations.list_conversations(args.user_id):
            others = ", ".join(conversation.other_participants(args.user_id))
            print(f"{conversation.id}: with {others} (updated {conversation.updated_at})")
        return


async def _main(args: argparse.Namespace) -> None:
    services = build_services(AppConfig.from_env())
    try:
        await run_command(args, services)
    finally:
        await services.aclose()


def run_cli() -> None:
    """Summary: Execute CLI commands based on arguments.

    Importance: Drives operator workflows without the HTTP layer.
    Alternatives: Invoke services via the HTTP API.
    """

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args()
    asyncio.run(_main(args))


if __name__ == "__main__":
    run_cli()
