"""Command-line entry point for the GitHub inbox agent."""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime, timezone
from typing import List, Optional

from .config import load_config
from .github_client import GitHubAPIError
from .models import Notification, NotificationDetails
from .store import NotificationStore

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def _format_notification(notification: Notification) -> str:
    flags = ""
    flags += "D" if notification.done else "-"
    flags += "R" if notification.is_read else "-"
    flags += "U" if notification.unread else "-"
    priority = f" p{notification.priority}" if notification.priority else ""
    return (
        f"[{flags}] {notification.id:>12}  {notification.updated_at}  "
        f"{notification.repository.full_name}  {notification.subject.type}: "
        f"{notification.subject.title}{priority}"
    )


def _print_list(notifications: List[Notification]) -> None:
    if not notifications:
        print("(no notifications)")
        return
    for notification in notifications:
        print(_format_notification(notification))


def _print_details(details: Optional[NotificationDetails]) -> None:
    if details is None:
        print("Notification not found")
        return
    print(_format_notification(details.notification))
    if details.detail is not None:
        detail = details.detail
        print(f"\n{detail.kind} #{detail.number} ({detail.state}) by {detail.author}")
        print(detail.html_url)
        if detail.body:
            print(f"\n{detail.body}")
    if details.comments:
        print(f"\n{len(details.comments)} comment(s):")
        for comment in details.comments:
            print(f"\n--- {comment.user.login} at {comment.created_at}")
            print(comment.body)


def _format_last_sync(last_sync: int) -> str:
    if not last_sync:
        return "never"
    return datetime.fromtimestamp(last_sync / 1000, tz=timezone.utc).isoformat()


async def run_command(args: argparse.Namespace, store: NotificationStore) -> None:
    """Run one CLI command against an open store."""
    command = args.command

    if command == "validate":
        await store.validate_token()
        print("Token is valid.")
    elif command == "sync":
        _print_list(await store.sync())
    elif command == "fetch-all":
        _print_list(await store.fetch_all())
    elif command == "inbox":
        _print_list(await store.get_in_progress())
    elif command == "all":
        _print_list(await store.get_all())
    elif command == "done-list":
        _print_list(store.get_done())
    elif command == "show":
        details = await store.get_notification_details(args.id)
        if details is not None and not details.notification.is_read:
            await store.mark_as_read(args.id)
        _print_details(details)
    elif command == "read":
        await store.mark_as_read(args.id)
    elif command == "unread":
        await store.mark_as_unread(args.id)
    elif command == "done":
        await store.mark_as_done(args.id)
        _print_list(store.in_progress())
    elif command == "priority":
        await store.set_priority(args.id, args.priority)
    elif command == "expand":
        _print_list(await store.expand_inbox_limit(args.extra))
    elif command == "stats":
        stats = store.get_stats()
        print(f"Total:       {stats.total}")
        print(f"Unread:      {stats.unread}")
        print(f"Inbox:       {stats.in_progress} ({stats.app_unread} unread)")
        print(f"Done:        {stats.done}")
        print(f"Last sync:   {_format_last_sync(stats.last_sync)}")
        print(f"Online:      {'yes' if stats.is_online else 'no'}")
    elif command == "reset":
        await store.reset_storage()
        print("Local notification state cleared.")
    else:
        raise ValueError(f"Unknown command: {command}")


async def run(args: argparse.Namespace) -> None:
    logger.info("Loading configuration...")
    config = load_config()
    if args.command == "expand" and args.extra is None:
        args.extra = config.inbox.expand_step

    logger.debug(f"Using data directory {config.data_dir}")
    async with NotificationStore.from_config(config) as store:
        await run_command(args, store)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Keep a small, stable inbox of the GitHub notifications you need to act on"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("validate", help="Check that GITHUB_TOKEN works")
    subparsers.add_parser("sync", help="Refresh from the most recent page of notifications")
    subparsers.add_parser("fetch-all", help="Fetch every page of notifications")
    subparsers.add_parser("inbox", help="Show the working set")
    subparsers.add_parser("all", help="Show every known notification")
    subparsers.add_parser("done-list", help="Show notifications marked done")
    subparsers.add_parser("stats", help="Show counts and sync status")
    subparsers.add_parser("reset", help="Delete all local notification state")

    for name, help_text in (
        ("show", "Show a notification with its issue/PR and comments"),
        ("read", "Mark a notification read"),
        ("unread", "Mark a notification unread"),
        ("done", "Mark a notification done and refill the inbox"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("id", help="Notification thread id")

    priority = subparsers.add_parser("priority", help="Set a notification's priority")
    priority.add_argument("id", help="Notification thread id")
    priority.add_argument("priority", type=int, help="Priority (integer)")

    expand = subparsers.add_parser("expand", help="Grow the inbox limit")
    expand.add_argument(
        "extra",
        type=int,
        nargs="?",
        default=None,
        help="How many slots to add (default: INBOX_EXPAND_STEP)"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point with command-line argument parsing."""
    _configure_logging()
    args = build_parser().parse_args(argv)

    try:
        asyncio.run(run(args))
    except GitHubAPIError as e:
        logger.error(f"GitHub request failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
