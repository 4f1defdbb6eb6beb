"""
quire CLI - Work with journal entries from the terminal.

Usage:
    quire list [--json]
    quire show [--entry ID] [--json]
    quire new
    quire title TEXT [--entry ID]
    quire body TEXT [--entry ID]
    quire delete ID
    quire sync

Every invocation opens the session (cache, then Supabase), runs one
command, pushes any pending change and closes the session.
"""

import argparse
import asyncio
import json
import logging
import re
import sys

from quire.config import get_settings
from quire.core import EntrySession

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def clean_text(value: str) -> str:
    """Strip control characters from entry text; newlines and tabs stay."""
    return _CONTROL_CHARS.sub("", value)


def cmd_list(args, session: EntrySession):
    """List entries, newest first."""
    if args.json:
        print(json.dumps([e.to_row() for e in session.entries], indent=2))
        return
    for entry in session.entries:
        marker = "*" if entry.created_at == session.created_at else " "
        print(f"{marker} {entry.created_at}  {entry.title or '(untitled)'}")


def cmd_show(args, session: EntrySession):
    """Show the current entry."""
    entry = session.current
    if entry is None:
        print("No entry selected.")
        return
    if args.json:
        print(json.dumps(entry.to_row(), indent=2))
        return
    print(entry.title or "(untitled)")
    print("=" * 40)
    print(entry.body)
    print(f"\ncreated {entry.created_at} · updated {entry.updated_at}")


def cmd_new(args, session: EntrySession):
    identity = session.create_entry()
    print(f"✓ Entry {identity}")


def cmd_title(args, session: EntrySession):
    updated = session.set_title(clean_text(args.text))
    if updated is None:
        print("✗ No entry selected")
        return
    print(f"✓ Title set on {updated.created_at}")


def cmd_body(args, session: EntrySession):
    updated = session.set_body(clean_text(args.text))
    if updated is None:
        print("✗ No entry selected")
        return
    print(f"✓ Body set on {updated.created_at} ({len(updated.body)} chars)")


async def cmd_delete(args, session: EntrySession):
    if await session.delete_entry(args.id):
        print(f"✓ Deleted {args.id}; current entry is now {session.created_at}")
    else:
        print(f"✗ Delete failed: {session.last_error}")


async def cmd_sync(args, session: EntrySession):
    if not args.has_remote:
        print("✗ No remote store configured (set QUIRE_SUPABASE_URL and QUIRE_SUPABASE_KEY)")
        return
    if await session.flush():
        print(f"✓ Synchronized {len(session.entries)} entries")
    else:
        print(f"✗ Sync failed: {session.last_error or 'remote sync unavailable'}")


async def run(args) -> int:
    settings = get_settings()
    if args.session:
        settings = settings.model_copy(update={"session_id": args.session})
    args.has_remote = settings.has_remote

    session = EntrySession.from_settings(
        settings,
        navigate=lambda identity: logger.debug("Current entry: %s", identity),
        ref=getattr(args, "entry", None),
        flush_on_close=True,
    )
    await session.start()
    try:
        if args.command == "list":
            cmd_list(args, session)
        elif args.command == "show":
            cmd_show(args, session)
        elif args.command == "new":
            cmd_new(args, session)
        elif args.command == "title":
            cmd_title(args, session)
        elif args.command == "body":
            cmd_body(args, session)
        elif args.command == "delete":
            await cmd_delete(args, session)
        elif args.command == "sync":
            await cmd_sync(args, session)
    finally:
        await session.close()

    if session.last_error is not None:
        print(f"⚠ {session.last_error}", file=sys.stderr)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quire",
        description="Local-first journal entries with Supabase sync",
    )
    parser.add_argument("--session", "-s", help="Session id (cache key)", default=None)
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_list = subparsers.add_parser("list", help="List entries")
    p_list.add_argument("--json", "-j", action="store_true")

    p_show = subparsers.add_parser("show", help="Show an entry")
    p_show.add_argument("--entry", "-e", help="Entry id (created_at)")
    p_show.add_argument("--json", "-j", action="store_true")

    subparsers.add_parser("new", help="Create an entry")

    p_title = subparsers.add_parser("title", help="Set an entry's title")
    p_title.add_argument("text")
    p_title.add_argument("--entry", "-e", help="Entry id (created_at)")

    p_body = subparsers.add_parser("body", help="Set an entry's body")
    p_body.add_argument("text")
    p_body.add_argument("--entry", "-e", help="Entry id (created_at)")

    p_delete = subparsers.add_parser("delete", help="Delete an entry")
    p_delete.add_argument("id", help="Entry id (created_at)")

    subparsers.add_parser("sync", help="Push entries to Supabase now")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        code = asyncio.run(run(args))
    except (ValueError, TypeError) as e:
        logger.error(f"Invalid argument: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Command failed: {e}")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
