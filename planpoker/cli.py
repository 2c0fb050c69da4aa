"""
Planpoker CLI - Command-line interface for running and operating rooms.

Usage:
    planpoker serve [--host H] [--port P]    Run the API server
    planpoker rooms                          List live rooms
    planpoker show <code>                    Print a room as JSON
    planpoker purge --max-idle-hours N       Delete abandoned rooms

The store is chosen by PLANPOKER_STORE / PLANPOKER_DATA_DIR; the
operator commands are only useful with the file store.
"""

import argparse
import json
import logging
import sys

from .config import Settings


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Planpoker - planning poker rooms",
        prog="planpoker",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Bind port")

    # Rooms command
    subparsers.add_parser("rooms", help="List live rooms")

    # Show command
    show_parser = subparsers.add_parser("show", help="Print a room as JSON")
    show_parser.add_argument("code", help="Room code")

    # Purge command
    purge_parser = subparsers.add_parser("purge", help="Delete abandoned rooms")
    purge_parser.add_argument(
        "--max-idle-hours", type=float, default=24.0,
        help="Delete rooms with no player activity for this long",
    )

    args = parser.parse_args(argv)
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        cmd_serve(args, settings)
    elif args.command == "rooms":
        cmd_rooms(args, settings)
    elif args.command == "show":
        cmd_show(args, settings)
    elif args.command == "purge":
        cmd_purge(args, settings)
    else:
        parser.print_help()
        sys.exit(1)


def _build_service(settings: Settings):
    from .api.service import RoomService
    from .session import SessionHistory
    from .store import RoomStore

    kv = settings.create_kv_store()
    return RoomService(rooms=RoomStore(kv), history=SessionHistory(kv))


def cmd_serve(args, settings: Settings):
    """Run the API server with uvicorn."""
    import uvicorn
    from .api.app import create_app

    app = create_app(settings=settings)
    uvicorn.run(
        app,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )


def cmd_rooms(args, settings: Settings):
    """List live rooms."""
    service = _build_service(settings)
    rooms = service.list_rooms()
    if not rooms:
        print("No rooms")
        return

    for room in sorted(rooms, key=lambda r: r.created_at):
        summary = room.summary
        state = "revealed" if room.revealed else "voting"
        print(
            f"{room.code}  players={len(room.players):<3} "
            f"votes={summary.voted_count}/{summary.voter_count}  {state}  "
            f"breakouts={len(room.breakout_rooms)}"
        )


def cmd_show(args, settings: Settings):
    """Print one room document."""
    service = _build_service(settings)
    result = service.get_room(args.code)
    if not result.success:
        print(f"Error: {result.error}")
        sys.exit(1)
    print(json.dumps(result.room.to_dict(), indent=2, ensure_ascii=False))


def cmd_purge(args, settings: Settings):
    """Delete rooms whose players have all gone quiet."""
    service = _build_service(settings)
    max_idle_ms = int(args.max_idle_hours * 3600 * 1000)
    purged = service.purge_stale_rooms(max_idle_ms)

    print(f"Purged {len(purged)} room(s)")
    for code in purged:
        print(f"  - {code}")


if __name__ == "__main__":
    main()
