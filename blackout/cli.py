"""CLI entry point for the blackout schedule tracker."""

import argparse
import logging
import os

from blackout.commands import BotCommands
from blackout.config.loader import get_config_value, load_config
from blackout.errors import BlackoutError
from blackout.ingest.cache_manager import build_cache_manager
from blackout.ingest.staleness import snapshot_age_seconds
from blackout.models.common import format_group, normalize_group, utc_now
from blackout.models.schedule import HourState
from blackout.notify.engine import build_notification_engine
from blackout.notify.transport import build_transport
from blackout.storage import cache_repo, history_repo, subscription_repo
from blackout.storage.database import open_store

DEFAULT_CONFIG = "ops/configs/default.yaml"
DEFAULT_DB = os.environ.get("DB_PATH", "data/blackouts.db")

STATE_SYMBOLS = {
    HourState.ON: "+",
    HourState.OFF: "-",
    HourState.MAYBE: "?",
    HourState.UNKNOWN: ".",
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="blackout",
        description="Power blackout schedule tracker",
    )
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG, help="Config YAML path"
    )
    parser.add_argument("--db", default=DEFAULT_DB, help="SQLite DB path")

    sub = parser.add_subparsers(dest="command")

    # fetch
    fetch_p = sub.add_parser("fetch", help="Show the current schedule snapshot")
    fetch_p.add_argument(
        "--force", action="store_true", help="Ignore the cache and refetch"
    )
    fetch_p.add_argument("group", nargs="?", default="", help="Group code, e.g. 2.1")

    # resolve
    sub.add_parser("resolve", help="Re-resolve group IDs and persist the map")

    # notify
    sub.add_parser("notify", help="Run one notification tick")

    # subscriptions
    subscribe_p = sub.add_parser("subscribe", help="Subscribe to a group")
    subscribe_p.add_argument("subscriber", type=int)
    subscribe_p.add_argument("group")
    unsubscribe_p = sub.add_parser("unsubscribe", help="Unsubscribe from a group")
    unsubscribe_p.add_argument("subscriber", type=int)
    unsubscribe_p.add_argument("group")
    subs_p = sub.add_parser("subscriptions", help="List a subscriber's groups")
    subs_p.add_argument("subscriber", type=int)

    # history
    history_p = sub.add_parser("history", help="Show captured history for a group")
    history_p.add_argument("group")
    history_p.add_argument("--limit", type=int, default=10)

    # status
    sub.add_parser("status", help="Show cache and subscription status")

    # config show / config get
    config_p = sub.add_parser("config", help="Config operations")
    config_sub = config_p.add_subparsers(dest="config_command")
    config_sub.add_parser("show", help="Display current config")
    get_p = config_sub.add_parser("get", help="Print one config value")
    get_p.add_argument("key", help="Dotted key, e.g. cache.max_age_seconds")

    # daemon
    daemon_p = sub.add_parser("daemon", help="Run background fetch and notify jobs")
    daemon_p.add_argument(
        "--stop", action="store_true", help="Stop running daemon"
    )
    daemon_p.add_argument(
        "--status", action="store_true", help="Show daemon status"
    )

    # serve
    serve_p = sub.add_parser("serve", help="Run the HTTP API")
    serve_p.add_argument("--host", default="127.0.0.1")
    serve_p.add_argument("--port", type=int, default=8777)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "daemon" and (args.stop or args.status):
        from blackout.daemon import daemon_status, stop_daemon

        return stop_daemon() if args.stop else daemon_status()

    config = load_config(args.config)

    if args.command == "fetch":
        return _cmd_fetch(config, args)
    elif args.command == "resolve":
        return _cmd_resolve(config, args)
    elif args.command == "notify":
        return _cmd_notify(config, args)
    elif args.command in ("subscribe", "unsubscribe", "subscriptions"):
        return _cmd_subscription(config, args)
    elif args.command == "history":
        return _cmd_history(args)
    elif args.command == "status":
        return _cmd_status(config, args)
    elif args.command == "config":
        return _cmd_config(config, args)
    elif args.command == "daemon":
        return _cmd_daemon(config, args)
    elif args.command == "serve":
        return _cmd_serve(config, args)
    else:
        parser.print_help()
        return 1


def _cmd_fetch(config, args) -> int:
    cache = build_cache_manager(config, args.db)
    try:
        snapshot = cache.get_snapshot(force_refresh=args.force)
    except BlackoutError as e:
        print(f"Error: {e}")
        return 1

    group = normalize_group(args.group)
    codes = [group] if group else sorted(snapshot.groups)
    print(f"Captured at {snapshot.captured_at.isoformat()}")
    for code in codes:
        data = snapshot.groups.get(code)
        if data is None:
            print(f"  {format_group(code)}: no data")
            continue
        today = data.today()
        if today is None:
            print(f"  {format_group(code)}: no schedule for today")
            continue
        line = "".join(STATE_SYMBOLS[s] for s in today.hours)
        print(f"  {format_group(code):>4} {today.day_name:<10} {line}")
    return 0


def _cmd_resolve(config, args) -> int:
    cache = build_cache_manager(config, args.db)
    try:
        id_map = cache.resolver.resolve(config.groups)
        with open_store(args.db) as conn:
            cache_repo.save_id_map(conn, id_map)
    except BlackoutError as e:
        print(f"Error: {e}")
        return 1
    for code in sorted(id_map):
        print(f"  {format_group(code)}: {id_map[code]}")
    return 0


def _cmd_notify(config, args) -> int:
    cache = build_cache_manager(config, args.db)
    engine = build_notification_engine(
        config, args.db, cache, build_transport(config.telegram)
    )
    try:
        summary = engine.evaluate()
    except BlackoutError as e:
        print(f"Error: {e}")
        return 1
    if summary.skipped_reason:
        print(f"Skipped: {summary.skipped_reason}")
        return 0
    print(
        f"Subscriptions: {summary.subscriptions} | Candidates: {summary.candidates} | "
        f"Delivered: {summary.delivered} | Duplicates: {summary.duplicates} | "
        f"Failed: {summary.failed}"
    )
    return 0 if not summary.failed else 1


def _cmd_subscription(config, args) -> int:
    commands = BotCommands(
        args.db, build_cache_manager(config, args.db), build_transport(config.telegram)
    )
    if args.command == "subscribe":
        replies = commands.subscribe(args.subscriber, args.group)
    elif args.command == "unsubscribe":
        replies = commands.unsubscribe(args.subscriber, args.group)
    else:
        replies = commands.settings(args.subscriber)
    for reply in replies:
        print(reply)
    return 0


def _cmd_history(args) -> int:
    group = normalize_group(args.group)
    try:
        with open_store(args.db) as conn:
            rows = history_repo.get_history(conn, group, limit=args.limit)
    except BlackoutError as e:
        print(f"Error: {e}")
        return 1
    if not rows:
        print(f"No history for group {format_group(group)}")
        return 0
    for row in rows:
        print(f"  {row['captured_at']}  {len(row['raw_json'])} bytes")
    return 0


def _cmd_status(config, args) -> int:
    try:
        with open_store(args.db) as conn:
            subs = subscription_repo.count_subscriptions(conn)
            history = history_repo.count_history(conn)
            id_map = cache_repo.load_id_map(conn)
            snapshot = cache_repo.load_snapshot(conn)
    except BlackoutError as e:
        print(f"Error: {e}")
        return 1

    print(f"Groups configured: {len(config.groups)} | Subscriptions: {subs}")
    print(f"History rows: {history}")
    print(f"ID map: {len(id_map) if id_map else 0} groups")
    if snapshot is None:
        print("Snapshot: none")
    else:
        age = snapshot_age_seconds(snapshot.captured_at, utc_now())
        fresh = age < config.cache.max_age_seconds
        print(
            f"Snapshot: {snapshot.captured_at.isoformat()} "
            f"({age:.0f}s old, {'fresh' if fresh else 'stale'})"
        )
    return 0


def _cmd_config(config, args) -> int:
    if args.config_command == "show":
        print(config.model_dump_json(indent=2))
        return 0
    elif args.config_command == "get":
        try:
            print(get_config_value(config, args.key))
            return 0
        except (KeyError, IndexError, ValueError) as e:
            print(f"Error: {e}")
            return 1
    else:
        print("Use: config show | config get key")
        return 1


def _cmd_daemon(config, args) -> int:
    from blackout.daemon import BlackoutDaemon

    BlackoutDaemon(config, args.db).start()
    return 0


def _cmd_serve(config, args) -> int:
    import uvicorn

    from blackout import dashboard

    dashboard.configure(args.config, args.db)
    uvicorn.run(dashboard.app, host=args.host, port=args.port)
    return 0
