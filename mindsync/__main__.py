"""CLI entry point for mindsync."""

import argparse
import asyncio
import inspect
import json
import logging
import sqlite3
import sys
from datetime import datetime, timezone
from pathlib import Path

from .config import load_config
from .merge import Snapshot, SnapshotFormatError, merge_snapshots
from .store import SnapshotStore
from .sync import NoDataError, StoredSnapshotError, SyncClient, SyncService, SyncStatus


LOG_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

# Sync context attached to records through ``extra=``
_CONTEXT_FIELDS = ("snapshot_key", "nodes", "tombstones")


class JSONFormatter(logging.Formatter):
    """Formats records as one JSON object per line.

    Sync context passed through ``extra`` (snapshot key, node and
    tombstone counts) is lifted into top-level fields so merge activity
    can be filtered without parsing messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(
    verbose: bool = False,
    log_level: str | None = None,
    json_output: bool = False,
    log_file: Path | None = None,
) -> None:
    """Configure root logging for the CLI.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: One of LOG_LEVELS; overrides verbose.
        json_output: Emit JSON lines instead of plain text.
        log_file: Also append log lines to this file.
    """
    if log_level:
        level = LOG_LEVELS.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    if json_output:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # httpx logs every request at INFO
    if level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _load_snapshot_file(path: Path) -> Snapshot:
    """Read a snapshot from a JSON file."""
    with open(path) as f:
        return Snapshot.from_dict(json.load(f))


def _write_output(data: dict, output: Path | None) -> None:
    text = json.dumps(data, indent=2)
    if output:
        output.write_text(text + "\n")
        print(f"Wrote {output}")
    else:
        print(text)


def _print_summary(snapshot: Snapshot) -> None:
    print(f"Timestamp:  {snapshot.to_dict()['timestamp']}")
    print(f"Nodes:      {snapshot.count_nodes()}")
    print(f"Tombstones: {len(snapshot.tombstones)}")
    print(f"Focused:    {snapshot.current_center_id}")


async def cmd_serve(args: argparse.Namespace) -> int:
    """Start the sync server."""
    config = load_config(args.config)

    from .server import create_app

    import uvicorn

    host = args.host or config.server.host
    port = args.port or config.server.port

    store = SnapshotStore(config.store.db_path)
    store.connect()

    print("Starting mindsync server")
    print(f"Store: {config.store.db_path} (key: {config.store.snapshot_key})")
    print(f"URL: http://{host}:{port}")

    app = create_app(config, store)

    try:
        config_uvicorn = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if args.verbose else "warning",
        )
        server = uvicorn.Server(config_uvicorn)
        await server.serve()
    finally:
        store.close()

    return 0


def cmd_merge(args: argparse.Namespace) -> int:
    """Merge two snapshot files offline."""
    try:
        remote = _load_snapshot_file(args.remote)
        local = _load_snapshot_file(args.local)
    except (OSError, json.JSONDecodeError, SnapshotFormatError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    merged = merge_snapshots(remote, local)
    _write_output(merged.to_dict(), args.output)
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Show the stored snapshot."""
    config = load_config(args.config)

    store = SnapshotStore(config.store.db_path)
    try:
        snapshot = SyncService(store, key=config.store.snapshot_key).fetch()
    except (StoredSnapshotError, sqlite3.Error) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()

    if snapshot is None:
        print("No data stored")
        return 1

    if args.raw:
        _write_output(snapshot.to_dict(), None)
    else:
        _print_summary(snapshot)
    return 0


def cmd_reset(args: argparse.Namespace) -> int:
    """Delete the stored snapshot."""
    config = load_config(args.config)

    store = SnapshotStore(config.store.db_path)
    try:
        deleted = SyncService(store, key=config.store.snapshot_key).reset()
    finally:
        store.close()

    print("Stored snapshot deleted" if deleted else "No data stored")
    return 0


def _make_client(args: argparse.Namespace) -> SyncClient:
    config = load_config(args.config)
    return SyncClient(
        remote_url=args.remote or config.sync.remote_url or None,
        max_retries=config.sync.max_retries,
        timeout=config.sync.timeout_seconds,
    )


async def cmd_push(args: argparse.Namespace) -> int:
    """Push a snapshot file to the remote server."""
    try:
        snapshot = _load_snapshot_file(args.file)
    except (OSError, json.JSONDecodeError, SnapshotFormatError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    client = _make_client(args)
    result = await client.push_snapshot(snapshot)

    if result.status != SyncStatus.SUCCESS:
        print(f"Push {result.status.value}: {result.error}", file=sys.stderr)
        return 1

    _print_summary(result.snapshot)
    if args.output:
        _write_output(result.snapshot.to_dict(), args.output)
    return 0


async def cmd_pull(args: argparse.Namespace) -> int:
    """Fetch the remote server's snapshot."""
    client = _make_client(args)
    result = await client.fetch_remote()

    if result.status == SyncStatus.NO_DATA:
        print("No data stored on remote")
        return 1
    if result.status != SyncStatus.SUCCESS:
        print(f"Pull {result.status.value}: {result.error}", file=sys.stderr)
        return 1

    _write_output(result.snapshot.to_dict(), args.output)
    return 0


def cmd_adopt(args: argparse.Namespace) -> int:
    """Run a fetch-merge-store cycle against the local store."""
    config = load_config(args.config)

    try:
        snapshot = _load_snapshot_file(args.file) if args.file else None
    except (OSError, json.JSONDecodeError, SnapshotFormatError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    store = SnapshotStore(config.store.db_path)
    try:
        merged = SyncService(store, key=config.store.snapshot_key).push(snapshot)
    except (NoDataError, StoredSnapshotError, sqlite3.Error) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()

    _print_summary(merged)
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="mindsync",
        description="Mind map snapshot sync with tombstone-aware tree merging",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=list(LOG_LEVELS),
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also append logs to this file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the sync server")
    serve_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to listen on (default: from config, 8080)",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: from config, 0.0.0.0)",
    )
    serve_parser.set_defaults(func=cmd_serve)

    # Merge command
    merge_parser = subparsers.add_parser("merge", help="Merge two snapshot files offline")
    merge_parser.add_argument("remote", type=Path, help="Stored (remote) snapshot file")
    merge_parser.add_argument("local", type=Path, help="Client (local) snapshot file")
    merge_parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Write merged snapshot here instead of stdout",
    )
    merge_parser.set_defaults(func=cmd_merge)

    # Show command
    show_parser = subparsers.add_parser("show", help="Show the stored snapshot")
    show_parser.add_argument(
        "--raw",
        action="store_true",
        help="Print the full snapshot as JSON",
    )
    show_parser.set_defaults(func=cmd_show)

    # Adopt command
    adopt_parser = subparsers.add_parser(
        "adopt", help="Merge a snapshot file into the local store"
    )
    adopt_parser.add_argument(
        "file",
        type=Path,
        nargs="?",
        default=None,
        help="Snapshot file (omit to re-store the current snapshot)",
    )
    adopt_parser.set_defaults(func=cmd_adopt)

    # Reset command
    reset_parser = subparsers.add_parser("reset", help="Delete the stored snapshot")
    reset_parser.set_defaults(func=cmd_reset)

    # Push command
    push_parser = subparsers.add_parser("push", help="Push a snapshot file to the remote server")
    push_parser.add_argument("file", type=Path, help="Snapshot file to push")
    push_parser.add_argument("--remote", type=str, default=None, help="Remote server URL")
    push_parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Write the merged snapshot here",
    )
    push_parser.set_defaults(func=cmd_push)

    # Pull command
    pull_parser = subparsers.add_parser("pull", help="Fetch the remote server's snapshot")
    pull_parser.add_argument("--remote", type=str, default=None, help="Remote server URL")
    pull_parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Write the snapshot here instead of stdout",
    )
    pull_parser.set_defaults(func=cmd_pull)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json, args.log_file)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    if inspect.iscoroutinefunction(func):
        return asyncio.run(func(args))
    else:
        return func(args)


if __name__ == "__main__":
    sys.exit(main())
