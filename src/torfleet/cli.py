"""Command-line entry point.

Usage::

    torfleet serve            # HTTP API plus periodic sync
    torfleet sync-once        # one sync cycle, print the result as JSON

Configuration comes from the environment (see :meth:`TorConfig.from_env`);
``--port`` and ``--db-file`` override it.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from aiohttp import web

from torfleet.client import TorClient
from torfleet.config import TorConfig
from torfleet.exceptions import TorError
from torfleet.server import create_app
from torfleet.state.store import FleetStore
from torfleet.sync.orchestrator import SyncOrchestrator, SyncOutcome


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="torfleet", description="TOR IoT fleet sync and telemetry service")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--db-file", help="Fleet store JSON file (overrides TOR_DB_FILE)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API and the periodic sync")
    serve.add_argument("--host", help="Bind address (overrides TOR_HOST)")
    serve.add_argument("--port", type=int, help="Bind port (overrides PORT)")
    serve.add_argument("--no-sync", action="store_true", help="Serve push/read endpoints only")

    sub.add_parser("sync-once", help="Run a single sync cycle and exit")
    return parser.parse_args(argv)


def _config_from_args(args: argparse.Namespace) -> TorConfig:
    overrides: dict[str, Any] = {}
    if args.db_file:
        overrides["db_file"] = args.db_file
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    return TorConfig.from_env(**overrides)


async def _sync_once(config: TorConfig) -> int:
    store = FleetStore(config.db_file, history_limit=config.history_limit)
    store.load()
    async with TorClient(config) as client:
        result = await SyncOrchestrator(client, store, config).run_once()
    print(json.dumps(result.to_json_dict(), indent=2))
    return 0 if result.outcome == SyncOutcome.COMPLETED and result.persisted else 1


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = _config_from_args(args)
        if args.command == "sync-once":
            return asyncio.run(_sync_once(config))
        app = create_app(config, start_sync=not args.no_sync)
    except TorError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    web.run_app(app, host=config.host, port=config.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
