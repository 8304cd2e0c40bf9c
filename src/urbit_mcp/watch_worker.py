#!/usr/bin/env python3
"""
Urbit watch worker - tail a chat or DM from the command line.

Reads connection details from a local ship config file (see
``config.create_new_ship_config_file``); a barebones file is written on first
run. Prints each new message until interrupted.

Usage:
    python -m urbit_mcp.watch_worker --ship ~zod --name my-chat
    python -m urbit_mcp.watch_worker --ship ~zod --name ~nec --dm
"""

import argparse
import asyncio
import sys
from datetime import datetime

from .client import DM, UrbitClient
from .config import DEFAULT_SHIP_CONFIG_PATH, create_new_ship_config_file, load_ship_config
from .models import FeedClosedError, UrbitAPIError


def log_worker(message: str, component: str = "WATCH_WORKER") -> None:
    """Log to stderr with timestamp."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
    print(f"[{timestamp}] ⚓ [{component}] {message}", file=sys.stderr, flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Print new messages from an Urbit chat or DM")
    parser.add_argument("--ship", required=True, help="Host ship of the chat")
    parser.add_argument("--name", required=True, help="Chat name, or the counterpart ship with --dm")
    parser.add_argument("--dm", action="store_true", help="Watch the DM with --name")
    parser.add_argument("--config", default=DEFAULT_SHIP_CONFIG_PATH, help="Ship config YAML path")
    return parser


async def watch(args: argparse.Namespace) -> int:
    if create_new_ship_config_file(args.config):
        log_worker(f"Wrote a new ship config to {args.config}; fill it in and re-run")
        return 1

    config = load_ship_config(args.config)
    name = DM.ship_to_dm_name(args.name) if args.dm else args.name

    async with UrbitClient(config) as client:
        feed = await client.chat().subscribe_to_messages(args.ship, name)
        log_worker(f"Watching {args.ship}/{name} (Ctrl+C to stop)")
        try:
            while True:
                message = await feed.recv()
                print(message.to_formatted_string(), flush=True)
        except FeedClosedError:
            log_worker("Watcher stopped")
        finally:
            await feed.aclose()
    return 0


def main() -> None:
    """Main worker entry point."""
    args = build_parser().parse_args()
    try:
        sys.exit(asyncio.run(watch(args)))
    except KeyboardInterrupt:
        log_worker("Interrupted")
    except UrbitAPIError as e:
        log_worker(f"ERROR: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
