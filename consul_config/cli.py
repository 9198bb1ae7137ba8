#!/usr/bin/env python3
"""
Consul Config CLI - Read and watch a configuration key

Usage:
    # Read a key once
    consul-config get --key app/config

    # Print the value every time it changes (Ctrl+C to stop)
    consul-config watch --key app/config

    # Use a YAML source file instead of flags
    consul-config watch --config consul.yaml

Output is JSON, one object per line.
"""

import argparse
import asyncio
import json
import signal
import sys
from datetime import datetime, timezone

from consul_config.common.config import (
    ConsulClientConfiguration,
    ConsulConfigSource,
    load_source_config,
)
from consul_config.common.exceptions import ConsulConfigError
from consul_config.common.logging_setup import setup_logging
from consul_config.service import ConsulConfigProvider
from consul_config.watch import ChangeWatcher, ConsulWatchExceptionContext


def build_source(args: argparse.Namespace) -> ConsulConfigSource:
    """Build the source from --config, then apply command-line overrides"""
    if args.config:
        source = load_source_config(args.config)
    elif args.key:
        source = ConsulConfigSource(key=args.key)
    else:
        raise ConsulConfigError("Either --key or --config is required", recoverable=False)

    if args.key:
        source.key = args.key
    if args.optional:
        source.optional = True

    file_options = source.consul_configuration_options

    def apply_options(client_config: ConsulClientConfiguration) -> None:
        if file_options:
            file_options(client_config)
        if args.address:
            client_config.address = args.address
        if args.token:
            client_config.token = args.token

    source.consul_configuration_options = apply_options
    return source


def decode_value(raw: bytes | None) -> object:
    """Show JSON values as JSON, anything else as text"""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def install_signal_handlers(source: ConsulConfigSource) -> None:
    """SIGINT/SIGTERM set the source's cancellation event"""
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, source.cancellation.set)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(source.cancellation.set))


async def get_value(source: ConsulConfigSource) -> dict:
    """Read the key once"""
    watcher = ChangeWatcher(source)
    raw = await watcher.get_config(source.optional)
    return {
        "success": True,
        "key": source.key,
        "index": watcher.last_index,
        "value": decode_value(raw),
    }


async def watch_value(source: ConsulConfigSource) -> None:
    """Print the value at startup and after every change until interrupted"""
    install_signal_handlers(source)
    source.reload_on_change = True

    watcher = ChangeWatcher(source)
    provider = ConsulConfigProvider(source, watcher)

    def emit(data: dict) -> None:
        print(json.dumps({
            "key": source.key,
            "index": watcher.last_index,
            "value": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }), flush=True)

    def report(context: ConsulWatchExceptionContext) -> None:
        print(json.dumps({
            "key": context.key,
            "error": str(context.exception),
            "failures": context.consecutive_failures,
        }), file=sys.stderr, flush=True)

    await provider.load()
    emit(provider.data)
    provider.add_reload_listener(emit)
    await provider.run(on_exception=report)


def main():
    parser = argparse.ArgumentParser(
        description="Read or watch a Consul configuration key",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    for name, help_text in (("get", "Read the key once"), ("watch", "Watch the key for changes")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--key", help="Consul key (e.g., app/config)")
        sub.add_argument("--config", help="YAML source file")
        sub.add_argument("--address", help="Consul HTTP address")
        sub.add_argument("--token", help="Consul ACL token")
        sub.add_argument("--optional", action="store_true", help="Do not fail if the key is absent")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Logs go to stderr; stdout carries one JSON value per line
    setup_logging()

    try:
        source = build_source(args)
        if args.command == "get":
            print(json.dumps(asyncio.run(get_value(source))))
        elif args.command == "watch":
            asyncio.run(watch_value(source))
    except ConsulConfigError as e:
        print(json.dumps({"success": False, "error": str(e)}))
        sys.exit(1)


if __name__ == "__main__":
    main()
