"""CLI entrypoint for event-wait."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
from importlib import metadata
import json
from pathlib import Path
from typing import Any

from .config import PropertyRef, load_config, wait_for_config
from .coordinator import SessionState, WaitCoordinator
from .events import EventBus
from .exceptions import EventWaitError
from .logging_utils import configure_logging
from .resolver import ResolutionScope

EXIT_COMPLETED = 0
EXIT_REJECTED = 1
EXIT_TIMED_OUT = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="event-wait",
        description="event-wait - hold a message until an event arrives or a timeout expires",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    subcommands = parser.add_subparsers(dest="command")

    run = subcommands.add_parser("run", help="Run a single wait on an in-process bus")
    run.add_argument("--config", type=Path, default=None, help="Path to config.toml")
    run.add_argument("--event-id", help="Event identifier to wait for")
    run.add_argument("--timeout", help="Timeout value")
    run.add_argument("--unit", help="Timeout unit (ms, s, m, h, d)")
    run.add_argument(
        "--strategy",
        help="merge-into-message, merge-into-event or set-property",
    )
    run.add_argument("--message", default="{}", help="JSON message to hold")
    run.add_argument(
        "--emit-after",
        type=float,
        default=None,
        help="Publish the event after this many seconds",
    )
    run.add_argument("--payload", default="null", help="JSON payload to publish")
    return parser


def _wait_for_overrides(args: argparse.Namespace, base: dict[str, Any]) -> dict[str, Any]:
    data = dict(base)
    if args.event_id is not None:
        data["event_id"] = PropertyRef(scope=ResolutionScope.STRING, value=args.event_id)
    if args.timeout is not None:
        data["timeout"] = PropertyRef(scope=ResolutionScope.NUM, value=args.timeout)
    if args.unit is not None:
        data["timeout_unit"] = args.unit
    if args.strategy is not None:
        data["event_handling"] = args.strategy
    return data


async def _run(args: argparse.Namespace) -> int:
    config = load_config(config_path=args.config)
    configure_logging(config["logging"])
    settings = wait_for_config(_wait_for_overrides(args, config["wait_for"]))

    bus = EventBus()
    coordinator = WaitCoordinator(
        settings,
        bus,
        status=lambda status: print(f"[{status.level}] {status.text}"),
    )
    session = await coordinator.on_input(json.loads(args.message))
    if session is None:
        return EXIT_REJECTED

    if args.emit_after is not None:
        payload = json.loads(args.payload)
        asyncio.get_running_loop().call_later(
            args.emit_after, bus.publish_nowait, session.event_id, payload
        )

    try:
        outcome = await session.wait()
    finally:
        coordinator.close()

    print(
        json.dumps(
            {"state": outcome.state.value, "message": outcome.message},
            default=str,
        )
    )
    return EXIT_COMPLETED if outcome.state is SessionState.COMPLETED else EXIT_TIMED_OUT


def main(argv: Sequence[str] | None = None) -> int:
    """Handle CLI flags and run a single wait when asked to."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("event-wait")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"event-wait {version}")
        return EXIT_COMPLETED

    if args.command != "run":
        parser.print_help()
        return EXIT_COMPLETED

    try:
        return asyncio.run(_run(args))
    except (EventWaitError, json.JSONDecodeError) as exc:
        print(f"error: {exc}")
        return EXIT_REJECTED


if __name__ == "__main__":
    raise SystemExit(main())
