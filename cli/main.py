"""Entry-point for pairtrader command-line operations."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Sequence

from dotenv import load_dotenv
from pydantic import ValidationError

from core.config import TradingSettings, load_settings
from core.runtime_flags import get_runtime_flags
from services.runtime.logging import setup_logging


def _bootstrap(config_path: str | None) -> TradingSettings:
    load_dotenv(override=False)
    flags = get_runtime_flags()
    setup_logging(flags.log_level)
    return load_settings(config_path)


def cmd_check(config_path: str | None = None) -> int:
    try:
        settings = _bootstrap(config_path)
    except (ValidationError, ValueError, OSError) as exc:
        print(f"NOT READY: invalid configuration: {exc}")
        return 1
    if not settings.paper_trading and not get_runtime_flags().alpaca_configured:
        print("NOT READY: live trading requires ALPACA_API_KEY_ID and ALPACA_API_SECRET_KEY")
        return 1
    mode = "paper" if settings.paper_trading else "live"
    print(f"READY ({mode}, pairs={','.join(settings.pairs)})")
    return 0


def cmd_once(config_path: str | None = None) -> int:
    from app.trade.orchestrator import build_orchestrator

    settings = _bootstrap(config_path)
    orchestrator = build_orchestrator(settings)
    summary = asyncio.run(orchestrator.run_cycle_once())
    print(json.dumps(summary.to_dict(), indent=2))
    return 0 if summary.error is None else 1


async def _run_loop_only(settings: TradingSettings) -> None:
    from app.trade.orchestrator import build_orchestrator

    orchestrator = build_orchestrator(settings)
    await orchestrator.start()
    try:
        await asyncio.Event().wait()
    finally:
        await orchestrator.stop()


def cmd_run(config_path: str | None = None, *, serve_api: bool = True) -> int:
    settings = _bootstrap(config_path)
    try:
        if serve_api:
            import uvicorn

            from app.trade.orchestrator import build_orchestrator
            from backend.api import create_app

            flags = get_runtime_flags()
            app = create_app(build_orchestrator(settings), autostart=True)
            uvicorn.run(app, host=flags.api_host, port=flags.api_port, log_config=None)
        else:
            asyncio.run(_run_loop_only(settings))
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        return 130
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pairtrader", description="Hourly pair trading loop")
    parser.add_argument("--config", default=None, help="YAML config file (defaults to config/trading.yaml)")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("check", help="Validate configuration and credentials")
    sub.add_parser("once", help="Run a single trading cycle and print its summary")

    run_parser = sub.add_parser("run", help="Start the scheduled trading loop")
    run_parser.add_argument(
        "--no-api",
        action="store_true",
        help="Run the triggers without the HTTP monitoring surface",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "check":
        return cmd_check(args.config)
    if args.cmd == "once":
        return cmd_once(args.config)
    if args.cmd == "run":
        return cmd_run(args.config, serve_api=not getattr(args, "no_api", False))

    parser.print_help()
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
