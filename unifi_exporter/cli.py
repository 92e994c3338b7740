"""Command line entry point for the UniFi exporter."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Dict, Optional

from .app import _configure_logging, create_app
from .config import ExporterConfig, build_config, load_environment
from .service import CycleResult, ExporterService
from .unifi_client import UnifiError

LOGGER = logging.getLogger("unifi_exporter.cli")

LOG_LEVELS = ["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]


def _config_from_args(args: argparse.Namespace) -> ExporterConfig:
    load_environment(args.env_file)
    overrides: Dict[str, Any] = {
        "controller_url": args.endpoint,
        "api_token": args.token,
        "site": args.site,
        "poll_interval": args.interval,
        "request_timeout": args.timeout,
        "log_level": args.log_level,
        "listen_host": getattr(args, "host", None),
        "listen_port": getattr(args, "port", None),
    }
    return build_config(overrides)


def _poll_command(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    _configure_logging(config.log_level)
    service = ExporterService(config)

    async def _run() -> CycleResult:
        try:
            await asyncio.to_thread(service.bootstrap)
            return await service.run_cycle()
        finally:
            await service.stop()

    try:
        result = asyncio.run(_run())
    except UnifiError as exc:
        LOGGER.error("Controller discovery failed: %s", exc)
        return 1

    if args.json:
        print(json.dumps(result.as_dict(), indent=2 if args.pretty else None))
    else:
        print(service.get_snapshot_text(), end="")
    return 0 if result.published else 1


def _serve_command(args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError:  # pragma: no cover - user environment issue
        raise SystemExit("uvicorn is required for the 'serve' command.")

    config = _config_from_args(args)
    _configure_logging(config.log_level)
    service = ExporterService(config)
    try:
        service.bootstrap()
    except UnifiError as exc:
        LOGGER.error("Initial controller discovery failed, not starting: %s", exc)
        asyncio.run(service.stop())
        return 1

    uvicorn.run(
        create_app(config, service),
        host=config.listen_host,
        port=config.listen_port,
        log_level=config.log_level.lower(),
    )
    return 0


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-e",
        "--endpoint",
        help="Controller base URL (e.g. https://192.168.3.254); env UNIFI_API_ENDPOINT",
    )
    parser.add_argument("-t", "--token", help="API token; env UNIFI_API_TOKEN")
    parser.add_argument("--site", help="Site id, internal reference or name; env UNIFI_SITE")
    parser.add_argument(
        "--interval",
        type=float,
        help="Seconds between polls; env UNIFI_POLL_INTERVAL",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Per-request timeout in seconds; env UNIFI_REQUEST_TIMEOUT",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Log level; env UNIFI_LOG_LEVEL",
    )
    parser.add_argument("--env-file", help="Path to .env file overriding defaults")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Prometheus exporter for UniFi Network controllers")
    subparsers = parser.add_subparsers(dest="command", required=True)

    poll = subparsers.add_parser("poll", help="Execute a single polling cycle and print the metrics")
    _add_common_arguments(poll)
    poll.add_argument(
        "--json",
        action="store_true",
        help="Print a cycle summary as JSON instead of the metrics text",
    )
    poll.add_argument(
        "--pretty",
        action="store_true",
        help="Pretty-print JSON output",
    )
    poll.set_defaults(func=_poll_command)

    serve = subparsers.add_parser("serve", help="Poll in the background and serve /metrics")
    _add_common_arguments(serve)
    serve.add_argument("--host", help="Bind address; env EXPORTER_HOST")
    serve.add_argument("--port", type=int, help="Bind port; env EXPORTER_PORT")
    serve.set_defaults(func=_serve_command)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except RuntimeError as exc:
        logging.getLogger("unifi_exporter.cli").error("%s", exc)
        return 1
    except Exception as exc:  # pragma: no cover - CLI surface
        logging.getLogger("unifi_exporter.cli").exception("Command failed: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
