"""Launcher for the SensiLog API (the `sensilog-web` command).

Bind address, worker count and log level come from SensiLogConfig; command
line flags override them for a single run.
"""

import argparse
import logging
from pathlib import Path

import uvicorn

from sensilog.core.config import get_config, load_config, set_config, setup_logging

logger = logging.getLogger(__name__)

LOG_LEVELS = ["debug", "info", "warning", "error", "critical"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sensilog-web",
        description="Serve the SensiLog sensitivity and gear log API.",
    )
    parser.add_argument("--config", type=Path, help="Config file (YAML, TOML or JSON)")
    parser.add_argument("--host", help="Bind address (server.host)")
    parser.add_argument("--port", type=int, help="Bind port (server.port)")
    parser.add_argument("--workers", type=int, help="Worker processes (server.workers)")
    parser.add_argument(
        "--reload",
        action="store_true",
        default=None,
        help="Restart on code changes (server.reload)",
    )
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="Overrides logging.level")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    if args.config:
        set_config(load_config(args.config))
    config = get_config()

    if args.log_level:
        config.logging.level = args.log_level.upper()
    setup_logging(config.logging)

    server = config.server
    host = args.host or server.host
    port = args.port or server.port
    reload = server.reload if args.reload is None else args.reload
    workers = args.workers or server.workers
    if reload and workers > 1:
        logger.warning(f"Ignoring workers={workers} with reload enabled")
        workers = 1

    log_level = config.logging.level.lower()
    if log_level not in LOG_LEVELS:
        log_level = "info"

    logger.info(f"Starting SensiLog ({config.app.environment}) on http://{host}:{port}")
    uvicorn.run(
        "sensilog.api:app",
        host=host,
        port=port,
        reload=reload,
        workers=workers,
        log_level=log_level,
    )


if __name__ == "__main__":
    main()
