"""botstatus entry point.

Loads configuration (exit 1 on failure), runs the cold-start refresh, then
serves the status API until interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional, Sequence

import structlog
import uvicorn

from .config import ConfigError, ConfigManager, initialize_config
from .logging_config import configure_logging
from .observability import RefreshScheduler, SnapshotAggregator, create_app
from .observe import SnapshotCache
from .probes import build_default_probes

logger = structlog.get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="botstatus", description="Bot status API")
    parser.add_argument("--config", type=Path, default=None,
                        help="TOML config file (default: config/default.toml)")
    parser.add_argument("--env-file", type=Path, default=None,
                        help=".env file with environment overrides (default: .env)")
    return parser.parse_args(argv)


async def serve(config: ConfigManager) -> None:
    """Run the refresh scheduler and HTTP server until shutdown."""
    ttl_ms = config.get("cache.ttl_ms")
    cache = SnapshotCache()
    aggregator = SnapshotAggregator(build_default_probes(config))
    scheduler = RefreshScheduler(aggregator, cache, config, interval_seconds=ttl_ms / 1000)
    app = create_app(cache, ttl_ms=ttl_ms)

    # Cold start: the first snapshot is in place before the port opens
    await scheduler.start()

    server = uvicorn.Server(uvicorn.Config(
        app,
        host=config.get("host"),
        port=config.get("port"),
        log_config=None,
    ))
    logger.info(
        "status_api_starting",
        name=config.get("name"),
        host=config.get("host"),
        port=config.get("port"),
        ttl_ms=ttl_ms,
        sections=aggregator.section_names,
        services=[s.get("name") for s in config.section("services", []) or []],
    )
    try:
        await server.serve()
    finally:
        await scheduler.stop()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging()

    try:
        config = initialize_config(args.config, args.env_file)
    except ConfigError as exc:
        logger.error("config_load_failed", error=str(exc))
        return 1

    configure_logging(config.get("logging.level"), config.get("logging.json"))

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        pass
    logger.info("status_api_stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
