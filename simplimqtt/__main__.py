"""Command line entry point for the SimpliSafe MQTT bridge."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import aiomqtt

from .bridge import BridgeTerminated, async_run_bridge
from .config import ConfigError, load_config
from .const import DEFAULT_CONFIG_PATH
from .reporting import SentryReporter, create_reporter

_LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str) -> None:
    """Configure the root logger and quiet chatty libraries."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiomqtt").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="simplimqtt",
        description="Mirror a SimpliSafe alarm onto MQTT.",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Config file (containing login credentials)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the bridge and return the process exit code."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = load_config(args.config)
    except ConfigError:
        # Error reporting is not set up yet, only the log is available
        _LOGGER.exception("Cannot load configuration")
        return 2

    reporter = create_reporter(config.sentry_dsn)
    exit_code = 0
    try:
        asyncio.run(async_run_bridge(config, reporter))
    except BridgeTerminated as err:
        _LOGGER.error("SimpliSafe bridge terminated: %s", err)
        exit_code = 1
    except aiomqtt.MqttError as err:
        reporter.capture(err)
        _LOGGER.error("Error connecting to MQTT: %s", err)
        exit_code = 1
    finally:
        if isinstance(reporter, SentryReporter):
            reporter.flush()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
