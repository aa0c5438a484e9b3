"""Error reporting for the SimpliSafe MQTT bridge."""

from __future__ import annotations

import logging
from typing import Protocol

import sentry_sdk

_LOGGER = logging.getLogger(__name__)


class ErrorReporter(Protocol):
    """Receives errors that the bridge handles without crashing."""

    def capture(self, err: BaseException) -> None:
        """Report an error."""


class LoggingReporter:
    """Reports errors to the log only."""

    def capture(self, err: BaseException) -> None:
        """Log the error with its traceback."""
        _LOGGER.error("%s: %s", type(err).__name__, err, exc_info=err)


class SentryReporter(LoggingReporter):
    """Reports errors to the log and to Sentry."""

    def __init__(self, dsn: str) -> None:
        """Initialize the Sentry SDK for the given DSN."""
        sentry_sdk.init(dsn=dsn)

    def capture(self, err: BaseException) -> None:
        """Log the error and send it to Sentry."""
        super().capture(err)
        sentry_sdk.capture_exception(err)

    def flush(self, timeout: float = 2.0) -> None:
        """Wait for queued events to be sent."""
        sentry_sdk.flush(timeout=timeout)


def create_reporter(dsn: str | None) -> LoggingReporter:
    """Return a Sentry reporter when a DSN is configured, else a logging one."""
    if dsn:
        _LOGGER.debug("Reporting errors to Sentry")
        return SentryReporter(dsn)
    return LoggingReporter()
