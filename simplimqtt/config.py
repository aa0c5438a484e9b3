"""Configuration loading for the SimpliSafe MQTT bridge."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml

from .const import (
    API_GENERATION_OAUTH,
    API_GENERATIONS,
    DEFAULT_CLIENT_ID,
    DEFAULT_MQTT_PORT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_POLL_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_BACKOFF,
    DEFAULT_RETRY_BACKOFF_MAX,
)

_LOGGER = logging.getLogger(__name__)

REQUIRED_KEYS = (
    "mqtt_broker",
    "mqtt_command_topic",
    "mqtt_state_topic",
    "username",
    "password",
)
OPTIONAL_KEYS = ("mqtt_username", "mqtt_password", "sentry_dsn", "site_id")
BOOL_KEYS = ("fatal_poll_errors", "reauthenticate")
INT_KEYS = ("poll_retries",)
FLOAT_KEYS = ("poll_interval", "request_timeout", "retry_backoff", "retry_backoff_max")


class ConfigError(Exception):
    """Exception raised for a missing or invalid configuration."""


@dataclass(frozen=True)
class BridgeConfig:
    """Settings for one bridge process.

    Attributes:
        mqtt_broker: Broker address, ``host``, ``host:port`` or
            ``tcp://host:port``.
        mqtt_command_topic: Topic carrying inbound commands.
        mqtt_state_topic: Topic the alarm state is published to.
        username: SimpliSafe account username.
        password: SimpliSafe account password.
        sentry_dsn: Optional Sentry DSN for error reporting.
        api_generation: ``oauth`` or ``legacy``.
        poll_interval: Seconds between two status polls.
        request_timeout: Timeout of each HTTP request in seconds.
        fatal_poll_errors: Stop the bridge when a poll keeps failing.
        poll_retries: Extra attempts for a poll that hit a transport error.
        retry_backoff: Base delay of the poll retry backoff in seconds.
        retry_backoff_max: Upper bound of the poll retry delay in seconds.
        reauthenticate: Log in again once when the session fails.
        site_id: Pin one site of a multi-site account.

    """

    mqtt_broker: str
    mqtt_command_topic: str
    mqtt_state_topic: str
    username: str
    password: str
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_client_id: str = DEFAULT_CLIENT_ID
    sentry_dsn: str | None = None
    api_generation: str = API_GENERATION_OAUTH
    poll_interval: float = DEFAULT_POLL_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    fatal_poll_errors: bool = True
    poll_retries: int = DEFAULT_POLL_RETRIES
    retry_backoff: float = DEFAULT_RETRY_BACKOFF
    retry_backoff_max: float = DEFAULT_RETRY_BACKOFF_MAX
    reauthenticate: bool = True
    site_id: str | None = None

    @property
    def mqtt_host(self) -> str:
        """Return the broker host name."""
        return _split_broker(self.mqtt_broker)[0]

    @property
    def mqtt_port(self) -> int:
        """Return the broker port."""
        return _split_broker(self.mqtt_broker)[1]


def _split_broker(broker: str) -> tuple[str, int]:
    if "://" not in broker:
        broker = f"tcp://{broker}"
    parts = urlsplit(broker)
    try:
        port = parts.port or DEFAULT_MQTT_PORT
    except ValueError as err:
        error_msg = f"Invalid MQTT broker port in {broker!r}"
        raise ConfigError(error_msg) from err
    if not parts.hostname:
        error_msg = f"Invalid MQTT broker address {broker!r}"
        raise ConfigError(error_msg)
    return parts.hostname, port


def parse_config(data: dict[str, Any]) -> BridgeConfig:
    """Build a validated configuration from a mapping.

    Unknown keys are ignored with a warning.

    Raises:
        ConfigError: If a required key is missing or a value is invalid.

    """
    missing = [key for key in REQUIRED_KEYS if not data.get(key)]
    if missing:
        error_msg = f"Missing required configuration keys: {', '.join(missing)}"
        raise ConfigError(error_msg)

    known = {field.name for field in fields(BridgeConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        _LOGGER.warning("Ignoring unknown configuration keys: %s", unknown)

    values = {
        key: _coerce(key, value) for key, value in data.items() if key in known
    }
    config = BridgeConfig(**values)
    _validate(config)
    return config


def _coerce(key: str, value: Any) -> Any:
    """Return a configuration value converted to the type of its field.

    Raises:
        ConfigError: If the value cannot be converted.

    """
    if value is None and key in OPTIONAL_KEYS:
        return None
    if key == "site_id" and type(value) is int:
        return str(value)
    if key in BOOL_KEYS:
        if not isinstance(value, bool):
            error_msg = f"{key} must be true or false, got {value!r}"
            raise ConfigError(error_msg)
        return value
    if key in FLOAT_KEYS or key in INT_KEYS:
        if isinstance(value, bool):
            error_msg = f"{key} must be a number, got {value!r}"
            raise ConfigError(error_msg)
        convert = int if key in INT_KEYS else float
        try:
            return convert(value)
        except (TypeError, ValueError) as err:
            error_msg = f"{key} must be a number, got {value!r}"
            raise ConfigError(error_msg) from err
    if not isinstance(value, str):
        error_msg = f"{key} must be a string, got {value!r}"
        raise ConfigError(error_msg)
    return value


def _validate(config: BridgeConfig) -> None:
    if config.api_generation not in API_GENERATIONS:
        error_msg = (
            f"api_generation must be one of {API_GENERATIONS}, "
            f"got {config.api_generation!r}"
        )
        raise ConfigError(error_msg)
    if config.poll_interval <= 0:
        error_msg = "poll_interval must be positive"
        raise ConfigError(error_msg)
    if config.request_timeout <= 0:
        error_msg = "request_timeout must be positive"
        raise ConfigError(error_msg)
    for key in ("poll_retries", "retry_backoff", "retry_backoff_max"):
        if getattr(config, key) < 0:
            error_msg = f"{key} must not be negative"
            raise ConfigError(error_msg)
    _split_broker(config.mqtt_broker)


def load_config(path: str | Path) -> BridgeConfig:
    """Load the configuration file at ``path``.

    The file is YAML; JSON configuration files are accepted unchanged.

    Raises:
        ConfigError: If the file cannot be read or is invalid.

    """
    try:
        with Path(path).open(encoding="utf-8") as config_file:
            data = yaml.safe_load(config_file)
    except OSError as err:
        error_msg = f"Cannot read configuration file {path}: {err}"
        raise ConfigError(error_msg) from err
    except yaml.YAMLError as err:
        error_msg = f"Invalid configuration file {path}: {err}"
        raise ConfigError(error_msg) from err

    if not isinstance(data, dict):
        error_msg = f"Configuration file {path} must contain a mapping"
        raise ConfigError(error_msg)

    return parse_config(data)
