"""Constants for the SimpliSafe MQTT bridge.

This module contains all the constants used throughout the bridge,
including API endpoints, defaults, and vocabulary mapping dictionaries.
"""

from .models import BusAlarmState, RemoteCommand

LEGACY_BASE_URL = "https://simplisafe.com/mobile"
OAUTH_BASE_URL = "https://api.simplisafe.com/v1"

OAUTH_CLIENT_ID = "4df55627-46b2-4e2c-866b-1521b395ded2.1-28-0.WebApp.simplisafe.com"
OAUTH_SCOPE = "offline_access"
LEGACY_API_VERSION = "1200"
DEVICE_NAME = "simplimqtt"
USER_AGENT = "simplimqtt/1.0"

API_GENERATION_LEGACY = "legacy"
API_GENERATION_OAUTH = "oauth"
API_GENERATIONS = (API_GENERATION_LEGACY, API_GENERATION_OAUTH)

DEFAULT_CONFIG_PATH = "/config/config.json"
DEFAULT_CLIENT_ID = "simplimqtt"
DEFAULT_MQTT_PORT = 1883
DEFAULT_POLL_INTERVAL = 15
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_POLL_RETRIES = 2
DEFAULT_RETRY_BACKOFF = 1.0
DEFAULT_RETRY_BACKOFF_MAX = 30.0

# Refresh credentials this many seconds before they expire
TOKEN_REFRESH_BUFFER = 30

COMMAND_QOS = 2
STATE_QOS = 1

# Remote literals are normalized with normalize_remote_state() before lookup
REMOTE_STATE_MAP = {
    "off": BusAlarmState.OFF,
    "disarmed": BusAlarmState.OFF,
    "home": BusAlarmState.HOME,
    "home_count": BusAlarmState.HOME,
    "away": BusAlarmState.AWAY,
    "away_count": BusAlarmState.AWAY,
}

COMMAND_MAP = {
    "off": RemoteCommand.OFF,
    "disarm": RemoteCommand.OFF,
    "disarmed": RemoteCommand.OFF,
    "home": RemoteCommand.HOME,
    "arm_home": RemoteCommand.HOME,
    "away": RemoteCommand.AWAY,
    "arm_away": RemoteCommand.AWAY,
}
