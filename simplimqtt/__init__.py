"""Bridge between a SimpliSafe alarm and an MQTT broker."""

from .api import (
    AuthError,
    NoSiteError,
    NotReadyError,
    ParseError,
    SimpliMqttError,
    TransportError,
    UnrecognizedCommandError,
)
from .bridge import AlarmBridge, BridgeTerminated
from .commands import CommandApplier
from .factory import create_remote_api
from .models import BusAlarmState, RemoteCommand, Site
from .session import RemoteAlarmAPI
from .status import async_fetch_status
from .translator import to_bus_vocabulary, to_remote_command

__all__ = [
    "AlarmBridge",
    "AuthError",
    "BridgeTerminated",
    "BusAlarmState",
    "CommandApplier",
    "NoSiteError",
    "NotReadyError",
    "ParseError",
    "RemoteAlarmAPI",
    "RemoteCommand",
    "SimpliMqttError",
    "Site",
    "TransportError",
    "UnrecognizedCommandError",
    "async_fetch_status",
    "create_remote_api",
    "to_bus_vocabulary",
    "to_remote_command",
]
