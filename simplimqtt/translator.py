"""Translation between SimpliSafe and bus alarm vocabularies."""

import logging
import re

from .api import UnrecognizedCommandError
from .const import COMMAND_MAP, REMOTE_STATE_MAP
from .models import BusAlarmState, RemoteCommand

_LOGGER = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\s\-]+")


def normalize_remote_state(remote: str | None) -> str:
    """Normalize a remote state literal for lookup.

    ``"Away Count"``, ``"away-count"`` and ``"AWAY_COUNT"`` all become
    ``"away_count"``.
    """
    if not remote:
        return ""
    return _SEPARATORS.sub("_", remote.strip()).lower()


def to_bus_vocabulary(remote: str | None) -> BusAlarmState:
    """Map a remote alarm state to the bus vocabulary.

    Never raises; unrecognized states map to ``BusAlarmState.UNKNOWN``.
    """
    bus_state = REMOTE_STATE_MAP.get(normalize_remote_state(remote))
    if bus_state is None:
        _LOGGER.debug("Unknown remote alarm state %r", remote)
        return BusAlarmState.UNKNOWN
    return bus_state


def to_remote_command(command: str) -> RemoteCommand:
    """Map a bus command literal to a remote command.

    Raises:
        UnrecognizedCommandError: If the literal is not a known command.

    """
    remote_command = COMMAND_MAP.get(command.strip().lower())
    if remote_command is None:
        raise UnrecognizedCommandError(command)
    return remote_command
