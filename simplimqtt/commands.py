"""Applies bus commands to the SimpliSafe panel."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .api import NotReadyError
from .translator import to_bus_vocabulary, to_remote_command

if TYPE_CHECKING:
    from .models import StatusSnapshot
    from .session import RemoteAlarmAPI
    from .status import StateCache

_LOGGER = logging.getLogger(__name__)


class CommandApplier:
    """Translates bus commands and writes them only when the state differs."""

    def __init__(self, remote_api: RemoteAlarmAPI, cache: StateCache) -> None:
        """Initialize the applier.

        Args:
            remote_api: Session used for state-change requests.
            cache: Shared cache updated after each successful write.

        """
        self._remote_api = remote_api
        self._cache = cache

    async def async_apply(
        self,
        command: str,
        snapshot: StatusSnapshot | None,
    ) -> bool:
        """Apply a bus command against the last known state.

        Args:
            command: Command literal received on the bus.
            snapshot: Last observed state known to the caller, or None.
                The shared cache is used instead when it is newer.

        Returns:
            True if a state-change request was sent, False if the panel was
            already in the requested state.

        Raises:
            UnrecognizedCommandError: If the literal is not a known command.
            NotReadyError: If no state has been observed yet.
            TransportError: If the state-change request fails.
            AuthError: If the session cannot authorize the request.

        """
        remote_command = to_remote_command(command)

        snapshot = self._freshest(snapshot)
        if snapshot is None:
            not_ready = "No alarm state observed yet, rejecting command"
            raise NotReadyError(not_ready)

        site = snapshot.site
        if remote_command.bus_state == to_bus_vocabulary(site.alarm_state):
            _LOGGER.info("No status change required")
            return False

        _LOGGER.info(
            "Changing site %s from %r to %s",
            site.site_id,
            site.alarm_state,
            remote_command,
        )
        await self._remote_api.async_set_state(site, remote_command)
        self._cache.update(site.with_state(remote_command.value))
        return True

    def _freshest(self, snapshot: StatusSnapshot | None) -> StatusSnapshot | None:
        cached = self._cache.current
        if cached is None:
            return snapshot
        if snapshot is None or cached.observed_at > snapshot.observed_at:
            return cached
        return snapshot
