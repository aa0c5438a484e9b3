"""Data models for the SimpliSafe MQTT bridge."""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import StrEnum


class BusAlarmState(StrEnum):
    """Alarm state as published on the state topic."""

    OFF = "off"
    HOME = "home"
    AWAY = "away"
    UNKNOWN = ""


class RemoteCommand(StrEnum):
    """State-change instruction understood by the remote API."""

    OFF = "off"
    HOME = "home"
    AWAY = "away"

    @property
    def bus_state(self) -> BusAlarmState:
        """Return the bus state this command drives the panel into."""
        return BusAlarmState(self.value)


class SessionState(StrEnum):
    """Lifecycle of a remote session."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    FAILED = "failed"


@dataclass(frozen=True)
class Credentials:
    """Represents the credentials attached to authorized requests."""

    access_token: str
    refresh_token: str | None = None
    expire_at: datetime | None = None

    def expires_within(self, now: datetime, seconds: float) -> bool:
        """Return True if the credentials are expired or about to expire."""
        if self.expire_at is None:
            return False
        return now + timedelta(seconds=seconds) >= self.expire_at


@dataclass(frozen=True)
class Site:
    """Represents one controlled location and its remote alarm state.

    Attributes:
        site_id: Remote-assigned site identifier.
        alarm_state: Last observed alarm state, remote vocabulary.
        name: Human-readable description, when the remote provides one.

    """

    site_id: str
    alarm_state: str
    name: str | None = None

    def with_state(self, alarm_state: str) -> "Site":
        """Return a copy of the site carrying another alarm state."""
        return replace(self, alarm_state=alarm_state)


@dataclass(frozen=True)
class StatusSnapshot:
    """Last observed site together with when it was observed."""

    site: Site
    observed_at: datetime
