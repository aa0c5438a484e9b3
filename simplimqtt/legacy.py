"""Legacy SimpliSafe API (form-encoded, session cookie).

The login response sets a session cookie that the HTTP client replays on
every later request, and it carries the user id directly. The session has
no known expiry; once the remote rejects it a new login is required.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .api import (
    AuthError,
    ParseError,
    validate_login_response,
    validate_response,
    validate_status,
)
from .const import DEVICE_NAME, LEGACY_API_VERSION, LEGACY_BASE_URL
from .models import Credentials, Site
from .session import RemoteAlarmAPI

if TYPE_CHECKING:
    from .models import RemoteCommand

_LOGGER = logging.getLogger(__name__)


def extract_login(data: dict[str, Any]) -> tuple[Credentials, str]:
    """Extract session credentials and user id from a login response.

    Raises:
        AuthError: If the session or uid is missing.

    """
    session = data.get("session")
    uid = data.get("uid")
    if not session or not uid:
        auth_error = "Login response is missing session or uid"
        raise AuthError(auth_error)
    return Credentials(access_token=str(session)), str(uid)


def extract_location_sites(data: dict[str, Any]) -> list[Site]:
    """Extract sites from a locations response.

    An account without locations may report them as an empty list.

    Raises:
        ParseError: If the locations or their system state are missing.

    """
    locations = data.get("locations")
    if locations is None:
        error_msg = "Locations response is missing 'locations'"
        raise ParseError(error_msg)
    if not locations:
        return []
    if not isinstance(locations, dict):
        error_msg = f"Unexpected locations type: {type(locations).__name__}"
        raise ParseError(error_msg)

    sites = []
    for site_id, location in locations.items():
        try:
            alarm_state = location["system_state"]
        except (KeyError, TypeError) as err:
            error_msg = f"Location {site_id} has no system_state"
            raise ParseError(error_msg) from err
        sites.append(
            Site(
                site_id=str(site_id),
                alarm_state=str(alarm_state),
                name=location.get("street1") or None,
            )
        )
    return sites


class LegacyAlarmAPI(RemoteAlarmAPI):
    """Session against the legacy ``/mobile`` API."""

    base_url = LEGACY_BASE_URL

    async def _async_authenticate(
        self,
        username: str,
        password: str,
    ) -> tuple[Credentials, str | None]:
        payload = {
            "name": username,
            "pass": password,
            "version": LEGACY_API_VERSION,
            "device_uuid": self.device_id,
            "device_name": DEVICE_NAME,
        }
        response = await self._async_send("POST", "/login", data=payload)
        data = validate_login_response(response)
        return extract_login(data)

    async def _async_lookup_identity(self, credentials: Credentials) -> str:
        auth_error = "Legacy login did not return a user id"
        raise AuthError(auth_error)

    async def _async_refresh(self, credentials: Credentials) -> Credentials:
        auth_error = "Legacy sessions cannot be refreshed, a new login is required"
        raise AuthError(auth_error)

    def _auth_headers(self, credentials: Credentials) -> dict[str, str]:
        # The session cookie is attached by the client's cookie jar
        return {"accept": "application/json"}

    async def async_fetch_sites(self) -> list[Site]:
        uid = await self._async_identity()
        _LOGGER.debug("Fetching locations for user %s", uid)
        response = await self.async_authorized_request(
            "POST",
            f"/{uid}/locations",
            data={"no_persist": "1"},
        )
        sites = extract_location_sites(validate_response(response))
        _LOGGER.debug("Retrieved %d locations", len(sites))
        return sites

    async def async_set_state(self, site: Site, command: RemoteCommand) -> None:
        uid = await self._async_identity()
        _LOGGER.debug("Setting location %s to %s", site.site_id, command)
        response = await self.async_authorized_request(
            "POST",
            f"/{uid}/sid/{site.site_id}/set-state",
            data={
                "state": command.value,
                "mobile": "1",
                "no_persist": "1",
            },
        )
        validate_status(response)
