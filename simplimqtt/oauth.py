"""Current SimpliSafe API (OAuth bearer tokens).

A password grant yields an access token and a refresh token; the user id
comes from a separate ``authCheck`` call. Access tokens are refreshed with
the refresh token shortly before they expire.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from .api import (
    AuthError,
    ParseError,
    create_headers,
    validate_login_response,
    validate_response,
)
from .const import OAUTH_BASE_URL, OAUTH_CLIENT_ID, OAUTH_SCOPE
from .models import Credentials, Site
from .session import RemoteAlarmAPI

if TYPE_CHECKING:
    from .models import RemoteCommand

_LOGGER = logging.getLogger(__name__)


def extract_credentials(
    data: dict[str, Any],
    previous: Credentials | None = None,
) -> Credentials:
    """Extract credentials from a token response.

    Args:
        data: Token endpoint response.
        previous: Credentials being refreshed; their refresh token is kept
            when the response does not rotate it.

    Raises:
        AuthError: If the access token or its lifetime is missing.

    """
    access_token = data.get("access_token")
    expires_in = data.get("expires_in")
    if not access_token or expires_in is None:
        auth_error = "Token response is missing access_token or expires_in"
        raise AuthError(auth_error)

    refresh_token = data.get("refresh_token")
    if refresh_token is None and previous is not None:
        refresh_token = previous.refresh_token

    try:
        lifetime = timedelta(seconds=float(expires_in))
    except (TypeError, ValueError) as err:
        auth_error = f"Invalid expires_in: {expires_in!r}"
        raise AuthError(auth_error) from err

    return Credentials(
        access_token=str(access_token),
        refresh_token=refresh_token,
        expire_at=datetime.now(UTC) + lifetime,
    )


def extract_user_id(data: dict[str, Any]) -> str:
    """Extract the user id from an ``authCheck`` response.

    Raises:
        AuthError: If the user id is missing.

    """
    user_id = data.get("userId")
    if user_id is None:
        auth_error = "Identity response is missing userId"
        raise AuthError(auth_error)
    return str(user_id)


def extract_subscription_sites(data: dict[str, Any]) -> list[Site]:
    """Extract sites from a subscriptions response.

    Raises:
        ParseError: If subscriptions or their alarm state are missing.

    """
    subscriptions = data.get("subscriptions")
    if not isinstance(subscriptions, list):
        error_msg = "Subscriptions response is missing 'subscriptions'"
        raise ParseError(error_msg)

    sites = []
    for subscription in subscriptions:
        try:
            site_id = subscription["sid"]
            location = subscription["location"]
            alarm_state = location["system"]["alarmState"]
        except (KeyError, TypeError) as err:
            error_msg = f"Malformed subscription entry: {err}"
            raise ParseError(error_msg) from err
        sites.append(
            Site(
                site_id=str(site_id),
                alarm_state=str(alarm_state),
                name=location.get("street1") or None,
            )
        )
    return sites


class OAuthAlarmAPI(RemoteAlarmAPI):
    """Session against the ``api.simplisafe.com/v1`` API."""

    base_url = OAUTH_BASE_URL

    async def _async_token_request(self, payload: dict[str, str]) -> dict[str, Any]:
        body = {**payload, "client_id": OAUTH_CLIENT_ID, "device_id": self.device_id}
        response = await self._async_send(
            "POST",
            "/api/token",
            json=body,
            auth=(OAUTH_CLIENT_ID, ""),
            headers=create_headers(),
        )
        return validate_login_response(response)

    async def _async_authenticate(
        self,
        username: str,
        password: str,
    ) -> tuple[Credentials, str | None]:
        data = await self._async_token_request(
            {
                "grant_type": "password",
                "username": username,
                "password": password,
                "scope": OAUTH_SCOPE,
            }
        )
        return extract_credentials(data), None

    async def _async_lookup_identity(self, credentials: Credentials) -> str:
        response = await self._async_send(
            "GET",
            "/api/authCheck",
            headers=self._auth_headers(credentials),
        )
        data = validate_login_response(response)
        return extract_user_id(data)

    async def _async_refresh(self, credentials: Credentials) -> Credentials:
        if not credentials.refresh_token:
            auth_error = "No refresh token available, a new login is required"
            raise AuthError(auth_error)

        _LOGGER.debug("Refreshing access token")
        data = await self._async_token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": credentials.refresh_token,
            }
        )
        return extract_credentials(data, previous=credentials)

    def _auth_headers(self, credentials: Credentials) -> dict[str, str]:
        return create_headers(credentials.access_token)

    async def async_fetch_sites(self) -> list[Site]:
        user_id = await self._async_identity()
        _LOGGER.debug("Fetching subscriptions for user %s", user_id)
        response = await self.async_authorized_request(
            "GET",
            f"/users/{user_id}/subscriptions",
            params={"activeOnly": "true"},
        )
        sites = extract_subscription_sites(validate_response(response))
        _LOGGER.debug("Retrieved %d subscriptions", len(sites))
        return sites

    async def async_set_state(self, site: Site, command: RemoteCommand) -> None:
        _LOGGER.debug("Setting subscription %s to %s", site.site_id, command)
        response = await self.async_authorized_request(
            "POST",
            f"/ss3/subscriptions/{site.site_id}/state/{command.value}",
        )
        validate_response(response)
