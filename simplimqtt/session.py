"""Remote session for the SimpliSafe API.

This module provides the base class shared by both API generations. It owns
the HTTP client and the credential lifecycle: login, identity lookup,
refresh before expiry, and the single entry point through which every
status and command request is sent.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx

from .api import (
    AuthError,
    NotReadyError,
    SimpliMqttError,
    TransportError,
    is_auth_error,
)
from .const import TOKEN_REFRESH_BUFFER
from .models import Credentials, SessionState

if TYPE_CHECKING:
    from .models import RemoteCommand, Site

_LOGGER = logging.getLogger(__name__)


class RemoteAlarmAPI(ABC):
    """Authenticated session against one generation of the SimpliSafe API.

    Credentials and identity are written only by a successful login or
    refresh, always while holding ``_lock``. The credentials object is
    immutable and replaced in a single assignment, so readers always see a
    complete value. Callers that find the credentials about to expire queue
    on the lock; the first one refreshes, the others reuse its result.
    """

    base_url: str

    def __init__(
        self,
        session: httpx.AsyncClient,
        device_id: str | None = None,
    ) -> None:
        """Initialize the remote session.

        Args:
            session: HTTP client used for every request.
            device_id: Device identifier sent on login. A random UUID is
                generated when omitted.

        """
        self._session = session
        self.device_id = device_id or str(uuid.uuid4())
        self._lock = asyncio.Lock()
        self._credentials: Credentials | None = None
        self._user_id: str | None = None
        self._state = SessionState.UNAUTHENTICATED

    @property
    def state(self) -> SessionState:
        """Return the current session state."""
        return self._state

    @property
    def credentials(self) -> Credentials | None:
        """Return the current credentials, if logged in."""
        return self._credentials

    @property
    def user_id(self) -> str | None:
        """Return the remote user identifier, if logged in."""
        return self._user_id

    async def async_login(self, username: str, password: str) -> None:
        """Exchange username and password for credentials and an identity.

        The previous credentials and identity stay in place until the new
        ones are known. Callers queued on the lock during a login see the
        outcome of that login.

        Raises:
            AuthError: If the credentials are rejected or the response is
                malformed.
            TransportError: If the remote cannot be reached.

        """
        async with self._lock:
            self._state = SessionState.AUTHENTICATING
            try:
                _LOGGER.debug("Logging in to %s as %s", self.base_url, username)
                credentials, user_id = await self._async_authenticate(
                    username, password
                )
                if user_id is None:
                    user_id = await self._async_lookup_identity(credentials)
            except SimpliMqttError:
                self._state = SessionState.FAILED
                raise

            self._credentials = credentials
            self._user_id = user_id
            self._state = SessionState.AUTHENTICATED
        _LOGGER.info("Logged in to SimpliSafe as user %s", user_id)

    async def async_authorized_request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request carrying valid credentials.

        Args:
            method: HTTP method.
            path: Path relative to ``base_url``.
            **kwargs: Passed through to ``httpx.AsyncClient.request``.

        Returns:
            The HTTP response. Error statuses other than 401/403 are left to
            the caller to interpret.

        Raises:
            NotReadyError: If no login has completed yet.
            AuthError: If the session has failed, a refresh fails, or the
                remote rejects the credentials.
            TransportError: If the remote cannot be reached.

        """
        credentials = await self._async_valid_credentials()
        headers = {**self._auth_headers(credentials), **kwargs.pop("headers", {})}
        response = await self._async_send(method, path, headers=headers, **kwargs)

        if is_auth_error(response.status_code):
            self._invalidate(credentials)
            auth_error = (
                f"Credentials rejected on {method} {path}: {response.status_code}"
            )
            raise AuthError(auth_error)

        return response

    async def _async_identity(self) -> str:
        """Return the user id once valid credentials are available.

        Waits for an in-flight login or refresh, so the identity matches the
        credentials the following request will carry.
        """
        await self._async_valid_credentials()
        return self._require_identity()

    def _require_identity(self) -> str:
        if self._state is SessionState.FAILED:
            auth_error = "Session failed, a new login is required"
            raise AuthError(auth_error)
        if self._user_id is None:
            not_ready = "Not logged in to SimpliSafe"
            raise NotReadyError(not_ready)
        return self._user_id

    def _usable_credentials(self) -> Credentials:
        if self._state is SessionState.FAILED:
            auth_error = "Session failed, a new login is required"
            raise AuthError(auth_error)
        if self._credentials is None or self._user_id is None:
            not_ready = "Not logged in to SimpliSafe"
            raise NotReadyError(not_ready)
        return self._credentials

    @staticmethod
    def _needs_refresh(credentials: Credentials) -> bool:
        return credentials.expires_within(datetime.now(UTC), TOKEN_REFRESH_BUFFER)

    async def _async_valid_credentials(self) -> Credentials:
        credentials = self._credentials
        if (
            self._state is SessionState.AUTHENTICATED
            and credentials is not None
            and not self._needs_refresh(credentials)
        ):
            return credentials

        async with self._lock:
            credentials = self._usable_credentials()
            if not self._needs_refresh(credentials):
                return credentials

            self._state = SessionState.REFRESHING
            _LOGGER.debug("Credentials expire at %s, refreshing", credentials.expire_at)
            try:
                new_credentials = await self._async_refresh(credentials)
            except AuthError:
                _LOGGER.warning("Credential refresh rejected")
                self._state = SessionState.FAILED
                raise
            except SimpliMqttError as err:
                self._state = SessionState.FAILED
                auth_error = f"Credential refresh failed: {err}"
                raise AuthError(auth_error) from err

            self._credentials = new_credentials
            self._state = SessionState.AUTHENTICATED
            _LOGGER.info("Successfully refreshed SimpliSafe credentials")
            return new_credentials

    def _invalidate(self, credentials: Credentials) -> None:
        # A concurrent refresh may already have replaced the rejected token
        if self._credentials is credentials:
            _LOGGER.warning("SimpliSafe rejected the current credentials")
            self._state = SessionState.FAILED

    async def _async_send(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            return await self._session.request(method, url, **kwargs)
        except httpx.TimeoutException as err:
            error_msg = f"Timeout on {method} {path}: {err}"
            raise TransportError(error_msg) from err
        except httpx.RequestError as err:
            error_msg = f"Connection error on {method} {path}: {err}"
            raise TransportError(error_msg) from err

    @abstractmethod
    async def _async_authenticate(
        self,
        username: str,
        password: str,
    ) -> tuple[Credentials, str | None]:
        """Obtain credentials, plus the identity when login returns it."""

    @abstractmethod
    async def _async_lookup_identity(self, credentials: Credentials) -> str:
        """Resolve the remote user identifier for fresh credentials."""

    @abstractmethod
    async def _async_refresh(self, credentials: Credentials) -> Credentials:
        """Return new credentials replacing ones about to expire."""

    @abstractmethod
    def _auth_headers(self, credentials: Credentials) -> dict[str, str]:
        """Return the headers that attach credentials to a request."""

    @abstractmethod
    async def async_fetch_sites(self) -> list[Site]:
        """Return every site of the account, in remote response order."""

    @abstractmethod
    async def async_set_state(self, site: Site, command: RemoteCommand) -> None:
        """Ask the remote to move a site into another alarm state."""
