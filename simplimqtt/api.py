"""HTTP helpers and error types for the SimpliSafe API.

This module provides the exception hierarchy shared by the whole bridge,
response validation, and the HTTP client factory used by both API
generations.
"""

import logging
from typing import Any

import httpx
from httpx_retries import Retry, RetryTransport

from .const import DEFAULT_REQUEST_TIMEOUT, USER_AGENT

_LOGGER = logging.getLogger(__name__)

# HTTP status codes
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403


class SimpliMqttError(Exception):
    """Base exception for SimpliSafe bridge errors."""


class TransportError(SimpliMqttError):
    """Exception raised for network-level or unexpected HTTP failures."""


class AuthError(SimpliMqttError):
    """Exception raised for bad credentials or an invalid token."""


class ParseError(SimpliMqttError):
    """Exception raised when a remote response cannot be understood."""


class NoSiteError(SimpliMqttError):
    """Exception raised when the account has no controllable site."""


class NotReadyError(SimpliMqttError):
    """Exception raised when an operation runs before its prerequisites."""


class UnrecognizedCommandError(SimpliMqttError):
    """Exception raised for a command literal outside the vocabulary."""

    def __init__(self, command: str) -> None:
        """Initialize with the offending command literal."""
        super().__init__(f"Unrecognized command: {command!r}")
        self.command = command


def create_headers(access_token: str | None = None) -> dict[str, str]:
    """Create HTTP headers for SimpliSafe API requests.

    Args:
        access_token: Optional bearer token to include in headers.

    Returns:
        Dictionary containing HTTP headers for API requests.

    """
    headers = {
        "accept": "application/json",
        "user-agent": USER_AGENT,
    }
    if access_token:
        headers["authorization"] = f"Bearer {access_token}"
    return headers


def is_http_error(status: int) -> bool:
    """Check if HTTP status code indicates an error."""
    return status >= HTTP_BAD_REQUEST


def is_auth_error(status: int) -> bool:
    """Check if HTTP status code indicates an authentication error."""
    return status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN)


def validate_status(response: httpx.Response) -> None:
    """Raise the matching error for an unsuccessful HTTP response.

    Raises:
        AuthError: On 401 or 403.
        TransportError: On any other error status.

    """
    if not is_http_error(response.status_code):
        return

    if is_auth_error(response.status_code):
        auth_error = f"Authentication rejected: {response.status_code}"
        raise AuthError(auth_error)

    client_error = f"Request failed: {response.status_code}"
    raise TransportError(client_error)


def parse_json(response: httpx.Response) -> dict[str, Any]:
    """Return the JSON object carried by a response.

    Raises:
        ParseError: If the body is not a JSON object.

    """
    try:
        data = response.json()
    except ValueError as err:
        error_msg = f"Malformed response body: {err}"
        raise ParseError(error_msg) from err

    if not isinstance(data, dict):
        error_msg = f"Expected a JSON object, got {type(data).__name__}"
        raise ParseError(error_msg)
    return data


def validate_response(response: httpx.Response) -> dict[str, Any]:
    """Validate HTTP response and return parsed JSON data.

    Args:
        response: HTTP response object to validate.

    Returns:
        Parsed JSON data from response.

    Raises:
        AuthError: If authentication error is detected.
        TransportError: If the status code indicates failure.
        ParseError: If the body is not a JSON object.

    """
    validate_status(response)
    return parse_json(response)


def validate_login_response(response: httpx.Response) -> dict[str, Any]:
    """Validate a login or token response.

    Any failure here means the credentials were not accepted, so every
    problem is reported as an authentication error.

    Raises:
        AuthError: On any error status or a malformed body.

    """
    if is_http_error(response.status_code):
        auth_error = f"Login rejected: {response.status_code}"
        raise AuthError(auth_error)

    try:
        return parse_json(response)
    except ParseError as err:
        raise AuthError(str(err)) from err


def create_session_client(
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
    retries: int = 3,
) -> httpx.AsyncClient:
    """Create HTTP client with retry logic for the SimpliSafe API.

    Args:
        timeout: Per-request timeout in seconds.
        retries: Transport-level retries for idempotent requests.

    Returns:
        Configured httpx AsyncClient with retry transport.

    """
    _LOGGER.debug(
        "Creating HTTP client with timeout %.1fs and %d retries", timeout, retries
    )
    retry = Retry(total=retries, backoff_factor=0.5)
    transport = RetryTransport(transport=httpx.AsyncHTTPTransport(), retry=retry)
    return httpx.AsyncClient(
        timeout=timeout,
        transport=transport,
        headers={"user-agent": USER_AGENT},
    )
