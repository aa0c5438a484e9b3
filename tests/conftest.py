"""Pytest configuration and fixtures for SimpliSafe bridge tests."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from simplimqtt.config import BridgeConfig
from simplimqtt.models import Credentials, SessionState, Site
from simplimqtt.session import RemoteAlarmAPI

TEST_USER_ID = "12345"
TEST_SITE_ID = "67890"


def sign_in(
    remote_api: RemoteAlarmAPI,
    expire_at: datetime | None = None,
    refresh_token: str | None = "refresh_token",
) -> Credentials:
    """Put a remote session into the authenticated state without a login call.

    Args:
        remote_api: Session to prepare.
        expire_at: Credential expiry. Defaults to 1 hour from now.
        refresh_token: Refresh token to store.

    Returns:
        The credentials installed on the session.

    """
    if expire_at is None:
        expire_at = datetime.now(UTC) + timedelta(hours=1)
    credentials = Credentials(
        access_token="access_token",
        refresh_token=refresh_token,
        expire_at=expire_at,
    )
    remote_api._credentials = credentials
    remote_api._user_id = TEST_USER_ID
    remote_api._state = SessionState.AUTHENTICATED
    return credentials


@pytest.fixture
def sample_site() -> Site:
    """Fixture providing a site that is currently disarmed."""
    return Site(site_id=TEST_SITE_ID, alarm_state="Off", name="1 Main St")


@pytest.fixture
def bridge_config() -> BridgeConfig:
    """Fixture providing a bridge configuration with fast timings."""
    return BridgeConfig(
        mqtt_broker="tcp://localhost:1883",
        mqtt_command_topic="home/alarm/set",
        mqtt_state_topic="home/alarm",
        username="test@example.com",
        password="password123",
        poll_interval=0.01,
        retry_backoff=0,
        retry_backoff_max=0,
    )


@pytest.fixture
def mock_remote_api(sample_site: Site) -> Mock:
    """Fixture providing a remote session whose account has one site."""
    remote_api = Mock(spec=RemoteAlarmAPI)
    remote_api.async_login = AsyncMock()
    remote_api.async_fetch_sites = AsyncMock(return_value=[sample_site])
    remote_api.async_set_state = AsyncMock()
    return remote_api


@pytest.fixture
def mock_reporter() -> Mock:
    """Fixture providing an error reporter."""
    return Mock()


@pytest.fixture
def mock_client() -> Mock:
    """Fixture providing an MQTT client."""
    client = Mock()
    client.publish = AsyncMock()
    client.subscribe = AsyncMock()
    return client


@pytest.fixture
def sample_token_response() -> dict:
    """Fixture providing a sample OAuth token response."""
    return {
        "access_token": "new_access_token",
        "refresh_token": "new_refresh_token",
        "expires_in": 3600,
        "token_type": "Bearer",
    }


@pytest.fixture
def sample_subscriptions_response() -> dict:
    """Fixture providing a sample subscriptions response with one site."""
    return {
        "subscriptions": [
            {
                "sid": int(TEST_SITE_ID),
                "location": {
                    "street1": "1 Main St",
                    "system": {"alarmState": "HOME"},
                },
            },
        ],
    }


@pytest.fixture
def sample_locations_response() -> dict:
    """Fixture providing a sample legacy locations response with one site."""
    return {
        "num_locations": 1,
        "locations": {
            TEST_SITE_ID: {
                "street1": "1 Main St",
                "city": "Boston",
                "s_status": "10",
                "system_state": "Home",
            },
        },
    }
