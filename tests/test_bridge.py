"""Tests for the SimpliSafe MQTT bridge."""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import replace
from typing import Any
from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest
from pytest_httpx import HTTPXMock

from simplimqtt.api import (
    AuthError,
    NoSiteError,
    NotReadyError,
    ParseError,
    TransportError,
    UnrecognizedCommandError,
)
from simplimqtt.bridge import (
    AlarmBridge,
    BridgeTerminated,
    async_run_bridge,
    decode_payload,
)
from simplimqtt.config import BridgeConfig
from simplimqtt.const import COMMAND_QOS, OAUTH_BASE_URL, STATE_QOS
from simplimqtt.models import BusAlarmState, RemoteCommand, SessionState, Site
from simplimqtt.oauth import OAuthAlarmAPI

from .conftest import TEST_USER_ID, sign_in

TOKEN_URL = f"{OAUTH_BASE_URL}/api/token"
SUBSCRIPTIONS_URL = (
    f"{OAUTH_BASE_URL}/users/{TEST_USER_ID}/subscriptions?activeOnly=true"
)


@pytest.fixture
def bridge(
    bridge_config: BridgeConfig,
    mock_remote_api: Mock,
    mock_reporter: Mock,
) -> AlarmBridge:
    """Fixture providing a bridge wired to mocks."""
    return AlarmBridge(bridge_config, mock_remote_api, mock_reporter)


def _stop_after_publish(bridge: AlarmBridge, mock_client: Mock) -> None:
    mock_client.publish.side_effect = lambda *args, **kwargs: bridge.stop()


def _captured(mock_reporter: Mock) -> list[BaseException]:
    return [call.args[0] for call in mock_reporter.capture.call_args_list]


class TestDecodePayload:
    """Tests for decode_payload function."""

    def test_decode_payload_decodes_utf8(self) -> None:
        """Test that byte payloads are decoded as UTF-8."""
        assert decode_payload(b"away") == "away"
        assert decode_payload(bytearray(b"home")) == "home"

    def test_decode_payload_accepts_text_and_none(self) -> None:
        """Test that text payloads pass through and None is empty."""
        assert decode_payload("off") == "off"
        assert decode_payload(None) == ""

    def test_decode_payload_raises_on_invalid_utf8(self) -> None:
        """Test that undecodable bytes are an unrecognized command."""
        with pytest.raises(UnrecognizedCommandError):
            decode_payload(b"\xff\xfe")


class TestAsyncPollOnce:
    """Tests for async_poll_once method."""

    @pytest.mark.asyncio
    async def test_poll_publishes_retained_state(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
        sample_site: Site,
    ) -> None:
        """Test that the translated state is published retained."""
        assert await bridge.async_poll_once(mock_client) is BusAlarmState.OFF
        mock_client.publish.assert_awaited_once_with(
            "home/alarm", payload="off", qos=STATE_QOS, retain=True
        )
        assert bridge.cache.current.site == sample_site

    @pytest.mark.asyncio
    async def test_poll_publishes_empty_payload_for_unknown_state(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
        mock_remote_api: Mock,
    ) -> None:
        """Test that an unknown remote state is published as empty."""
        mock_remote_api.async_fetch_sites.return_value = [Site("1", "ALARM")]
        assert await bridge.async_poll_once(mock_client) is BusAlarmState.UNKNOWN
        assert mock_client.publish.call_args.kwargs["payload"] == ""

    @pytest.mark.asyncio
    async def test_poll_retries_transport_errors(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
        mock_remote_api: Mock,
        sample_site: Site,
    ) -> None:
        """Test that a transient transport error is retried."""
        mock_remote_api.async_fetch_sites.side_effect = [
            TransportError("down"),
            [sample_site],
        ]
        await bridge.async_poll_once(mock_client)
        assert mock_remote_api.async_fetch_sites.await_count == 2
        mock_client.publish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_poll_gives_up_after_retries(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
        mock_remote_api: Mock,
    ) -> None:
        """Test that the last transport error propagates without a publish."""
        mock_remote_api.async_fetch_sites.side_effect = TransportError("down")
        with pytest.raises(TransportError):
            await bridge.async_poll_once(mock_client)
        assert mock_remote_api.async_fetch_sites.await_count == 3
        mock_client.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_poll_logs_in_again_after_auth_error(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
        mock_remote_api: Mock,
        sample_site: Site,
    ) -> None:
        """Test that a failed session triggers one new login."""
        mock_remote_api.async_fetch_sites.side_effect = [
            AuthError("expired"),
            [sample_site],
        ]
        await bridge.async_poll_once(mock_client)
        mock_remote_api.async_login.assert_awaited_once_with(
            "test@example.com", "password123"
        )
        mock_client.publish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_poll_logs_in_only_once(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
        mock_remote_api: Mock,
    ) -> None:
        """Test that a second auth error in the same poll propagates."""
        mock_remote_api.async_fetch_sites.side_effect = AuthError("rejected")
        with pytest.raises(AuthError):
            await bridge.async_poll_once(mock_client)
        mock_remote_api.async_login.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_poll_without_reauthentication(
        self,
        bridge_config: BridgeConfig,
        mock_remote_api: Mock,
        mock_reporter: Mock,
        mock_client: Mock,
    ) -> None:
        """Test that auth errors propagate when reauthentication is off."""
        config = replace(bridge_config, reauthenticate=False)
        bridge = AlarmBridge(config, mock_remote_api, mock_reporter)
        mock_remote_api.async_fetch_sites.side_effect = AuthError("expired")
        with pytest.raises(AuthError):
            await bridge.async_poll_once(mock_client)
        mock_remote_api.async_login.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_poll_recovers_after_failed_relogin(
        self,
        httpx_mock: HTTPXMock,
        bridge_config: BridgeConfig,
        mock_reporter: Mock,
        mock_client: Mock,
        sample_token_response: dict[str, Any],
        sample_subscriptions_response: dict[str, Any],
    ) -> None:
        """Test that a re-login lost to the network is tried again next poll."""
        httpx_mock.add_response(url=SUBSCRIPTIONS_URL, status_code=401)
        httpx_mock.add_exception(
            httpx.ConnectError("Connection refused"), url=TOKEN_URL, method="POST"
        )
        httpx_mock.add_response(
            url=TOKEN_URL, method="POST", json=sample_token_response
        )
        httpx_mock.add_response(
            url=f"{OAUTH_BASE_URL}/api/authCheck", json={"userId": TEST_USER_ID}
        )
        httpx_mock.add_response(
            url=SUBSCRIPTIONS_URL, json=sample_subscriptions_response
        )
        config = replace(bridge_config, fatal_poll_errors=False)
        async with httpx.AsyncClient() as session:
            remote_api = OAuthAlarmAPI(session)
            sign_in(remote_api)
            bridge = AlarmBridge(config, remote_api, mock_reporter)
            with pytest.raises(TransportError):
                await bridge.async_poll_once(mock_client)
            assert await bridge.async_poll_once(mock_client) is BusAlarmState.HOME

        assert remote_api.state is SessionState.AUTHENTICATED
        mock_client.publish.assert_awaited_once_with(
            "home/alarm", payload="home", qos=STATE_QOS, retain=True
        )


class TestAsyncRunSyncLoop:
    """Tests for async_run_sync_loop method."""

    @pytest.mark.asyncio
    async def test_stop_interrupts_retry_backoff(
        self,
        bridge_config: BridgeConfig,
        mock_remote_api: Mock,
        mock_reporter: Mock,
        mock_client: Mock,
    ) -> None:
        """Test that a stop request ends a long retry delay at once."""
        config = replace(bridge_config, retry_backoff=30, retry_backoff_max=30)
        bridge = AlarmBridge(config, mock_remote_api, mock_reporter)
        mock_remote_api.async_fetch_sites.side_effect = TransportError("down")
        asyncio.get_running_loop().call_later(0.05, bridge.stop)

        await asyncio.wait_for(bridge.async_run_sync_loop(mock_client), timeout=5)

        assert mock_remote_api.async_fetch_sites.await_count == 1
        mock_reporter.capture.assert_not_called()
        mock_client.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sync_loop_stops_when_requested(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
    ) -> None:
        """Test that the loop ends after the poll during which stop was called."""
        _stop_after_publish(bridge, mock_client)
        await bridge.async_run_sync_loop(mock_client)
        assert mock_client.publish.await_count == 1
        assert bridge.stopping

    @pytest.mark.asyncio
    async def test_sync_loop_terminates_without_site(
        self,
        bridge_config: BridgeConfig,
        mock_remote_api: Mock,
        mock_reporter: Mock,
        mock_client: Mock,
    ) -> None:
        """Test that an empty account terminates even when errors are tolerated."""
        config = replace(bridge_config, fatal_poll_errors=False)
        bridge = AlarmBridge(config, mock_remote_api, mock_reporter)
        mock_remote_api.async_fetch_sites.return_value = []
        with pytest.raises(BridgeTerminated, match="No site found"):
            await bridge.async_run_sync_loop(mock_client)
        mock_client.publish.assert_not_awaited()
        assert isinstance(_captured(mock_reporter)[0], NoSiteError)

    @pytest.mark.asyncio
    async def test_sync_loop_terminates_on_poll_error_when_fatal(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
        mock_remote_api: Mock,
        mock_reporter: Mock,
    ) -> None:
        """Test that a failed poll terminates the bridge by default."""
        mock_remote_api.async_fetch_sites.side_effect = ParseError("bad body")
        with pytest.raises(BridgeTerminated, match="bad body"):
            await bridge.async_run_sync_loop(mock_client)
        mock_reporter.capture.assert_called_once()

    @pytest.mark.asyncio
    async def test_sync_loop_continues_when_errors_are_tolerated(
        self,
        bridge_config: BridgeConfig,
        mock_remote_api: Mock,
        mock_reporter: Mock,
        mock_client: Mock,
        sample_site: Site,
    ) -> None:
        """Test that a failed poll is reported and the next one proceeds."""
        config = replace(bridge_config, fatal_poll_errors=False)
        bridge = AlarmBridge(config, mock_remote_api, mock_reporter)
        mock_remote_api.async_fetch_sites.side_effect = [
            ParseError("bad body"),
            [sample_site],
        ]
        _stop_after_publish(bridge, mock_client)
        await bridge.async_run_sync_loop(mock_client)
        assert isinstance(_captured(mock_reporter)[0], ParseError)
        mock_client.publish.assert_awaited_once()


class TestAsyncHandleCommand:
    """Tests for async_handle_command method."""

    @pytest.mark.asyncio
    async def test_command_is_applied(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
        mock_remote_api: Mock,
        sample_site: Site,
    ) -> None:
        """Test that a valid command changes the panel state."""
        await bridge.async_poll_once(mock_client)
        await bridge.async_handle_command(b"away")
        mock_remote_api.async_set_state.assert_awaited_once_with(
            sample_site, RemoteCommand.AWAY
        )

    @pytest.mark.asyncio
    async def test_unknown_command_is_reported(
        self,
        bridge: AlarmBridge,
        mock_remote_api: Mock,
        mock_reporter: Mock,
    ) -> None:
        """Test that an unknown command is reported and not raised."""
        await bridge.async_handle_command(b"frobnicate")
        (error,) = _captured(mock_reporter)
        assert isinstance(error, UnrecognizedCommandError)
        assert error.command == "frobnicate"
        mock_remote_api.async_set_state.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_command_before_first_poll_is_reported(
        self,
        bridge: AlarmBridge,
        mock_remote_api: Mock,
        mock_reporter: Mock,
    ) -> None:
        """Test that a command without a known state is rejected."""
        await bridge.async_handle_command(b"home")
        assert isinstance(_captured(mock_reporter)[0], NotReadyError)
        mock_remote_api.async_set_state.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
        mock_remote_api: Mock,
        mock_reporter: Mock,
    ) -> None:
        """Test that an unexpected error does not escape the handler."""
        await bridge.async_poll_once(mock_client)
        mock_remote_api.async_set_state.side_effect = RuntimeError("boom")
        await bridge.async_handle_command(b"away")
        assert isinstance(_captured(mock_reporter)[0], RuntimeError)


class TestAsyncRun:
    """Tests for async_run method."""

    @pytest.mark.asyncio
    async def test_run_applies_command_after_first_poll(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
        mock_remote_api: Mock,
        sample_site: Site,
    ) -> None:
        """Test that both tasks run and share the cached state."""

        async def messages() -> AsyncIterator[Mock]:
            while bridge.cache.current is None:
                await asyncio.sleep(0)
            yield Mock(payload=b"away")

        mock_client.messages = messages()
        await bridge.async_run(mock_client)

        mock_client.subscribe.assert_awaited_once_with(
            "home/alarm/set", qos=COMMAND_QOS
        )
        mock_client.publish.assert_any_await(
            "home/alarm", payload="off", qos=STATE_QOS, retain=True
        )
        mock_remote_api.async_set_state.assert_awaited_once_with(
            sample_site, RemoteCommand.AWAY
        )

    @pytest.mark.asyncio
    async def test_run_keeps_polling_after_bad_command(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
        mock_reporter: Mock,
    ) -> None:
        """Test that an unknown command does not stop the sync loop."""

        async def messages() -> AsyncIterator[Mock]:
            yield Mock(payload=b"frobnicate")
            while mock_client.publish.await_count < 2:
                await asyncio.sleep(0.01)

        mock_client.messages = messages()
        await bridge.async_run(mock_client)

        assert isinstance(_captured(mock_reporter)[0], UnrecognizedCommandError)
        assert mock_client.publish.await_count >= 2

    @pytest.mark.asyncio
    async def test_run_raises_fatal_poll_error(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
        mock_remote_api: Mock,
    ) -> None:
        """Test that a fatal poll error ends the run and the listener."""
        listener_blocked = asyncio.Event()

        async def messages() -> AsyncIterator[Mock]:
            await listener_blocked.wait()
            yield Mock(payload=b"away")

        mock_client.messages = messages()
        mock_remote_api.async_fetch_sites.return_value = []
        with pytest.raises(BridgeTerminated):
            await bridge.async_run(mock_client)
        mock_remote_api.async_set_state.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_run_raises_poll_error_over_listener_cleanup_error(
        self,
        bridge: AlarmBridge,
        mock_client: Mock,
        mock_remote_api: Mock,
    ) -> None:
        """Test that a listener failing on cancellation keeps the poll error."""
        listener_started = asyncio.Event()

        async def messages() -> AsyncIterator[Mock]:
            listener_started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cleanup_error = "Listener cleanup failed"
                raise RuntimeError(cleanup_error) from None
            yield Mock(payload=b"away")

        async def no_sites() -> list[Site]:
            await listener_started.wait()
            return []

        mock_client.messages = messages()
        mock_remote_api.async_fetch_sites.side_effect = no_sites
        with pytest.raises(BridgeTerminated, match="No site found"):
            await bridge.async_run(mock_client)


class TestAsyncRunBridge:
    """Tests for async_run_bridge function."""

    @pytest.mark.asyncio
    async def test_login_failure_terminates_bridge(
        self,
        bridge_config: BridgeConfig,
        mock_remote_api: Mock,
        mock_reporter: Mock,
        mock_client: Mock,
    ) -> None:
        """Test that a rejected login is reported and ends the bridge."""
        mock_remote_api.async_login.side_effect = AuthError("Login rejected: 401")
        client_context = MagicMock()
        client_context.__aenter__.return_value = mock_client
        client_context.__aexit__.return_value = False
        with (
            patch("simplimqtt.bridge.aiomqtt.Client", return_value=client_context),
            patch(
                "simplimqtt.bridge.create_remote_api",
                return_value=mock_remote_api,
            ),
            pytest.raises(BridgeTerminated, match="Login rejected"),
        ):
            await async_run_bridge(bridge_config, mock_reporter)

        assert isinstance(_captured(mock_reporter)[0], AuthError)
        mock_client.publish.assert_not_awaited()
