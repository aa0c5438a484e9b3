"""Sync loop and command listener bridging SimpliSafe and MQTT.

The sync loop polls the remote state on a fixed interval and publishes it
retained on the state topic. The command listener handles each message on
the command topic. Both run as tasks on the same event loop and share the
remote session and the state cache.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import TYPE_CHECKING

import aiomqtt

from .api import (
    AuthError,
    NoSiteError,
    SimpliMqttError,
    TransportError,
    UnrecognizedCommandError,
    create_session_client,
)
from .commands import CommandApplier
from .const import COMMAND_QOS, STATE_QOS
from .factory import create_remote_api
from .status import StateCache, async_fetch_status
from .translator import to_bus_vocabulary

if TYPE_CHECKING:
    from .config import BridgeConfig
    from .models import BusAlarmState, Site
    from .reporting import ErrorReporter
    from .session import RemoteAlarmAPI

_LOGGER = logging.getLogger(__name__)


class BridgeTerminated(Exception):
    """Raised when the bridge stops because of a fatal error."""


def decode_payload(payload: bytes | bytearray | str | float | None) -> str:
    """Return an MQTT payload as command text.

    Raises:
        UnrecognizedCommandError: If the payload is not valid UTF-8.

    """
    if payload is None:
        return ""
    if isinstance(payload, bytes | bytearray):
        try:
            return bytes(payload).decode("utf-8")
        except UnicodeDecodeError as err:
            raise UnrecognizedCommandError(repr(bytes(payload))) from err
    return str(payload)


class AlarmBridge:
    """Mirrors the alarm state onto MQTT and applies MQTT commands."""

    def __init__(
        self,
        config: BridgeConfig,
        remote_api: RemoteAlarmAPI,
        reporter: ErrorReporter,
    ) -> None:
        """Initialize the bridge.

        Args:
            config: Bridge settings.
            remote_api: Session used for status and command requests.
            reporter: Receives every error the bridge handles.

        """
        self._config = config
        self._remote_api = remote_api
        self._reporter = reporter
        self.cache = StateCache()
        self._applier = CommandApplier(remote_api, self.cache)
        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        """Ask the sync loop to stop after the current poll."""
        _LOGGER.info("Stopping SimpliSafe bridge")
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        """Return True once a stop was requested."""
        return self._stop_event.is_set()

    async def async_login(self) -> None:
        """Log in with the configured account."""
        await self._remote_api.async_login(
            self._config.username, self._config.password
        )

    async def async_poll_once(self, client: aiomqtt.Client) -> BusAlarmState:
        """Fetch the remote state, cache it and publish it retained.

        Raises:
            SimpliMqttError: If the status cannot be fetched. Nothing is
                published in that case.

        """
        remote_state, site = await self._async_fetch_with_retry()
        self.cache.update(site)
        bus_state = to_bus_vocabulary(remote_state)
        _LOGGER.debug(
            "Publishing state %r to %s", bus_state.value, self._config.mqtt_state_topic
        )
        await client.publish(
            self._config.mqtt_state_topic,
            payload=bus_state.value,
            qos=STATE_QOS,
            retain=True,
        )
        return bus_state

    async def _async_fetch_with_retry(self) -> tuple[str, Site]:
        attempt = 0
        reauthenticated = False
        while True:
            try:
                return await async_fetch_status(self._remote_api, self._config.site_id)
            except TransportError as err:
                if attempt >= self._config.poll_retries:
                    raise
                delay = self._retry_delay(attempt)
                attempt += 1
                _LOGGER.warning(
                    "Status poll failed (%s), retry %d/%d in %.1fs",
                    err,
                    attempt,
                    self._config.poll_retries,
                    delay,
                )
                await self._async_wait(delay)
                if self.stopping:
                    raise
            except AuthError:
                if not self._config.reauthenticate or reauthenticated:
                    raise
                reauthenticated = True
                _LOGGER.warning("SimpliSafe session failed, logging in again")
                await self.async_login()

    def _retry_delay(self, attempt: int) -> float:
        return min(
            self._config.retry_backoff * 2**attempt,
            self._config.retry_backoff_max,
        )

    async def async_run_sync_loop(self, client: aiomqtt.Client) -> None:
        """Poll and publish until stopped.

        Raises:
            BridgeTerminated: On a missing site, or on any poll failure when
                ``fatal_poll_errors`` is set.

        """
        while not self.stopping:
            try:
                await self.async_poll_once(client)
            except NoSiteError as err:
                self._reporter.capture(err)
                raise BridgeTerminated(str(err)) from err
            except SimpliMqttError as err:
                if self.stopping:
                    _LOGGER.debug("Status poll interrupted by shutdown: %s", err)
                    break
                self._reporter.capture(err)
                if self._config.fatal_poll_errors:
                    raise BridgeTerminated(str(err)) from err
                _LOGGER.warning("Status poll failed, trying again next interval")
            await self._async_wait(self._config.poll_interval)

    async def _async_wait(self, seconds: float) -> None:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)

    async def async_handle_command(
        self,
        payload: bytes | bytearray | str | float | None,
    ) -> None:
        """Apply one inbound command message.

        Errors are reported and never propagate, so a bad command cannot
        stop the sync loop.
        """
        try:
            command = decode_payload(payload)
            _LOGGER.info("* [%s] %s", self._config.mqtt_command_topic, command)
            await self._applier.async_apply(command, self.cache.current)
        except SimpliMqttError as err:
            self._reporter.capture(err)
        except Exception as err:
            _LOGGER.exception("Unexpected error while handling command")
            self._reporter.capture(err)

    async def async_run_command_listener(self, client: aiomqtt.Client) -> None:
        """Subscribe to the command topic and handle messages until cancelled."""
        await client.subscribe(self._config.mqtt_command_topic, qos=COMMAND_QOS)
        _LOGGER.info("Listening for commands on %s", self._config.mqtt_command_topic)
        async for message in client.messages:
            await self.async_handle_command(message.payload)

    async def async_run(self, client: aiomqtt.Client) -> None:
        """Run the sync loop and the command listener until one of them ends.

        Raises:
            BridgeTerminated: If the sync loop stops on a fatal error.
            aiomqtt.MqttError: If the broker connection fails.

        """
        tasks = {
            asyncio.create_task(self.async_run_sync_loop(client)),
            asyncio.create_task(self.async_run_command_listener(client)),
        }
        done: set[asyncio.Task[None]] = set()
        pending = tasks
        try:
            done, pending = await asyncio.wait(
                tasks, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in pending:
                task.cancel()
            # Outcomes of the cancelled tasks never mask the finished one
            await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            task.result()


async def async_run_bridge(config: BridgeConfig, reporter: ErrorReporter) -> None:
    """Connect everything and run the bridge until stopped or failed.

    Raises:
        BridgeTerminated: If login fails or a fatal poll error occurs.
        aiomqtt.MqttError: If the broker connection fails.

    """
    async with create_session_client(config.request_timeout) as session:
        remote_api = create_remote_api(config.api_generation, session)
        bridge = AlarmBridge(config, remote_api, reporter)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, bridge.stop)

        try:
            async with aiomqtt.Client(
                hostname=config.mqtt_host,
                port=config.mqtt_port,
                username=config.mqtt_username,
                password=config.mqtt_password,
                identifier=config.mqtt_client_id,
            ) as client:
                _LOGGER.info("Connected to MQTT broker %s", config.mqtt_broker)
                try:
                    await bridge.async_login()
                except SimpliMqttError as err:
                    reporter.capture(err)
                    raise BridgeTerminated(str(err)) from err
                await bridge.async_run(client)
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
