"""Reconnect supervisor: owns the bridge lifecycle.

Every attempt starts from scratch: fetch the device identity, connect to
the broker, then run a fresh session. Restartable failures tear the attempt
down and back off; a rejected login is terminal.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from vto_bridge.device_info import DeviceInfoClient
from vto_bridge.events import keepalive_event, translate_events
from vto_bridge.logging_abstraction import get_logger, session_tag_context
from vto_bridge.metrics import record_reconnection
from vto_bridge.mqtt.client import MQTTClient
from vto_bridge.protocol.exceptions import AuthenticationRejected, DeviceInfoError, MalformedFrame, TransportError
from vto_bridge.structs import BridgeSettings, DeviceIdentity
from vto_bridge.transport.retry_policy import RetryPolicy, TimeoutConfig
from vto_bridge.transport.session import VTOSession

logger = get_logger(__name__)

RESTARTABLE_ERRORS = (TransportError, MalformedFrame, DeviceInfoError)

SessionFactory = Callable[..., VTOSession]


class VTOSupervisor:
    """Runs sessions back to back until stopped or the login is rejected."""

    lp: str = "supervisor:"

    def __init__(
        self,
        settings: BridgeSettings,
        *,
        device_info: DeviceInfoClient | None = None,
        mqtt_client: MQTTClient | None = None,
        retry_policy: RetryPolicy | None = None,
        session_factory: SessionFactory = VTOSession,
    ) -> None:
        self.settings = settings
        self.device_info = device_info or DeviceInfoClient(settings.vto_host, settings.credentials)
        self.mqtt = mqtt_client or MQTTClient(settings)
        self.retry_policy = retry_policy or RetryPolicy(max_delay_seconds=settings.reconnect_max_delay)
        self.timeouts = TimeoutConfig(login_timeout_seconds=settings.login_timeout)
        self.session_factory = session_factory
        self.session: VTOSession | None = None
        self.identity: DeviceIdentity | None = None
        self.attempts: int = 0
        # consecutive failed attempts; reset once a login succeeds
        self.failures: int = 0
        self._stopping = False
        self._run_task: asyncio.Task[Any] | None = None

    async def run_forever(self) -> None:
        """Run attempts until ``stop()`` is called.

        Raises:
            AuthenticationRejected: the device refused the credentials
        """
        lp = f"{self.lp}run:"
        self._run_task = asyncio.current_task()
        try:
            while not self._stopping:
                await self._attempt()
                if self._stopping:
                    break
                delay = self.retry_policy.get_delay(self.failures)
                self.failures += 1
                logger.info("%s Restarting in %.1fs", lp, delay, extra={"failures": self.failures})
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            if not self._stopping:
                raise
            logger.info("%s Supervisor stopped", lp)
        finally:
            await self.device_info.close()

    async def _attempt(self) -> None:
        lp = f"{self.lp}attempt:"
        self.attempts += 1
        with session_tag_context():
            logger.info("%s Starting connection attempt #%d", lp, self.attempts, extra={"host": self.settings.vto_host})
            try:
                await self._run_session()
            except AuthenticationRejected:
                logger.error("%s Device rejected the credentials, giving up", lp, extra={"username": self.settings.vto_username})
                raise
            except RESTARTABLE_ERRORS as e:
                record_reconnection(type(e).__name__)
                logger.warning("%s Attempt failed: %s", lp, e, extra={"error_type": type(e).__name__})
            finally:
                await self._teardown()

    async def _run_session(self) -> None:
        self.identity = await self.device_info.fetch_identity()
        if not await self.mqtt.connect():
            raise TransportError("mqtt_connect_failed")
        self.session = self.session_factory(
            self.settings.vto_host,
            self.settings.credentials,
            timeouts=self.timeouts,
            on_authenticated=self._on_authenticated,
            on_events=self._on_events,
            on_keepalive=self._on_keepalive,
        )
        await self.session.run()

    async def _teardown(self) -> None:
        """Keepalive and socket first (via session.close), then MQTT."""
        if self.session is not None:
            await self.session.close()
            self.session = None
        await self.mqtt.stop()

    async def _on_authenticated(self) -> None:
        self.failures = 0

    async def _on_events(self, events: list[dict[str, Any]]) -> None:
        if self.identity is None:
            return
        for event in translate_events(events, self.identity):
            _ = await self.mqtt.publish_event(event)

    async def _on_keepalive(self) -> None:
        if self.identity is None:
            return
        _ = await self.mqtt.publish_event(keepalive_event(self.identity))

    def stop(self) -> None:
        """Stop after tearing down the running attempt."""
        self._stopping = True
        if self._run_task is not None and not self._run_task.done():
            _ = self._run_task.cancel()
