"""Publish-only MQTT client for the VTO bridge.

Availability is announced on ``<prefix>/lwt``: ``online`` after connecting,
``offline`` on a clean stop and, through the broker-held will, on an
unclean disconnect.
"""

from __future__ import annotations

import json
import time
import uuid

import aiomqtt

from vto_bridge.const import MQTT_BIRTH_MSG, MQTT_LWT_SUFFIX, MQTT_RECONNECT_DELAY, MQTT_WILL_MSG
from vto_bridge.logging_abstraction import get_logger
from vto_bridge.metrics import record_event_published
from vto_bridge.structs import BridgeSettings, DomainEvent

logger = get_logger(__name__)


class MQTTClient:
    """aiomqtt wrapper publishing device events; never subscribes."""

    lp: str = "mqtt:"
    client: aiomqtt.Client | None = None

    def __init__(self, settings: BridgeSettings) -> None:
        self.broker_host = settings.mqtt_host
        self.broker_port = settings.mqtt_port
        self.broker_username = settings.mqtt_username
        self.broker_password = settings.mqtt_password
        self.topic = settings.topic_prefix.rstrip("/")
        self.broker_client_id = f"vto_bridge_{uuid.uuid4().hex[:12]}"
        self._connected = False
        # set by connect(), cleared by stop()
        self._wanted = False
        self._next_reconnect = 0.0

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def lwt_topic(self) -> str:
        return f"{self.topic}/{MQTT_LWT_SUFFIX}"

    def event_topic(self, name: str) -> str:
        return f"{self.topic}/{name}/Event"

    async def connect(self) -> bool:
        """Connect to the broker and publish the birth message.

        After a successful call the client stays wanted until ``stop()``: a
        dropped broker connection is re-established from ``publish``.

        Returns:
            True on success, False if the broker could not be reached
        """
        lp = f"{self.lp}connect:"
        self._wanted = True
        self._connected = False
        logger.debug("%s Connecting to MQTT broker...", lp, extra={"host": self.broker_host, "port": self.broker_port})
        lwt = aiomqtt.Will(topic=self.lwt_topic, payload=MQTT_WILL_MSG, qos=1, retain=True)
        self.client = aiomqtt.Client(
            hostname=self.broker_host,
            port=self.broker_port,
            username=self.broker_username,
            password=self.broker_password,
            identifier=self.broker_client_id,
            will=lwt,
        )
        try:
            _ = await self.client.__aenter__()
        except aiomqtt.MqttError as mqtt_err_exc:
            # -> [Errno 111] Connection refused
            # [code:134] Bad user name or password
            logger.error("%s Connection failed [MqttError]: %s", lp, mqtt_err_exc)
            if "code:134" in str(mqtt_err_exc):
                logger.error(
                    "%s Bad username or password, check your MQTT credentials (username: %s)",
                    lp,
                    self.broker_username,
                )
            self.client = None
            self._next_reconnect = time.monotonic() + MQTT_RECONNECT_DELAY
            return False

        self._connected = True
        logger.info("%s Connected to MQTT broker", lp, extra={"host": self.broker_host, "port": self.broker_port})
        _ = await self.publish(self.lwt_topic, MQTT_BIRTH_MSG, qos=1, retain=True)
        return self._connected

    async def _reconnect(self) -> bool:
        lp = f"{self.lp}reconnect:"
        if not self._wanted:
            return False
        if time.monotonic() < self._next_reconnect:
            logger.debug("%s Broker still down, next attempt in %.1fs", lp, self._next_reconnect - time.monotonic())
            return False
        logger.info("%s Reconnecting to MQTT broker", lp, extra={"host": self.broker_host})
        return await self.connect()

    async def _drop(self, reason: aiomqtt.MqttError) -> None:
        """Forget a broken broker connection so the next publish reconnects."""
        lp = f"{self.lp}drop:"
        logger.warning("%s Lost MQTT broker connection: %s", lp, reason)
        self._connected = False
        client, self.client = self.client, None
        if client is None:
            return
        try:
            _ = await client.__aexit__(None, None, None)
        except aiomqtt.MqttError as e:
            logger.debug("%s Error while discarding client: %s", lp, e)

    async def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False) -> bool:
        """Best-effort publish; failures are logged and reported as False."""
        lp = f"{self.lp}publish:"
        if (not self._connected or self.client is None) and not await self._reconnect():
            logger.warning("%s Not connected, dropping message for %s", lp, topic)
            return False
        assert self.client is not None, "client must be initialized"
        try:
            await self.client.publish(topic, payload, qos=qos, retain=retain)
        except aiomqtt.MqttError as e:
            logger.warning("%s Publish to %s failed: %s", lp, topic, e)
            await self._drop(e)
            return False
        return True

    async def publish_event(self, event: DomainEvent) -> bool:
        lp = f"{self.lp}event:"
        topic = self.event_topic(event.topic_name)
        message = json.dumps(event.to_payload(), default=str).encode()
        logger.info("%s Publish event %s to MQTT", lp, event.topic_name)
        published = await self.publish(topic, message)
        record_event_published("success" if published else "failed")
        return published

    async def stop(self) -> None:
        """Announce ``offline`` and disconnect. Safe to call when not connected."""
        lp = f"{self.lp}stop:"
        self._wanted = False
        self._next_reconnect = 0.0
        if self.client is None:
            return
        client, self.client = self.client, None
        if self._connected:
            try:
                await client.publish(self.lwt_topic, MQTT_WILL_MSG, qos=1, retain=True)
            except aiomqtt.MqttError as e:
                logger.warning("%s Could not publish offline status: %s", lp, e)
        self._connected = False
        try:
            _ = await client.__aexit__(None, None, None)
        except aiomqtt.MqttError as e:
            logger.warning("%s Error while disconnecting: %s", lp, e)
        logger.debug("%s Disconnected from MQTT broker", lp)
