"""Core data structures for the VTO bridge."""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from vto_bridge.const import (
    DEFAULT_LOGIN_TIMEOUT,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_PORT,
    DEFAULT_RECONNECT_MAX_DELAY,
    DEFAULT_TOPIC_PREFIX,
    KEEPALIVE_TOPIC_NAME,
)

# BridgeSettings field -> environment variable
ENV_FIELDS: dict[str, str] = {
    "vto_host": "DAHUA_VTO_HOST",
    "vto_username": "DAHUA_VTO_USERNAME",
    "vto_password": "DAHUA_VTO_PASSWORD",
    "mqtt_host": "MQTT_BROKER_HOST",
    "mqtt_port": "MQTT_BROKER_PORT",
    "mqtt_username": "MQTT_BROKER_USERNAME",
    "mqtt_password": "MQTT_BROKER_PASSWORD",
    "topic_prefix": "MQTT_BROKER_TOPIC_PREFIX",
    "login_timeout": "VTO_LOGIN_TIMEOUT",
    "reconnect_max_delay": "VTO_RECONNECT_MAX_DELAY",
    "metrics_port": "VTO_METRICS_PORT",
}


class Credentials(BaseModel):
    """Login credentials for the door station."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: str = Field(repr=False)


class DeviceIdentity(BaseModel):
    """Device type and serial number, stamped on every published event."""

    model_config = ConfigDict(frozen=True)

    device_type: str
    serial_number: str


class BridgeSettings(BaseModel):
    """Runtime configuration, read once from the environment at startup."""

    vto_host: str = Field(min_length=1)
    vto_username: str = Field(min_length=1)
    vto_password: str = Field(min_length=1, repr=False)
    mqtt_host: str = DEFAULT_MQTT_HOST
    mqtt_port: int = DEFAULT_MQTT_PORT
    mqtt_username: str | None = None
    mqtt_password: str | None = Field(default=None, repr=False)
    topic_prefix: str = DEFAULT_TOPIC_PREFIX
    login_timeout: float = Field(default=DEFAULT_LOGIN_TIMEOUT, gt=0)
    reconnect_max_delay: float = Field(default=DEFAULT_RECONNECT_MAX_DELAY, gt=0)
    metrics_port: int = 0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BridgeSettings:
        """Build settings from environment variables.

        Empty values count as unset. Raises ``pydantic.ValidationError`` when a
        required value is missing or a value does not parse.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for field_name, env_name in ENV_FIELDS.items():
            value = env.get(env_name)
            if value:
                values[field_name] = value
        return cls(**values)

    @property
    def credentials(self) -> Credentials:
        return Credentials(username=self.vto_username, password=self.vto_password)


class SessionState(StrEnum):
    """Lifecycle states of one control-channel session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_CHALLENGE = "awaiting_challenge"
    AWAITING_LOGIN_RESULT = "awaiting_login_result"
    AUTHENTICATED = "authenticated"
    AUTH_REJECTED = "auth_rejected"
    CLOSING = "closing"
    ERROR = "error"


class DomainEvent(BaseModel):
    """A device event ready to be published on the bus.

    ``action`` and ``data`` are ``None`` only for the synthetic keepAlive
    event, whose payload carries the device identity alone.
    """

    code: str
    action: Any = None
    data: Any = None
    device_type: str
    serial_number: str

    @property
    def topic_name(self) -> str:
        return self.code

    @property
    def is_keepalive(self) -> bool:
        return self.code == KEEPALIVE_TOPIC_NAME

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if not self.is_keepalive:
            payload["Action"] = self.action
            payload["Data"] = self.data
        payload["deviceType"] = self.device_type
        payload["serialNumber"] = self.serial_number
        return payload
