"""
Shared fixtures for unit tests.

This module provides a scripted in-memory control connection and reusable
objects for testing VTO bridge components.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.helpers.fakes import FakeConnection
from vto_bridge.structs import BridgeSettings, Credentials, DeviceIdentity
from vto_bridge.transport.retry_policy import TimeoutConfig
from vto_bridge.transport.session import VTOSession


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(username="user", password="pass")


@pytest.fixture
def identity() -> DeviceIdentity:
    return DeviceIdentity(device_type="VTO2000A", serial_number="ABC123")


@pytest.fixture
def settings() -> BridgeSettings:
    return BridgeSettings(vto_host="192.168.1.108", vto_username="user", vto_password="pass")


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def make_session(credentials: Credentials):
    """Build a VTOSession wired to a FakeConnection."""

    def _make(connection: FakeConnection, **kwargs: Any) -> VTOSession:
        kwargs.setdefault("timeouts", TimeoutConfig(login_timeout_seconds=1.0))
        session = VTOSession("192.168.1.108", credentials, **kwargs)
        session.connection = connection  # type: ignore[assignment]
        return session

    return _make


@pytest.fixture
def mock_mqtt_client():
    """
    Mock MQTTClient for supervisor tests.
    """
    client = MagicMock()
    client.connect = AsyncMock(return_value=True)
    client.publish_event = AsyncMock(return_value=True)
    client.stop = AsyncMock()
    return client


@pytest.fixture
def mock_device_info(identity: DeviceIdentity):
    client = MagicMock()
    client.fetch_identity = AsyncMock(return_value=identity)
    client.close = AsyncMock()
    return client
