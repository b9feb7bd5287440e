"""Turn device event notifications into bus events."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from vto_bridge.const import KEEPALIVE_TOPIC_NAME
from vto_bridge.logging_abstraction import get_logger
from vto_bridge.metrics import record_unclassified_payload
from vto_bridge.structs import DeviceIdentity, DomainEvent

logger = get_logger(__name__)


def translate_events(event_list: Iterable[dict[str, Any]], identity: DeviceIdentity) -> list[DomainEvent]:
    """One DomainEvent per device event, in order, without deduplication.

    Entries without a ``Code`` have no topic to go to; they are logged and
    skipped. Older firmware reports the action as ``eventAction`` instead of
    ``Action``.
    """
    translated: list[DomainEvent] = []
    for event in event_list:
        code = event.get("Code")
        if code is None or code == "":
            record_unclassified_payload()
            logger.warning("events: Skipping event without Code", extra={"event": event})
            continue
        translated.append(
            DomainEvent(
                code=str(code),
                action=event.get("Action", event.get("eventAction")),
                data=event.get("Data"),
                device_type=identity.device_type,
                serial_number=identity.serial_number,
            )
        )
    return translated


def keepalive_event(identity: DeviceIdentity) -> DomainEvent:
    return DomainEvent(
        code=KEEPALIVE_TOPIC_NAME,
        device_type=identity.device_type,
        serial_number=identity.serial_number,
    )
