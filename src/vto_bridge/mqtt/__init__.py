"""MQTT publishing for the VTO bridge."""

from vto_bridge.mqtt.client import MQTTClient

__all__ = ["MQTTClient"]
