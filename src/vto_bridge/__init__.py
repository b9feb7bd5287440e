"""Bridge a Dahua VTO door station's control channel to MQTT."""

__version__ = "0.1.0"
