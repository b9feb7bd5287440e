import os

from vto_bridge import __version__

__all__ = [
    "DEFAULT_KEEPALIVE_INTERVAL",
    "DEFAULT_LOGIN_TIMEOUT",
    "DEFAULT_MQTT_HOST",
    "DEFAULT_MQTT_PORT",
    "DEFAULT_RECONNECT_BASE_DELAY",
    "DEFAULT_RECONNECT_MAX_DELAY",
    "DEFAULT_TOPIC_PREFIX",
    "DHIP_MAGIC",
    "EVENT_NOTIFY_METHOD",
    "FRAME_HEADER_LENGTH",
    "FRAME_PREFIX",
    "HTTP_TIMEOUT",
    "KEEPALIVE_MARGIN_SECONDS",
    "KEEPALIVE_TOPIC_NAME",
    "LOGIN_REQUEST_ID",
    "MAX_FRAME_PAYLOAD",
    "MQTT_BIRTH_MSG",
    "MQTT_LWT_SUFFIX",
    "MQTT_RECONNECT_DELAY",
    "MQTT_WILL_MSG",
    "REQUEST_MAGIC",
    "SUPERVISOR_TASK_NAME",
    "VTO_DEBUG",
    "VTO_LOG_FORMAT",
    "VTO_LOG_HUMAN_OUTPUT",
    "VTO_LOG_JSON_FILE",
    "VTO_PORT",
    "VTO_VERSION",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
VTO_VERSION: str = __version__

# Control channel wire constants
VTO_PORT: int = 5000
FRAME_HEADER_LENGTH: int = 32
FRAME_PREFIX: int = 0x20000000
DHIP_MAGIC: int = 0x44484950  # "DHIP"
MAX_FRAME_PAYLOAD: int = 1024 * 1024
REQUEST_MAGIC: str = "0x1234"
LOGIN_REQUEST_ID: int = 10000
EVENT_NOTIFY_METHOD: str = "client.notifyEventStream"
DEFAULT_KEEPALIVE_INTERVAL: int = 60
# the device drops the connection at exactly keepAliveInterval, so tick a bit early
KEEPALIVE_MARGIN_SECONDS: int = 5
KEEPALIVE_TOPIC_NAME: str = "keepAlive"

SUPERVISOR_TASK_NAME = "VTOSupervisor_RUN"

# Defaults for BridgeSettings, overridable through the environment
DEFAULT_MQTT_HOST: str = "localhost"
DEFAULT_MQTT_PORT: int = 1883
DEFAULT_TOPIC_PREFIX: str = "DahuaVTO"
DEFAULT_LOGIN_TIMEOUT: float = 10.0
DEFAULT_RECONNECT_BASE_DELAY: float = 1.0
DEFAULT_RECONNECT_MAX_DELAY: float = 60.0
HTTP_TIMEOUT: int = 10

MQTT_LWT_SUFFIX: str = "lwt"
MQTT_BIRTH_MSG: bytes = b"online"
MQTT_WILL_MSG: bytes = b"offline"
MQTT_RECONNECT_DELAY: float = 5.0  # minimum gap between reconnects triggered by publish

VTO_DEBUG: bool = os.environ.get("VTO_DEBUG", "0").casefold() in YES_ANSWER

# Logging Configuration
VTO_LOG_FORMAT: str = os.environ.get("VTO_LOG_FORMAT", "human")  # "json", "human", or "both"
VTO_LOG_JSON_FILE: str = os.environ.get("VTO_LOG_JSON_FILE", "/var/log/vto_bridge.json")
VTO_LOG_HUMAN_OUTPUT: str = os.environ.get("VTO_LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or file path
