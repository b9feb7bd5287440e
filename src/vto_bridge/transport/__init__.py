"""Transport layer - TCP connection, session state machine and reconnect supervisor."""

from vto_bridge.transport.retry_policy import RetryPolicy, TimeoutConfig
from vto_bridge.transport.session import VTOSession
from vto_bridge.transport.socket_abstraction import TCPConnection
from vto_bridge.transport.supervisor import VTOSupervisor

__all__ = [
    "RetryPolicy",
    "TCPConnection",
    "TimeoutConfig",
    "VTOSession",
    "VTOSupervisor",
]
