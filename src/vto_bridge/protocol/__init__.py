"""DHIP control-channel protocol - framing, login digest, commands and replies.

Public API:
- Frame codec (encode_frame, decode_frame, FrameAssembler)
- Login digest (derive_login_digest)
- Command builders (initial_login, digest_login, attach_events, keep_alive)
- Inbound message kinds and classify_steady_state
- Error taxonomy rooted at VTOBridgeError
"""

from vto_bridge.protocol.commands import Command, attach_events, digest_login, initial_login, keep_alive
from vto_bridge.protocol.digest import derive_login_digest
from vto_bridge.protocol.exceptions import (
    AuthenticationRejected,
    DeviceInfoError,
    MalformedFrame,
    TransportError,
    UnclassifiedPayload,
    VTOBridgeError,
)
from vto_bridge.protocol.frame_codec import FrameAssembler, decode_frame, encode_frame
from vto_bridge.protocol.messages import (
    EventNotification,
    GenericResult,
    InboundMessage,
    KeepAliveAck,
    LoginChallenge,
    LoginResult,
    Unclassified,
    classify_steady_state,
)

__all__ = [
    # Codec
    "FrameAssembler",
    "decode_frame",
    "encode_frame",
    # Digest
    "derive_login_digest",
    # Commands
    "Command",
    "attach_events",
    "digest_login",
    "initial_login",
    "keep_alive",
    # Inbound messages
    "EventNotification",
    "GenericResult",
    "InboundMessage",
    "KeepAliveAck",
    "LoginChallenge",
    "LoginResult",
    "Unclassified",
    "classify_steady_state",
    # Errors
    "AuthenticationRejected",
    "DeviceInfoError",
    "MalformedFrame",
    "TransportError",
    "UnclassifiedPayload",
    "VTOBridgeError",
]
