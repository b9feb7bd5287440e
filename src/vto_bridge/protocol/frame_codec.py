"""DHIP frame encoding, decoding and TCP stream framing.

Every message on the control channel is a 32-byte header followed by a
compact JSON payload:

    offset  width  encoding  value
    0       4      BE uint   0x20000000
    4       4      BE uint   0x44484950 ("DHIP")
    8       8      BE double 0
    16      4      LE uint   payload byte length
    20      4      LE uint   0
    24      4      LE uint   payload byte length (repeated)
    28      4      LE uint   0
"""

from __future__ import annotations

import json
import struct
from collections.abc import Mapping
from typing import Any

from vto_bridge.const import DHIP_MAGIC, FRAME_HEADER_LENGTH, FRAME_PREFIX, MAX_FRAME_PAYLOAD
from vto_bridge.logging_abstraction import get_logger
from vto_bridge.protocol.commands import Command
from vto_bridge.protocol.exceptions import MalformedFrame

logger = get_logger(__name__)

_BE_HEAD = struct.Struct(">IId")
_LE_LENGTHS = struct.Struct("<IIII")
_LENGTH_FIELD = struct.Struct("<I")
_LENGTH_OFFSET = 16


def encode_frame(command: Command | Mapping[str, Any]) -> bytes:
    """Serialize a command to compact JSON and prepend the DHIP header.

    Both length fields carry the UTF-8 byte length of the payload, which
    differs from the character count once non-ASCII text is involved.
    """
    message = command.to_dict() if isinstance(command, Command) else dict(command)
    payload = json.dumps(message, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    header = _BE_HEAD.pack(FRAME_PREFIX, DHIP_MAGIC, 0.0) + _LE_LENGTHS.pack(len(payload), 0, len(payload), 0)
    return header + payload


def decode_frame(data: bytes) -> dict[str, Any]:
    """Discard the header and parse the payload as a JSON object.

    The header constants are not validated.

    Raises:
        MalformedFrame: too short, not UTF-8, not JSON, or not a JSON object
    """
    if len(data) < FRAME_HEADER_LENGTH:
        raise MalformedFrame("too_short", data)
    body = data[FRAME_HEADER_LENGTH:]
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedFrame("invalid_utf8", body) from e
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedFrame("invalid_json", body) from e
    if not isinstance(payload, dict):
        raise MalformedFrame("not_an_object", body)
    return payload


class FrameAssembler:
    r"""Extract complete frames from the TCP byte stream.

    Reads may split one frame across several chunks or carry several frames
    in one chunk. Bytes are buffered until the payload length declared at
    header offset 16 is available, then the whole frame (header included) is
    handed out.

    A declared length above ``MAX_FRAME_PAYLOAD`` means the stream is out of
    sync; there is no marker to resynchronise on, so the buffer is dropped
    and :class:`MalformedFrame` is raised to force a reconnect.

    Example:
        assembler = FrameAssembler()
        frames = assembler.feed(first_half)
        assert frames == []
        frames = assembler.feed(second_half)
        assert len(frames) == 1

    """

    def __init__(self, max_payload: int = MAX_FRAME_PAYLOAD) -> None:
        self.max_payload = max_payload
        self.buffer: bytearray = bytearray()

    def feed(self, data: bytes) -> list[bytes]:
        """Add data to the buffer and return every frame now complete."""
        self.buffer.extend(data)
        frames: list[bytes] = []
        while len(self.buffer) >= FRAME_HEADER_LENGTH:
            (payload_length,) = _LENGTH_FIELD.unpack_from(self.buffer, _LENGTH_OFFSET)
            if payload_length > self.max_payload:
                logger.error(
                    "Declared frame length %d exceeds maximum %d, dropping buffer",
                    payload_length,
                    self.max_payload,
                    extra={"buffer_size": len(self.buffer)},
                )
                preview = bytes(self.buffer[:FRAME_HEADER_LENGTH])
                self.buffer.clear()
                raise MalformedFrame("frame_too_large", preview)
            total_length = FRAME_HEADER_LENGTH + payload_length
            if len(self.buffer) < total_length:
                break
            frames.append(bytes(self.buffer[:total_length]))
            del self.buffer[:total_length]
        return frames

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet part of a complete frame."""
        return len(self.buffer)

    def reset(self) -> None:
        self.buffer.clear()
