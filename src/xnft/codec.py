"""
Wire codec for bridge transfer messages.

Two variants travel over the transport, distinguished by their first byte.
All integers are big-endian; fixed-width fields carry no length prefix::

    SendWhole:  tag(1)=0 | operation_id(32) | recipient(32) | count(1) | asset_id(32) * count
    SendSplit:  tag(1)=1 | operation_id(32) | asset_id(32)  | count(1) | recipient(32) * count
                                                                       | amount(32) * count

The count is a single byte, so a message carries at most 255 elements.
Decoding requires the payload length to match the count exactly; a
truncated or padded payload is never accepted as a shorter message.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Union

from .errors import DecodingError, EncodingError, InvalidMessageType

logger = logging.getLogger("xnft.codec")

MAX_ELEMENTS = 255
WORD = 32
UINT256_MAX = (1 << 256) - 1

_HEADER = struct.Struct(">B32s32sB")  # tag | operation_id | recipient/asset_id | count


class MessageType(IntEnum):
    SEND_WHOLE = 0
    SEND_SPLIT = 1


@dataclass
class SendWhole:
    """Transfer of whole assets to a single recipient."""
    operation_id: bytes
    recipient: bytes
    asset_ids: List[int] = field(default_factory=list)

    message_type = MessageType.SEND_WHOLE


@dataclass
class SendSplit:
    """Transfer of one asset whose backing value is split across recipients."""
    operation_id: bytes
    asset_id: int
    recipients: List[bytes] = field(default_factory=list)
    amounts: List[int] = field(default_factory=list)

    message_type = MessageType.SEND_SPLIT


Message = Union[SendWhole, SendSplit]


# ── Handles ───────────────────────────────────────────────────────────

def address_to_bytes32(address: str) -> bytes:
    """Left-pad a 20-byte ``0x`` address into a 32-byte handle."""
    raw = bytes.fromhex(address.removeprefix("0x"))
    if len(raw) > WORD:
        raise EncodingError(f"Address longer than {WORD} bytes")
    return raw.rjust(WORD, b"\x00")


def bytes32_to_address(handle: bytes) -> str:
    """Take the low 20 bytes of a handle as an address."""
    if len(handle) != WORD:
        raise DecodingError(f"Handle must be {WORD} bytes, got {len(handle)}")
    return "0x" + handle[-20:].hex()


# ── Field helpers ─────────────────────────────────────────────────────

def _word(value: bytes, name: str) -> bytes:
    if not isinstance(value, (bytes, bytearray)) or len(value) != WORD:
        raise EncodingError(f"{name} must be {WORD} bytes")
    return bytes(value)


def _uint(value: int, name: str) -> bytes:
    if not isinstance(value, int) or isinstance(value, bool):
        raise EncodingError(f"{name} must be an integer")
    if not 0 <= value <= UINT256_MAX:
        raise EncodingError(f"{name} {value} out of uint256 range")
    return value.to_bytes(WORD, "big")


def _count(n: int, what: str) -> int:
    if n > MAX_ELEMENTS:
        raise EncodingError(f"Too many {what}: {n} > {MAX_ELEMENTS}")
    return n


def _read_header(payload: bytes, expected: MessageType) -> tuple:
    if len(payload) < 1:
        raise DecodingError("Empty payload")
    if payload[0] != expected:
        raise InvalidMessageType(int(expected), payload[0])
    if len(payload) < _HEADER.size:
        raise DecodingError(
            f"Payload too short: {len(payload)} bytes, header needs {_HEADER.size}"
        )
    return _HEADER.unpack_from(payload, 0)


def _words(payload: bytes, offset: int, count: int) -> List[bytes]:
    return [payload[offset + i * WORD: offset + (i + 1) * WORD] for i in range(count)]


# ── SendWhole ─────────────────────────────────────────────────────────

def encode_whole(msg: SendWhole) -> bytes:
    count = _count(len(msg.asset_ids), "asset ids")
    parts = [_HEADER.pack(
        MessageType.SEND_WHOLE,
        _word(msg.operation_id, "operation_id"),
        _word(msg.recipient, "recipient"),
        count,
    )]
    parts.extend(_uint(a, "asset_id") for a in msg.asset_ids)
    return b"".join(parts)


def decode_whole(payload: bytes) -> SendWhole:
    payload = bytes(payload)
    _, operation_id, recipient, count = _read_header(payload, MessageType.SEND_WHOLE)
    expected = _HEADER.size + count * WORD
    if len(payload) != expected:
        raise DecodingError(
            f"SendWhole length mismatch: count={count} implies {expected} bytes, got {len(payload)}"
        )
    asset_ids = [int.from_bytes(w, "big") for w in _words(payload, _HEADER.size, count)]
    return SendWhole(operation_id=operation_id, recipient=recipient, asset_ids=asset_ids)


# ── SendSplit ─────────────────────────────────────────────────────────

def encode_split(msg: SendSplit) -> bytes:
    if len(msg.recipients) != len(msg.amounts):
        raise EncodingError(
            f"Recipients/amounts length mismatch: {len(msg.recipients)} != {len(msg.amounts)}"
        )
    count = _count(len(msg.recipients), "recipients")
    parts = [_HEADER.pack(
        MessageType.SEND_SPLIT,
        _word(msg.operation_id, "operation_id"),
        _uint(msg.asset_id, "asset_id"),
        count,
    )]
    parts.extend(_word(r, "recipient") for r in msg.recipients)
    parts.extend(_uint(a, "amount") for a in msg.amounts)
    return b"".join(parts)


def decode_split(payload: bytes) -> SendSplit:
    payload = bytes(payload)
    _, operation_id, asset_word, count = _read_header(payload, MessageType.SEND_SPLIT)
    expected = _HEADER.size + count * 2 * WORD
    if len(payload) != expected:
        raise DecodingError(
            f"SendSplit length mismatch: count={count} implies {expected} bytes, got {len(payload)}"
        )
    recipients = _words(payload, _HEADER.size, count)
    amounts = [
        int.from_bytes(w, "big")
        for w in _words(payload, _HEADER.size + count * WORD, count)
    ]
    return SendSplit(
        operation_id=operation_id,
        asset_id=int.from_bytes(asset_word, "big"),
        recipients=recipients,
        amounts=amounts,
    )


# ── Dispatch by tag ───────────────────────────────────────────────────

def message_type(payload: bytes) -> MessageType:
    """Read the tag without decoding the body."""
    if not payload:
        raise DecodingError("Empty payload")
    try:
        return MessageType(payload[0])
    except ValueError:
        raise DecodingError(f"Unknown message tag {payload[0]}") from None


def encode(msg: Message) -> bytes:
    if isinstance(msg, SendWhole):
        return encode_whole(msg)
    if isinstance(msg, SendSplit):
        return encode_split(msg)
    raise EncodingError(f"Unsupported message {type(msg).__name__}")


def decode(payload: bytes) -> Message:
    kind = message_type(payload)
    logger.debug("Decoding %s payload (%d bytes)", kind.name, len(payload))
    if kind == MessageType.SEND_WHOLE:
        return decode_whole(payload)
    return decode_split(payload)
