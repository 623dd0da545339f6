"""
upro_decoder
============

Library for decoding Upro GPS tracker text frames into position reports.

This package contains the core decoding logic for the Upro protocol. It matches the
frame envelope, dispatches each tagged sub-record to its decoder, builds the
acknowledgment reply and applies the final coordinate acceptance gate. It keeps no
state between calls.

Functions:
    - decode: Decode a frame, returning a Position or None
    - decode_frame: Decode a frame, raising a DecodeError subclass on failure
    - match_frame: Match the outer frame envelope
    - build_reply: Build the acknowledgment frame
"""

from .decode import (
    DEFAULT_CENTURY_BASE,
    FrameEnvelope,
    ReplyChannel,
    SessionResolver,
    UproFrameDecoder,
    build_reply,
    decode,
    decode_frame,
    match_frame,
    split_content,
)
from .exceptions import (
    AcceptanceGateFailed,
    DecodeError,
    MalformedFrame,
    MalformedSubRecord,
    UnknownDevice,
)

__all__ = [
    "DEFAULT_CENTURY_BASE",
    "FrameEnvelope",
    "ReplyChannel",
    "SessionResolver",
    "UproFrameDecoder",
    "build_reply",
    "decode",
    "decode_frame",
    "match_frame",
    "split_content",
    "AcceptanceGateFailed",
    "DecodeError",
    "MalformedFrame",
    "MalformedSubRecord",
    "UnknownDevice",
]
