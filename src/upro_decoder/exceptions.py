"""
upro_decoder.exceptions

Error kinds raised while decoding Upro frames.

Frame-level errors (MalformedFrame, UnknownDevice, AcceptanceGateFailed) abort
the frame and produce no Position. MalformedSubRecord only affects the single
sub-record that failed; decode_frame catches it and keeps going.
"""

from typing import Optional


class DecodeError(Exception):
    """Base class for all decoder errors."""


class MalformedFrame(DecodeError):
    """The message does not match the outer frame grammar."""


class UnknownDevice(DecodeError):
    """The session resolver has no device for the identifier in the frame."""

    def __init__(self, unique_id: str):
        super().__init__(f"Unknown device '{unique_id}'")
        self.unique_id = unique_id


class MalformedSubRecord(DecodeError):
    """A tagged sub-record failed its layout check."""

    def __init__(self, tag: str, message: str, token: Optional[str] = None):
        super().__init__(f"Malformed '{tag}' sub-record: {message}")
        self.tag = tag
        self.token = token


class AcceptanceGateFailed(DecodeError):
    """The decoded position has no usable (non-zero) coordinates."""
