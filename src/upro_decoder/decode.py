"""
upro_decoder.decode

Core decoding logic for Upro text frames, turning one frame into a Position.

Frame layout:
    *<tag:2>20<ack:0|1><device id>,<type><subtype><content>[#]

The content is a list of '&'-separated sub-records, each prefixed by a one character
tag. Token 0 (everything before the first '&') carries no tag and is ignored.

Functions:
    - match_frame: Matches the outer envelope and returns a FrameEnvelope
    - split_content: Splits the content body into tagged sub-records
    - decode_location / decode_status / decode_odometer / decode_cell_info / decode_obd:
      Per-tag sub-record decoders that update a Position in place
    - dispatch_sub_record: Routes one sub-record to its decoder by tag
    - build_reply: Builds the acknowledgment frame for a (type, subtype) pair
    - decode_frame: Full decode, raising a DecodeError subclass on frame-level failures
    - decode: Same as decode_frame but returns None instead of raising

Notes:
    - Decoding is stateless; a fresh Position is built for every frame.
    - A MalformedSubRecord only drops the offending sub-record.
    - The acceptance gate (non-zero latitude and longitude) is the only accept/reject point.
"""

import functools
import logging
import re
from types import MappingProxyType
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, NamedTuple, Optional, Protocol

from common.models import (
    KEY_CID,
    KEY_LAC,
    KEY_MCC,
    KEY_MNC,
    KEY_OBD,
    KEY_ODOMETER,
    KEY_STATUS,
    PROTOCOL_NAME,
    DeviceSession,
    Position,
)

from .exceptions import (
    AcceptanceGateFailed,
    DecodeError,
    MalformedFrame,
    MalformedSubRecord,
    UnknownDevice,
)

logger = logging.getLogger(__name__)

# Two-digit years on the wire are added to this base (YY=16 -> 2016).
DEFAULT_CENTURY_BASE = 2000

SUB_RECORD_DELIMITER = "&"
FRAME_DELIMITER = "#"
REPLY_PREFIX = "*MG20Y"

FRAME_PATTERN = re.compile(
    r"\*"
    r"..20"  # protocol tag + fixed version
    r"([01])"  # ack
    r"([0-9]+),"  # device id
    r"(.)"  # type
    r"(.)"  # subtype
    r"(.*?)"  # content
    r"#?",  # delimiter
    re.ASCII,
)

LOCATION_PATTERN = re.compile(
    r"A"
    r"([0-9]{2})([0-9]{2})([0-9]{2})"  # time
    r"([0-9]{2})([0-9]{2})([0-9]{4})"  # latitude
    r"([0-9]{3})([0-9]{2})([0-9]{4})"  # longitude
    r"([0-9])"  # flags
    r"([0-9]{2})"  # speed
    r"([0-9]{2})"  # course
    r"([0-9]{2})([0-9]{2})([0-9]{2})",  # date (day, month, year)
    re.ASCII,
)

CELL_INFO_PATTERN = re.compile(
    r"([0-9]{4})([0-9]{4})([0-9A-Fa-f]{4})([0-9A-Fa-f]{4})",
    re.ASCII,
)
CELL_INFO_LENGTH = 16

ODOMETER_DIGITS = frozenset("0123456789")

# Location flag bits
FLAG_VALID = 0
FLAG_NORTH = 1
FLAG_EAST = 2


class FrameEnvelope(NamedTuple):
    ack_requested: bool
    device_id: str
    type: str
    subtype: str
    content: str


class ReplyChannel(Protocol):
    def write(self, message: str) -> None: ...


class SessionResolver(Protocol):
    def get_device_session(
        self, unique_id: str, channel: Optional[Any], remote_address: Optional[Any]
    ) -> Optional[DeviceSession]: ...


SubRecordDecoder = Callable[[Position, str], None]


def check_bit(value: int, index: int) -> bool:
    return (value >> index) & 1 == 1


def match_frame(message: str) -> FrameEnvelope:
    """
    Match the outer frame grammar.

    Raises:
        MalformedFrame: If the message does not match.
    """
    match = FRAME_PATTERN.fullmatch(message)
    if match is None:
        raise MalformedFrame(f"Frame does not match Upro grammar: {message!r}")
    ack, device_id, frame_type, subtype, content = match.groups()
    return FrameEnvelope(ack == "1", device_id, frame_type, subtype, content)


def split_content(content: str) -> List[str]:
    """Split the content body on '&', dropping the untagged leading token."""
    return content.split(SUB_RECORD_DELIMITER)[1:]


def parse_coordinate(degrees: str, minutes: str, fraction: str) -> float:
    """Degrees plus decimal minutes (DDMM.MMMM / DDDMM.MMMM), magnitude only."""
    return int(degrees) + float(f"{minutes}.{fraction}") / 60


def decode_location(
    position: Position, token: str, century_base: int = DEFAULT_CENTURY_BASE
) -> None:
    match = LOCATION_PATTERN.fullmatch(token)
    if match is None:
        raise MalformedSubRecord("A", "unexpected location layout", token)

    (
        hour,
        minute,
        second,
        lat_deg,
        lat_min,
        lat_frac,
        lon_deg,
        lon_min,
        lon_frac,
        flags,
        speed,
        course,
        day,
        month,
        year,
    ) = match.groups()

    try:
        fix_time = datetime(
            century_base + int(year),
            int(month),
            int(day),
            int(hour),
            int(minute),
            int(second),
            tzinfo=timezone.utc,
        )
    except ValueError as e:
        raise MalformedSubRecord("A", f"invalid date/time: {e}", token) from e

    latitude = parse_coordinate(lat_deg, lat_min, lat_frac)
    longitude = parse_coordinate(lon_deg, lon_min, lon_frac)

    flag_bits = int(flags)
    if not check_bit(flag_bits, FLAG_NORTH):
        latitude = -latitude
    if not check_bit(flag_bits, FLAG_EAST):
        longitude = -longitude

    position.valid = check_bit(flag_bits, FLAG_VALID)
    position.latitude = latitude
    position.longitude = longitude
    position.speed = int(speed) * 2
    position.course = int(course) * 10
    position.time = fix_time


def decode_status(position: Position, token: str) -> None:
    position.set(KEY_STATUS, token[1:])


def odometer_distance(value: int) -> int:
    """Convert the accumulated odometer value to distance, truncating toward zero."""
    return value * 2 * 1852 // 3600


def decode_odometer(position: Position, token: str) -> None:
    body = token[1:]
    if not body:
        return

    value = 0
    for char in body:
        if char not in ODOMETER_DIGITS:
            raise MalformedSubRecord("C", f"non-digit character {char!r} in odometer", token)
        value = value * 16 + (ord(char) - ord("0"))

    position.set(KEY_ODOMETER, odometer_distance(value))


def decode_cell_info(position: Position, token: str) -> None:
    body = token[1:]
    if len(body) < CELL_INFO_LENGTH:
        raise MalformedSubRecord(
            "P", f"expected {CELL_INFO_LENGTH} characters, got {len(body)}", token
        )

    match = CELL_INFO_PATTERN.fullmatch(body[:CELL_INFO_LENGTH])
    if match is None:
        raise MalformedSubRecord("P", "invalid MCC/MNC/LAC/CID digits", token)

    mcc, mnc, lac, cid = match.groups()
    position.set(KEY_MCC, int(mcc))
    position.set(KEY_MNC, int(mnc))
    position.set(KEY_LAC, int(lac, 16))
    position.set(KEY_CID, int(cid, 16))


def decode_obd(position: Position, token: str) -> None:
    position.set(KEY_OBD, token)


SUB_RECORD_DECODERS: Mapping[str, SubRecordDecoder] = MappingProxyType(
    {
        "A": decode_location,
        "B": decode_status,
        "C": decode_odometer,
        "P": decode_cell_info,
        "S": decode_obd,
    }
)


@functools.lru_cache(maxsize=8)
def sub_record_decoders(
    century_base: int = DEFAULT_CENTURY_BASE,
) -> Mapping[str, SubRecordDecoder]:
    """
    Return the read-only tag -> decoder table with the location decoder bound to
    century_base. Tables are cached and shared between callers.
    """
    if century_base == DEFAULT_CENTURY_BASE:
        return SUB_RECORD_DECODERS
    decoders = dict(SUB_RECORD_DECODERS)
    decoders["A"] = functools.partial(decode_location, century_base=century_base)
    return MappingProxyType(decoders)


def dispatch_sub_record(
    position: Position, token: str, decoders: Optional[Mapping[str, SubRecordDecoder]] = None
) -> bool:
    """
    Decode one sub-record into position.

    Returns:
        True if a decoder ran successfully, False if the token was skipped or malformed.
    """
    if not token:
        return False
    decoders = SUB_RECORD_DECODERS if decoders is None else decoders
    decoder = decoders.get(token[0])
    if decoder is None:
        logger.debug(f"Ignoring sub-record with unknown tag '{token[0]}'")
        return False
    try:
        decoder(position, token)
    except MalformedSubRecord as e:
        logger.warning(f"{e} (token: {token!r})")
        return False
    return True


def build_reply(frame_type: str, subtype: str) -> str:
    return f"{REPLY_PREFIX}{frame_type}{subtype}{FRAME_DELIMITER}"


def decode_frame(
    message: str,
    resolver: SessionResolver,
    channel: Optional[ReplyChannel] = None,
    remote_address: Optional[Any] = None,
    century_base: int = DEFAULT_CENTURY_BASE,
) -> Position:
    """
    Decode one Upro frame into a Position.

    Args:
        message: One text frame, with or without its trailing '#'.
        resolver: Maps the wire device identifier to a DeviceSession.
        channel: Optional reply channel; receives the ack frame if the device asked for one.
        remote_address: Peer address, passed through to the resolver.
        century_base: Added to the two-digit year of the location date.

    Raises:
        MalformedFrame: The envelope did not match.
        UnknownDevice: The resolver returned no session.
        AcceptanceGateFailed: No non-zero coordinates were decoded.

    Returns:
        Position: The decoded position.
    """
    envelope = match_frame(message)

    session = resolver.get_device_session(envelope.device_id, channel, remote_address)
    if session is None:
        raise UnknownDevice(envelope.device_id)

    if envelope.ack_requested and channel is not None:
        channel.write(build_reply(envelope.type, envelope.subtype))

    position = Position(protocol=PROTOCOL_NAME, device_id=session.device_id)

    decoders = sub_record_decoders(century_base)
    for token in split_content(envelope.content):
        dispatch_sub_record(position, token, decoders)

    if not position.has_coordinates():
        raise AcceptanceGateFailed(
            f"No coordinates in frame type '{envelope.type}{envelope.subtype}' "
            f"from device {envelope.device_id}"
        )

    return position


def decode(
    message: str,
    resolver: SessionResolver,
    channel: Optional[ReplyChannel] = None,
    remote_address: Optional[Any] = None,
    century_base: int = DEFAULT_CENTURY_BASE,
) -> Optional[Position]:
    """Decode one frame, returning None for any frame that yields no position."""
    try:
        return decode_frame(message, resolver, channel, remote_address, century_base)
    except AcceptanceGateFailed as e:
        logger.debug(str(e))
    except DecodeError as e:
        logger.warning(str(e))
    return None


class UproFrameDecoder:
    """
    Binds a session resolver and date convention for repeated decoding.

    Holds no per-frame state; one instance can be shared by all connections.
    """

    def __init__(self, resolver: SessionResolver, century_base: int = DEFAULT_CENTURY_BASE):
        self.resolver = resolver
        self.century_base = century_base

    def decode_frame(
        self,
        message: str,
        channel: Optional[ReplyChannel] = None,
        remote_address: Optional[Any] = None,
    ) -> Position:
        return decode_frame(message, self.resolver, channel, remote_address, self.century_base)

    def decode(
        self,
        message: str,
        channel: Optional[ReplyChannel] = None,
        remote_address: Optional[Any] = None,
    ) -> Optional[Position]:
        return decode(message, self.resolver, channel, remote_address, self.century_base)
