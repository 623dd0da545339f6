"""
Tests for the Upro frame decoder (upro_decoder.decode).

Covers the frame grammar, content splitting, every sub-record decoder, the
acknowledgment reply, session resolution and the coordinate acceptance gate.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from common.models import (
    KEY_CID,
    KEY_LAC,
    KEY_MCC,
    KEY_MNC,
    KEY_OBD,
    KEY_ODOMETER,
    KEY_STATUS,
    DeviceSession,
    Position,
)
from tests.frames import (
    DEVICE_ID,
    DEVICE_UNIQUE_ID,
    EXPECTED_LATITUDE,
    EXPECTED_LONGITUDE,
    FULL_FRAME,
    LOCATION,
    ZERO_LOCATION,
    frame,
    location,
)
from upro_decoder import (
    AcceptanceGateFailed,
    MalformedFrame,
    MalformedSubRecord,
    UnknownDevice,
    UproFrameDecoder,
    build_reply,
    decode,
    decode_frame,
    match_frame,
    split_content,
)
from upro_decoder.decode import (
    SUB_RECORD_DECODERS,
    decode_cell_info,
    decode_location,
    decode_odometer,
    dispatch_sub_record,
    odometer_distance,
    sub_record_decoders,
)


class StubResolver:
    def __init__(self, sessions=None):
        self.sessions = sessions or {}
        self.calls = []

    def get_device_session(self, unique_id, channel, remote_address):
        self.calls.append((unique_id, channel, remote_address))
        return self.sessions.get(unique_id)


@pytest.fixture
def resolver():
    return StubResolver(
        {DEVICE_UNIQUE_ID: DeviceSession(device_id=DEVICE_ID, unique_id=DEVICE_UNIQUE_ID)}
    )


@pytest.fixture
def channel():
    return MagicMock()


@pytest.fixture
def position():
    return Position(device_id=DEVICE_ID)


# --- Frame grammar ---


def test_match_frame_extracts_envelope():
    envelope = match_frame("*AI2010905447674,BA&A123&B01#")
    assert envelope.ack_requested is True
    assert envelope.device_id == "0905447674"
    assert envelope.type == "B"
    assert envelope.subtype == "A"
    assert envelope.content == "&A123&B01"


def test_match_frame_without_terminator_and_ack_clear():
    envelope = match_frame("*HQ2000905447674,BA&B01")
    assert envelope.ack_requested is False
    assert envelope.content == "&B01"


@pytest.mark.parametrize(
    "message",
    [
        "",
        "garbage",
        "*AI2020905447674,BA&B01#",  # ack must be 0 or 1
        "*AI2110905447674,BA&B01#",  # version must be 20
        "*AI201090544X7674,BA&B01#",  # non-numeric device id
        "*AI2010905447674BA&B01#",  # missing separator
        "AI2010905447674,BA&B01#",  # missing marker
        "*AI201,B",  # missing subtype
    ],
)
def test_match_frame_rejects_malformed(message):
    with pytest.raises(MalformedFrame):
        match_frame(message)


def test_split_content_drops_leading_token():
    assert split_content("&A1&B2&&C3") == ["A1", "B2", "", "C3"]
    assert split_content("XY&B2") == ["B2"]
    assert split_content("") == []


# --- Location ---


def test_decode_location_all_flags_set(position):
    decode_location(position, LOCATION)
    assert position.valid is True
    assert position.latitude == pytest.approx(EXPECTED_LATITUDE)
    assert position.longitude == pytest.approx(EXPECTED_LONGITUDE)
    assert position.speed == 32
    assert position.course == 270
    assert position.time == datetime(2016, 10, 12, 20, 3, 6, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "flags, valid, lat_sign, lon_sign",
    [
        (7, True, 1, 1),
        (6, False, 1, 1),
        (5, True, -1, 1),  # north bit clear
        (3, True, 1, -1),  # east bit clear
        (1, True, -1, -1),
        (0, False, -1, -1),
    ],
)
def test_decode_location_flag_bits(position, flags, valid, lat_sign, lon_sign):
    decode_location(position, location(flags=flags))
    assert position.valid is valid
    assert position.latitude == pytest.approx(lat_sign * EXPECTED_LATITUDE)
    assert position.longitude == pytest.approx(lon_sign * EXPECTED_LONGITUDE)


def test_decode_location_speed_and_course(position):
    decode_location(position, location(speed="12", course="09"))
    assert position.speed == 24
    assert position.course == 90


def test_decode_location_century_base(position):
    decode_location(position, LOCATION, century_base=1900)
    assert position.time.year == 1916


@pytest.mark.parametrize(
    "token",
    [
        LOCATION[:-1],  # too short
        LOCATION + "0",  # too long
        LOCATION.replace("4913", "49X3"),  # non-digit
        "A",
    ],
)
def test_decode_location_rejects_bad_layout(position, token):
    with pytest.raises(MalformedSubRecord):
        decode_location(position, token)
    assert position.latitude == 0.0
    assert position.time is None


def test_decode_location_rejects_impossible_date(position):
    with pytest.raises(MalformedSubRecord):
        decode_location(position, location(date="121316"))  # month 13
    assert position.latitude == 0.0
    assert position.longitude == 0.0


# --- Odometer ---


def test_decode_odometer_accumulates_nibbles(position):
    decode_odometer(position, "C12")
    # 1 * 16 + 2 = 18 -> 18 * 2 * 1852 / 3600 = 18.52, truncated
    assert position.attributes[KEY_ODOMETER] == 18
    assert isinstance(position.attributes[KEY_ODOMETER], int)


def test_odometer_distance_truncates():
    assert odometer_distance(18) == 18
    assert odometer_distance(18) != pytest.approx(18.52)
    assert odometer_distance(1) == 1
    assert odometer_distance(0) == 0
    # 900 * 3704 / 3600 is exactly 926
    assert odometer_distance(900) == 926


def test_decode_odometer_exact_value(position):
    decode_odometer(position, "C384")  # 3*256 + 8*16 + 4 = 900
    assert position.attributes[KEY_ODOMETER] == 926


def test_decode_odometer_empty_body_sets_nothing(position):
    decode_odometer(position, "C")
    assert KEY_ODOMETER not in position.attributes


@pytest.mark.parametrize("token", ["C1A", "C05>8=961", "C1 2", "C-1"])
def test_decode_odometer_rejects_non_digits(position, token):
    with pytest.raises(MalformedSubRecord):
        decode_odometer(position, token)
    assert KEY_ODOMETER not in position.attributes


# --- Cell info ---


def test_decode_cell_info(position):
    decode_cell_info(position, "P0010020000100200")
    assert position.attributes[KEY_MCC] == 10
    assert position.attributes[KEY_MNC] == 200
    assert position.attributes[KEY_LAC] == 16
    assert position.attributes[KEY_CID] == 512


def test_decode_cell_info_hex_digits_and_extra_characters(position):
    decode_cell_info(position, "P04320001ABCDffffEXTRA")
    assert position.attributes[KEY_MCC] == 432
    assert position.attributes[KEY_MNC] == 1
    assert position.attributes[KEY_LAC] == 0xABCD
    assert position.attributes[KEY_CID] == 0xFFFF


@pytest.mark.parametrize(
    "token",
    [
        "P",
        "P001002000010020",  # 15 characters
        "P00A0020000100200",  # MCC not decimal
        "P001002000010020G",  # CID not hex
    ],
)
def test_decode_cell_info_rejects_bad_input(position, token):
    with pytest.raises(MalformedSubRecord):
        decode_cell_info(position, token)
    assert position.attributes == {}


# --- Dispatch ---


def test_dispatch_status_and_obd(position):
    assert dispatch_sub_record(position, "B0100000000") is True
    assert dispatch_sub_record(position, "SOBD1234") is True
    assert position.attributes[KEY_STATUS] == "0100000000"
    assert position.attributes[KEY_OBD] == "SOBD1234"


def test_dispatch_ignores_unknown_and_empty_tokens(position):
    assert dispatch_sub_record(position, "Zfoo") is False
    assert dispatch_sub_record(position, "") is False
    assert position.attributes == {}


def test_dispatch_swallows_malformed_sub_record(position):
    assert dispatch_sub_record(position, "P12") is False
    assert position.attributes == {}


def test_sub_record_decoder_tables_are_read_only():
    with pytest.raises(TypeError):
        SUB_RECORD_DECODERS["Z"] = decode_odometer

    table = sub_record_decoders(1900)
    with pytest.raises(TypeError):
        table["A"] = decode_odometer
    assert sub_record_decoders(1900) is table
    assert sub_record_decoders() is SUB_RECORD_DECODERS


def test_dispatch_with_custom_century_base(position):
    assert dispatch_sub_record(position, LOCATION, sub_record_decoders(1900)) is True

    assert position.time.year == 1916


# --- Full frames ---


def test_decode_full_frame(resolver, channel):
    position = decode_frame(FULL_FRAME, resolver, channel, ("10.0.0.1", 5000))

    assert position.protocol == "upro"
    assert position.device_id == DEVICE_ID
    assert position.valid is True
    assert position.latitude == pytest.approx(EXPECTED_LATITUDE)
    assert position.longitude == pytest.approx(EXPECTED_LONGITUDE)
    assert position.attributes == {
        KEY_STATUS: "0100000000",
        KEY_ODOMETER: 18,
        KEY_MCC: 10,
        KEY_MNC: 200,
        KEY_LAC: 16,
        KEY_CID: 512,
        KEY_OBD: "SOBD1234",
    }
    assert resolver.calls == [(DEVICE_UNIQUE_ID, channel, ("10.0.0.1", 5000))]


def test_decode_frame_location_as_last_record_before_terminator(resolver):
    position = decode_frame(frame("B01", LOCATION), resolver)
    assert position.latitude == pytest.approx(EXPECTED_LATITUDE)


def test_decode_frame_sends_single_reply_when_requested(resolver, channel):
    decode_frame(frame(LOCATION, frame_type="X", subtype="Y"), resolver, channel)
    channel.write.assert_called_once_with("*MG20YXY#")


def test_decode_frame_no_reply_without_ack(resolver, channel):
    decode_frame(frame(LOCATION, ack="0"), resolver, channel)
    channel.write.assert_not_called()


def test_decode_frame_ack_without_channel(resolver):
    position = decode_frame(frame(LOCATION), resolver, None)
    assert position.device_id == DEVICE_ID


def test_build_reply():
    assert build_reply("B", "A") == "*MG20YBA#"


def test_unknown_tag_does_not_block_later_records(resolver):
    position = decode_frame(frame("Zfoo", LOCATION, "B0101"), resolver)
    assert position.attributes == {KEY_STATUS: "0101"}


def test_malformed_sub_record_does_not_block_later_records(resolver):
    position = decode_frame(frame("P12", "C1A", LOCATION, "C12"), resolver)
    assert position.attributes == {KEY_ODOMETER: 18}


def test_frame_without_location_fails_gate_but_still_replies(resolver, channel):
    with pytest.raises(AcceptanceGateFailed):
        decode_frame(frame("B0100000000", "C12"), resolver, channel)
    channel.write.assert_called_once_with("*MG20YBA#")


def test_zero_coordinates_fail_gate(resolver):
    with pytest.raises(AcceptanceGateFailed):
        decode_frame(frame(ZERO_LOCATION), resolver)


def test_malformed_location_fails_gate(resolver):
    with pytest.raises(AcceptanceGateFailed):
        decode_frame(frame(LOCATION[:-2]), resolver)


def test_unknown_device(channel):
    with pytest.raises(UnknownDevice) as excinfo:
        decode_frame(FULL_FRAME, StubResolver(), channel)
    assert excinfo.value.unique_id == DEVICE_UNIQUE_ID
    channel.write.assert_not_called()


def test_malformed_frame_does_not_touch_resolver_or_channel(resolver, channel):
    with pytest.raises(MalformedFrame):
        decode_frame("*AI20", resolver, channel)
    assert resolver.calls == []
    channel.write.assert_not_called()


@pytest.mark.parametrize(
    "message",
    ["not a frame", frame("B01"), frame(LOCATION, unique_id="1234")],
)
def test_decode_returns_none_for_failures(resolver, message):
    assert decode(message, resolver) is None


def test_decode_is_deterministic(resolver):
    first = decode(FULL_FRAME, resolver)
    second = decode(FULL_FRAME, resolver)
    assert first is not None
    assert first == second
    assert first is not second


def test_uproframedecoder_binds_century_base(resolver):
    decoder = UproFrameDecoder(resolver, century_base=1900)
    position = decoder.decode(FULL_FRAME)
    assert position.time == datetime(1916, 10, 12, 20, 3, 6, tzinfo=timezone.utc)
    with pytest.raises(AcceptanceGateFailed):
        decoder.decode_frame(frame("B01"))
