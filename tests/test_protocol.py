"""Tests for the packet header codec and frame helpers."""

import struct

import pytest

from protocol.constants import HEADER_SIZE, MAGIC, VERSION
from protocol.encoding import frame_size, rgb24_to_rgba32, to_rgba32
from protocol.formats import FrameFormat
from protocol.messages import FrameData, PacketHeader
from utils.exceptions import InvalidHeaderError, ProtocolMismatchError


def test_header_is_32_bytes():
    header = PacketHeader.create(1920, 1080, FrameFormat.RGBA32, 1024)
    assert HEADER_SIZE == 32
    assert len(header.to_bytes()) == 32


@pytest.mark.parametrize("width,height,fmt,timestamp,size", [
    (1920, 1080, 0, 123456789, 8294400),
    (640, 480, 1, 0, 0),
    (7680, 4320, 3, 2**64 - 1, 2**32 - 1),
    (1, 1, 2, 42, 1),
])
def test_header_round_trip(width, height, fmt, timestamp, size):
    header = PacketHeader(width=width, height=height, format=fmt,
                          timestamp=timestamp, size=size)

    parsed = PacketHeader.from_bytes(header.to_bytes())

    assert parsed == header


def test_header_fields_are_big_endian():
    header = PacketHeader(width=0x01020304, height=0x0A0B0C0D, format=1,
                          timestamp=0x1122334455667788, size=0xCAFEBABE)

    data = header.to_bytes()

    assert data[0:4] == b'IPDS'
    assert data[4:8] == b'\x00\x00\x00\x01'
    assert data[8:12] == b'\x01\x02\x03\x04'
    assert data[12:16] == b'\x0a\x0b\x0c\x0d'
    assert data[16:18] == b'\x00\x01'
    assert data[18:20] == b'\x00\x00'
    assert data[20:28] == b'\x11\x22\x33\x44\x55\x66\x77\x88'
    assert data[28:32] == b'\xca\xfe\xba\xbe'


def test_handshake_header_has_zero_size():
    header = PacketHeader.create(1920, 1080, FrameFormat.RGBA32, 0)
    parsed = PacketHeader.from_bytes(header.to_bytes())
    assert parsed.is_info_packet()
    assert parsed.size == 0


@pytest.mark.parametrize("length", [0, 1, 31])
def test_decode_short_buffer_is_invalid(length):
    data = PacketHeader.create(640, 480, 0, 0).to_bytes()[:length]
    with pytest.raises(InvalidHeaderError):
        PacketHeader.from_bytes(data)


def test_decode_wrong_magic_is_mismatch():
    data = bytearray(PacketHeader.create(640, 480, 0, 10).to_bytes())
    data[0:4] = struct.pack('!I', 0xDEADBEEF)

    with pytest.raises(ProtocolMismatchError, match="magic"):
        PacketHeader.from_bytes(bytes(data))


def test_decode_wrong_version_is_mismatch():
    data = bytearray(PacketHeader.create(640, 480, 0, 10).to_bytes())
    data[4:8] = struct.pack('!I', VERSION + 1)

    with pytest.raises(ProtocolMismatchError, match="version"):
        PacketHeader.from_bytes(bytes(data))


def test_decode_ignores_trailing_payload():
    header = PacketHeader.create(640, 480, 0, 4)
    parsed = PacketHeader.from_bytes(header.to_bytes() + b'abcd')
    assert parsed == header


def test_encode_rejects_out_of_range_field():
    header = PacketHeader(width=2**32, height=1, format=0, timestamp=0, size=0)
    with pytest.raises(InvalidHeaderError):
        header.to_bytes()


def test_create_stamps_non_decreasing_timestamps():
    first = PacketHeader.create(640, 480, 0, 0)
    second = PacketHeader.create(640, 480, 0, 0)
    assert first.magic == MAGIC
    assert second.timestamp >= first.timestamp


@pytest.mark.parametrize("kwargs,message", [
    (dict(width=0, height=480), "Invalid dimensions"),
    (dict(width=7681, height=480), "too large"),
    (dict(width=640, height=4321), "too large"),
    (dict(width=640, height=480, format=9), "format"),
    (dict(width=640, height=480, reserved=1), "Reserved"),
])
def test_validate_rejects_bad_headers(kwargs, message):
    fields = dict(format=0, timestamp=0, size=0)
    fields.update(kwargs)
    header = PacketHeader(**fields)

    with pytest.raises(InvalidHeaderError, match=message):
        header.validate()


def test_scenario_full_hd_packet_size():
    payload = frame_size(1920, 1080, FrameFormat.RGBA32)
    assert payload == 8_294_400
    assert HEADER_SIZE + payload == 8_294_432


def test_frame_size_rejects_codec_formats():
    with pytest.raises(ValueError):
        frame_size(1920, 1080, FrameFormat.H264)


def test_frame_data_requires_matching_size():
    header = PacketHeader.create(2, 2, FrameFormat.RGBA32, 16)
    with pytest.raises(InvalidHeaderError, match="mismatch"):
        FrameData(header=header, payload=b'\x00' * 15)


def test_frame_data_validates_raw_size():
    header = PacketHeader.create(2, 2, FrameFormat.RGB24, 16)
    frame = FrameData(header=header, payload=b'\x00' * 16)

    assert frame.expected_size() == 12
    with pytest.raises(InvalidHeaderError, match="Invalid data size"):
        frame.validate()


def test_frame_data_serialize():
    header = PacketHeader.create(2, 2, FrameFormat.RGBA32, 16)
    frame = FrameData(header=header, payload=bytes(range(16)))

    data = frame.serialize()

    assert len(data) == HEADER_SIZE + 16
    assert PacketHeader.from_bytes(data) == header
    assert data[HEADER_SIZE:] == bytes(range(16))


def test_rgb24_to_rgba32():
    data = bytes([255, 0, 0, 0, 255, 0, 0, 0, 255, 255, 255, 255])

    rgba = rgb24_to_rgba32(data)

    assert len(rgba) == 16
    assert rgba[0:4] == bytes([255, 0, 0, 255])
    assert rgba[4:8] == bytes([0, 255, 0, 255])
    assert rgba[8:12] == bytes([0, 0, 255, 255])
    assert rgba[12:16] == bytes([255, 255, 255, 255])


def test_to_rgba32_passthrough_and_codecs():
    assert to_rgba32(b'\x01\x02\x03\x04', FrameFormat.RGBA32) == b'\x01\x02\x03\x04'
    with pytest.raises(ValueError):
        to_rgba32(b'', FrameFormat.H265)


def test_frame_format_lookup():
    assert FrameFormat.from_name(" rgb24 ") is FrameFormat.RGB24
    assert FrameFormat.RGBA32.bytes_per_pixel == 4
    assert FrameFormat.RGB24.bytes_per_pixel == 3
    assert not FrameFormat.H264.is_raw
    with pytest.raises(ValueError):
        FrameFormat.from_name("YUV420")
