"""Packet header and frame structure definitions."""

from dataclasses import dataclass
from typing import Optional
import struct
import time

from protocol.constants import (
    HEADER_FORMAT,
    HEADER_SIZE,
    MAGIC,
    MAX_HEIGHT,
    MAX_WIDTH,
    VERSION,
)
from protocol.encoding import to_rgba32
from protocol.formats import FrameFormat
from utils.exceptions import InvalidHeaderError, ProtocolMismatchError


@dataclass
class PacketHeader:
    """Fixed-size header that starts every message on the stream."""

    width: int
    height: int
    format: int
    timestamp: int
    size: int
    magic: int = MAGIC
    version: int = VERSION
    reserved: int = 0

    @classmethod
    def create(cls, width: int, height: int, format: int, size: int) -> 'PacketHeader':
        """
        Build a header stamped with the current monotonic time.

        Args:
            width: Frame width in pixels
            height: Frame height in pixels
            format: Pixel format value
            size: Payload length in bytes (0 for a handshake)
        """
        return cls(
            width=width,
            height=height,
            format=int(format),
            timestamp=time.monotonic_ns(),
            size=size,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> 'PacketHeader':
        """
        Parse a header from the first HEADER_SIZE bytes of data.

        Args:
            data: Raw bytes, at least HEADER_SIZE long

        Returns:
            Parsed PacketHeader instance

        Raises:
            InvalidHeaderError: If fewer than HEADER_SIZE bytes are given
            ProtocolMismatchError: If magic or version differ from ours
        """
        if len(data) < HEADER_SIZE:
            raise InvalidHeaderError(
                f"Header too short: {len(data)} bytes, need {HEADER_SIZE}"
            )

        (magic, version, width, height, fmt, reserved,
         timestamp, size) = struct.unpack_from(HEADER_FORMAT, data)

        if magic != MAGIC:
            raise ProtocolMismatchError(f"Invalid magic number: 0x{magic:08x}")
        if version != VERSION:
            raise ProtocolMismatchError(f"Unsupported protocol version: {version}")

        return cls(
            width=width,
            height=height,
            format=fmt,
            timestamp=timestamp,
            size=size,
            magic=magic,
            version=version,
            reserved=reserved,
        )

    def to_bytes(self) -> bytes:
        """
        Serialize header to exactly HEADER_SIZE bytes in network byte order.

        Raises:
            InvalidHeaderError: If a field does not fit its wire width
        """
        try:
            return struct.pack(
                HEADER_FORMAT,
                self.magic,
                self.version,
                self.width,
                self.height,
                int(self.format),
                self.reserved,
                self.timestamp,
                self.size,
            )
        except struct.error as e:
            raise InvalidHeaderError(f"Header field out of range: {e}") from e

    def is_info_packet(self) -> bool:
        """True for the zero-payload handshake."""
        return self.size == 0

    def frame_format(self) -> Optional[FrameFormat]:
        try:
            return FrameFormat(self.format)
        except ValueError:
            return None

    def validate(self) -> None:
        """
        Check the header describes a frame a viewer can display.

        Raises:
            InvalidHeaderError: On bad geometry, unknown format or non-zero reserved field
        """
        if self.width == 0 or self.height == 0:
            raise InvalidHeaderError(f"Invalid dimensions: {self.width}x{self.height}")
        if self.width > MAX_WIDTH or self.height > MAX_HEIGHT:
            raise InvalidHeaderError(f"Dimensions too large: {self.width}x{self.height}")
        if self.frame_format() is None:
            raise InvalidHeaderError(f"Invalid frame format: {self.format}")
        if self.reserved != 0:
            raise InvalidHeaderError(f"Reserved field must be zero, got {self.reserved}")


@dataclass
class FrameData:
    """A received frame: header plus exactly ``header.size`` payload bytes."""

    header: PacketHeader
    payload: bytes

    def __post_init__(self) -> None:
        if len(self.payload) != self.header.size:
            raise InvalidHeaderError(
                f"Data size mismatch: expected {self.header.size}, got {len(self.payload)}"
            )

    def expected_size(self) -> int:
        """Raw payload size implied by the geometry, or the actual size for codecs."""
        fmt = self.header.frame_format()
        if fmt is None or not fmt.is_raw:
            return len(self.payload)
        return self.header.width * self.header.height * fmt.bytes_per_pixel

    def validate(self) -> None:
        self.header.validate()
        if not self.header.is_info_packet() and len(self.payload) != self.expected_size():
            raise InvalidHeaderError(
                f"Invalid data size for format {self.header.format}: "
                f"expected {self.expected_size()}, got {len(self.payload)}"
            )

    def to_rgba32(self) -> bytes:
        """
        Payload converted to RGBA32.

        Raises:
            InvalidHeaderError: If the header names an unknown format
            ValueError: If the payload is codec-compressed
        """
        fmt = self.header.frame_format()
        if fmt is None:
            raise InvalidHeaderError(f"Invalid frame format: {self.header.format}")
        return to_rgba32(self.payload, fmt)

    def serialize(self) -> bytes:
        """Header followed by payload, as sent on the wire."""
        return self.header.to_bytes() + self.payload
