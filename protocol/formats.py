"""Pixel format definitions."""

from enum import IntEnum
from typing import Optional


class FrameFormat(IntEnum):
    """Pixel format carried in the packet header."""
    
    RGBA32 = 0      # 4 bytes per pixel
    RGB24 = 1       # 3 bytes per pixel
    H264 = 2        # Reserved for compressed payloads
    H265 = 3        # Reserved for compressed payloads
    
    @property
    def bytes_per_pixel(self) -> Optional[int]:
        """Bytes per pixel for raw formats, None for codecs."""
        return _BYTES_PER_PIXEL.get(self)
    
    @property
    def is_raw(self) -> bool:
        return self.bytes_per_pixel is not None
    
    @classmethod
    def from_name(cls, name: str) -> 'FrameFormat':
        """
        Look up a format by its name, case-insensitively.
        
        Raises:
            ValueError: If the name is not a known format
        """
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown frame format: {name}") from None


_BYTES_PER_PIXEL = {
    FrameFormat.RGBA32: 4,
    FrameFormat.RGB24: 3,
}
