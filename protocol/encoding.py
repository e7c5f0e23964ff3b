"""Frame payload sizing and pixel conversion."""

from protocol.formats import FrameFormat


def frame_size(width: int, height: int, fmt: FrameFormat) -> int:
    """
    Number of payload bytes in one raw frame.
    
    Raises:
        ValueError: If the format is not a raw pixel format
    """
    if not fmt.is_raw:
        raise ValueError(f"{fmt.name} frames have no fixed size")
    return width * height * fmt.bytes_per_pixel


def rgb24_to_rgba32(data: bytes) -> bytes:
    """
    Expand packed RGB24 pixels to RGBA32 with an opaque alpha channel.
    
    Trailing bytes that do not form a whole pixel are dropped.
    """
    pixels = len(data) // 3
    out = bytearray(b'\xff' * (pixels * 4))
    out[0::4] = data[0:pixels * 3:3]
    out[1::4] = data[1:pixels * 3:3]
    out[2::4] = data[2:pixels * 3:3]
    return bytes(out)


def to_rgba32(data: bytes, fmt: FrameFormat) -> bytes:
    """
    Convert a raw payload to RGBA32.
    
    Raises:
        ValueError: For codec formats, which cannot be converted yet
    """
    if fmt == FrameFormat.RGBA32:
        return bytes(data)
    if fmt == FrameFormat.RGB24:
        return rgb24_to_rgba32(data)
    raise ValueError("Codec formats not yet supported")
