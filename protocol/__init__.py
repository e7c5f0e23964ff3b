"""Protocol module: packet header codec, pixel formats and constants."""

from protocol.constants import MAGIC, VERSION, HEADER_FORMAT, HEADER_SIZE
from protocol.formats import FrameFormat
from protocol.encoding import frame_size, rgb24_to_rgba32, to_rgba32
from protocol.messages import PacketHeader, FrameData

__all__ = [
    'MAGIC',
    'VERSION',
    'HEADER_FORMAT',
    'HEADER_SIZE',
    'FrameFormat',
    'frame_size',
    'rgb24_to_rgba32',
    'to_rgba32',
    'PacketHeader',
    'FrameData',
]
