"""Protocol constants for the frame stream.

These are wire-level constants shared by the server and every viewer;
changing any of them is a protocol version bump.
"""

import struct

# "IPDS"
MAGIC = 0x49504453

VERSION = 1

# Network byte order: magic, version, width, height (u32 each),
# format, reserved (u16 each), timestamp (u64), payload size (u32)
HEADER_FORMAT = '!IIIIHHQI'

HEADER_SIZE = struct.calcsize(HEADER_FORMAT)

# Largest geometry a viewer accepts (8K UHD)
MAX_WIDTH = 7680
MAX_HEIGHT = 4320
