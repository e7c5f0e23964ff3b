"""Shared frame buffer guarded by a single exclusive lock."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional
import asyncio
import time

from protocol.formats import FrameFormat
from protocol.encoding import frame_size
from utils.exceptions import AllocationError
from utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FrameSnapshot:
    """A fully written frame copied out of the store for sending."""

    width: int
    height: int
    format: FrameFormat
    payload: bytes
    written_at: int


class FrameStore:
    """
    Holds the current frame and its geometry.

    The buffer is allocated once, zeroed, and never resized. Writers and
    the broadcaster take the same exclusive lock; the broadcaster copies
    the bytes out and releases the lock before any socket I/O, so every
    viewer sees a frame that was completely written.
    """

    def __init__(self, width: int, height: int, fmt: FrameFormat = FrameFormat.RGBA32):
        """
        Allocate a zeroed buffer for the given geometry.

        Raises:
            AllocationError: If the buffer cannot be allocated
        """
        self._width = width
        self._height = height
        self._format = fmt
        self._capacity = frame_size(width, height, fmt)
        self._lock = asyncio.Lock()
        self._written_at = 0

        try:
            self._buffer: Optional[bytearray] = bytearray(self._capacity)
        except MemoryError as e:
            raise AllocationError(
                f"Failed to allocate {self._capacity} bytes for "
                f"{width}x{height} {fmt.name} frame buffer"
            ) from e

        logger.info(
            f"Allocated {self._capacity} bytes for {width}x{height} "
            f"{fmt.name} frame buffer"
        )

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def format(self) -> FrameFormat:
        return self._format

    @property
    def capacity(self) -> int:
        """Size of the buffer in bytes."""
        return self._capacity

    @property
    def released(self) -> bool:
        return self._buffer is None

    def _require_buffer(self) -> bytearray:
        if self._buffer is None:
            raise RuntimeError("Frame store has been released")
        return self._buffer

    async def write(self, data: bytes) -> int:
        """
        Copy producer bytes into the buffer under the exclusive lock.

        At most ``capacity`` bytes are copied; a larger producer buffer is
        truncated, never resized into. Bytes past a shorter input keep
        their previous content.

        Returns:
            Number of bytes copied
        """
        async with self._lock:
            buffer = self._require_buffer()
            count = min(len(data), self._capacity)
            buffer[:count] = memoryview(data)[:count]
            self._written_at = time.monotonic_ns()
            return count

    @asynccontextmanager
    async def writer(self) -> AsyncIterator[memoryview]:
        """
        Grant scoped exclusive write access to the buffer.

        Usage:
            async with store.writer() as view:
                view[0:4] = b'\\xff\\x00\\x00\\xff'

        The view must not be kept after the block exits.
        """
        async with self._lock:
            view = memoryview(self._require_buffer())
            try:
                yield view
            finally:
                view.release()
            self._written_at = time.monotonic_ns()

    async def snapshot(self) -> FrameSnapshot:
        """Copy out the current frame and its metadata."""
        async with self._lock:
            buffer = self._require_buffer()
            return FrameSnapshot(
                width=self._width,
                height=self._height,
                format=self._format,
                payload=bytes(buffer),
                written_at=self._written_at,
            )

    async def release(self) -> None:
        """Free the buffer; any later access raises RuntimeError."""
        async with self._lock:
            if self._buffer is not None:
                self._buffer = None
                logger.debug("Frame buffer released")
