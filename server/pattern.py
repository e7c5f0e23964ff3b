"""In-process frame source drawing a scrolling colour gradient."""

from typing import Optional
import asyncio

from protocol.formats import FrameFormat
from server.broadcaster import Broadcaster
from server.frame_store import FrameStore
from utils.logging import get_logger

logger = get_logger(__name__)


def gradient_row(width: int, fmt: FrameFormat) -> bytes:
    """One row of a horizontal red-to-green gradient in the given format."""
    row = bytearray()
    span = max(width - 1, 1)
    for x in range(width):
        value = x * 255 // span
        pixel = (value, 255 - value, 128, 255)
        row.extend(pixel[:fmt.bytes_per_pixel])
    return bytes(row)


class PatternSource:
    """
    Writes a gradient that scrolls one column per frame into the store
    and signals the broadcaster after each write.
    """

    def __init__(self, store: FrameStore, broadcaster: Broadcaster, fps: int = 30):
        self._store = store
        self._broadcaster = broadcaster
        self._interval = 1.0 / fps
        self._row = gradient_row(store.width, store.format)
        self._task: Optional[asyncio.Task] = None
        self.frames = 0

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self.run(), name="pattern-source")
        logger.info(f"Test pattern started at {1.0 / self._interval:.0f} fps")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Test pattern stopped after {self.frames} frames")

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        next_frame = loop.time()

        while True:
            await self.render(self.frames)
            self._broadcaster.signal()
            self.frames += 1

            next_frame += self._interval
            delay = next_frame - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            else:
                # Running behind; skip ahead instead of bursting
                next_frame = loop.time()
                await asyncio.sleep(0)

    async def render(self, index: int) -> None:
        """Draw frame number ``index`` into the store."""
        bpp = self._store.format.bytes_per_pixel
        shift = (index % self._store.width) * bpp
        row = self._row[shift:] + self._row[:shift]

        async with self._store.writer() as view:
            view[:] = row * self._store.height
