"""Coalescing frame broadcaster."""

from enum import Enum
from typing import Optional
import asyncio

from protocol.messages import PacketHeader
from server.context import DisplayContext
from server.registry import Client
from utils.logging import get_logger

logger = get_logger(__name__)


class BroadcastState(Enum):
    IDLE = "idle"
    SENDING = "sending"


class Broadcaster:
    """
    Pushes the current frame to every active viewer on update signals.

    A single worker task runs send passes one at a time. Signals that
    arrive while a pass is running collapse into one pending flag, so a
    burst of updates costs at most one extra pass; that pass reads the
    store afresh and therefore carries the newest frame.
    """

    def __init__(self, context: DisplayContext):
        """
        Args:
            context: Shared store and registry of the server
        """
        self._ctx = context
        self._state = BroadcastState.IDLE
        self._pending = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._enabled = True
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.passes = 0
        self.frames_sent = 0

    @property
    def state(self) -> BroadcastState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def pending(self) -> bool:
        """True if a pass has been requested but not started yet."""
        return self._pending.is_set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the worker task on the running loop."""
        if self.running:
            logger.warning("Broadcaster is already running")
            return
        self._loop = asyncio.get_running_loop()
        self._task = asyncio.create_task(self._worker(), name="broadcaster")
        logger.info("Broadcaster started")

    async def stop(self) -> None:
        """Drop any queued request and cancel the worker, including a pass in flight."""
        self._enabled = False
        self._pending.clear()

        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._state = BroadcastState.IDLE
        self._idle.set()
        logger.info(
            f"Broadcaster stopped after {self.passes} passes, "
            f"{self.frames_sent} frames delivered"
        )

    def enable(self) -> None:
        self._enabled = True
        logger.info("Streaming enabled")

    def disable(self) -> None:
        """Pause streaming; queued and future signals are dropped until enabled."""
        self._enabled = False
        self._pending.clear()
        if self._state is BroadcastState.IDLE:
            self._idle.set()
        logger.info("Streaming disabled")

    def signal(self) -> bool:
        """
        Request a send pass. Must be called on the broadcaster's loop.

        Returns:
            True if a new pass was queued, False if the request was
            coalesced into one already pending or streaming is off
        """
        if not self._enabled or not self.running:
            return False
        if self._pending.is_set():
            return False
        self._pending.set()
        self._idle.clear()
        return True

    def signal_threadsafe(self) -> None:
        """Request a send pass from a thread other than the loop's."""
        if self._loop is None:
            raise RuntimeError("Broadcaster has not been started")
        self._loop.call_soon_threadsafe(self.signal)

    async def wait_idle(self) -> None:
        """Wait until no pass is running or pending."""
        await self._idle.wait()

    async def _worker(self) -> None:
        logger.debug("Broadcast worker started")

        try:
            while True:
                await self._pending.wait()
                self._pending.clear()

                self._state = BroadcastState.SENDING
                try:
                    await self.send_pass()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Error in broadcast pass: {e}", exc_info=True)
                finally:
                    self._state = BroadcastState.IDLE
                    if not self._pending.is_set():
                        self._idle.set()

        except asyncio.CancelledError:
            logger.debug("Broadcast worker cancelled")
            raise

    async def send_pass(self) -> int:
        """
        Send the current frame to every active client once.

        Clients whose write fails, would block or is partial are marked
        inactive and left for the next reap; nothing is retried. With no
        active clients the pass is a no-op and nothing is rescheduled.

        Returns:
            Number of clients that received the whole frame
        """
        registry = self._ctx.registry
        if registry.active_count == 0:
            logger.debug("No active clients, skipping broadcast")
            return 0

        frame = await self._ctx.store.snapshot()
        header = PacketHeader.create(
            frame.width, frame.height, frame.format, len(frame.payload)
        ).to_bytes()
        # Joined once per pass; every client writes the same message
        buffers = (header + frame.payload,)

        async def deliver(client: Client) -> None:
            await client.send(buffers)

        sent = await registry.for_each_active(deliver)

        self.passes += 1
        self.frames_sent += sent
        if sent:
            logger.debug(f"Frame sent to {sent} clients")
        else:
            logger.debug("Broadcast pass reached no clients")
        return sent
