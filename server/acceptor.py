"""Listener loop that admits viewers and sends the handshake."""

from typing import Optional, Tuple
import asyncio
import socket

from protocol.messages import PacketHeader
from server.context import DisplayContext
from server.registry import Client
from utils.exceptions import (
    CapacityExceededError,
    ClientSendError,
    TransientAcceptError,
)
from utils.logging import get_logger

logger = get_logger(__name__)

# Pause after a failed accept before trying again
ACCEPT_RETRY_DELAY = 0.1


class ConnectionAcceptor:
    """
    Accepts viewer connections on a listening socket.

    Each accepted connection is either registered and greeted with a
    zero-payload handshake header, or closed without a byte sent when the
    registry is full. Inactive clients are reaped after every accept.
    """

    def __init__(self, context: DisplayContext, listen_sock: socket.socket):
        """
        Args:
            context: Shared store and registry of the server
            listen_sock: Bound, listening socket; owned by the caller
        """
        listen_sock.setblocking(False)
        self._ctx = context
        self._sock = listen_sock
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.accepted = 0
        self.rejected = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Run the accept loop as a task on the running loop."""
        if self._task is not None and not self._task.done():
            logger.warning("Acceptor is already running")
            return
        self._task = asyncio.create_task(self.run(), name="acceptor")

    async def stop(self) -> None:
        """Stop accepting; connections already admitted are left alone."""
        self._running = False
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def run(self) -> None:
        """Accept connections until stopped or cancelled."""
        self._running = True
        loop = asyncio.get_running_loop()

        logger.info(f"Accepting viewers on {self._sock.getsockname()}")

        try:
            while self._running:
                try:
                    conn, addr = await self._accept_once(loop)
                except TransientAcceptError as e:
                    if self._sock.fileno() == -1:
                        logger.info("Listening socket closed, stopping accept loop")
                        break
                    logger.debug(f"Accept failed, retrying: {e}")
                    await asyncio.sleep(ACCEPT_RETRY_DELAY)
                    continue

                try:
                    await self.admit(conn, addr)
                except Exception as e:
                    logger.error(f"Error admitting {addr}: {e}", exc_info=True)
                    conn.close()

                await self._ctx.registry.reap()

        except asyncio.CancelledError:
            logger.info("Accept loop cancelled")
            raise
        finally:
            self._running = False

    async def _accept_once(self, loop: asyncio.AbstractEventLoop) -> Tuple[socket.socket, Tuple[str, int]]:
        try:
            return await loop.sock_accept(self._sock)
        except OSError as e:
            raise TransientAcceptError(str(e)) from e

    async def admit(self, conn: socket.socket, addr: Tuple[str, int]) -> Optional[Client]:
        """
        Register a freshly accepted connection and send it the handshake.

        Args:
            conn: Accepted stream socket
            addr: Remote (host, port)

        Returns:
            The registered client, or None if it was rejected for capacity
        """
        client = Client(conn, addr, self._ctx.config.send_timeout)

        try:
            await self._ctx.registry.try_add(client)
        except CapacityExceededError as e:
            self.rejected += 1
            logger.warning(f"Rejecting connection from {addr}: {e}")
            conn.close()
            return None
        except asyncio.CancelledError:
            conn.close()
            raise

        self.accepted += 1
        logger.info(f"New viewer connected from {addr[0]}:{addr[1]}")

        try:
            await self.send_handshake(client)
        except ClientSendError as e:
            # Already marked inactive; reaped with the other failures
            logger.warning(f"Failed to send display info to {addr}: {e}")

        return client

    async def send_handshake(self, client: Client) -> None:
        """
        Announce the current geometry and format with a size-0 header.

        Raises:
            ClientSendError: If the header could not be written in full
        """
        store = self._ctx.store
        header = PacketHeader.create(store.width, store.height, store.format, 0)
        await client.send([header.to_bytes()])
