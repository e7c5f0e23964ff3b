"""Connected viewers and the registry that tracks them."""

from enum import Enum
from typing import Awaitable, Callable, List, Sequence, Tuple
import asyncio
import socket

from utils.exceptions import CapacityExceededError, ClientSendError
from utils.logging import get_logger

logger = get_logger(__name__)


class ClientState(Enum):
    """Per-connection state; a closed client never becomes connected again."""

    CONNECTED = "connected"
    CLOSED = "closed"


class Client:
    """
    One connected viewer.

    Writes go through ``send``, which holds the client's own lock so the
    handshake and the broadcaster never interleave bytes on one stream.
    Any failed or partial write moves the client to CLOSED; the socket
    itself is released later by ``ClientRegistry.reap``.
    """

    def __init__(self, sock: socket.socket, addr: Tuple[str, int], send_timeout: float = 0.0):
        """
        Args:
            sock: Connected stream socket, switched to non-blocking mode
            addr: Remote (host, port)
            send_timeout: Write deadline in seconds; 0 means a single
                non-blocking write that must complete at once
        """
        sock.setblocking(False)
        self.sock = sock
        self.addr = addr
        self._send_timeout = send_timeout
        self._state = ClientState.CONNECTED
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"Client({self.addr[0]}:{self.addr[1]}, {self._state.value})"

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is ClientState.CONNECTED

    def mark_inactive(self, reason: str = "") -> None:
        if self._state is ClientState.CONNECTED:
            self._state = ClientState.CLOSED
            logger.debug(f"Client {self.addr} marked inactive: {reason}")

    async def send(self, buffers: Sequence[bytes]) -> int:
        """
        Write all buffers to the stream as one message.

        Returns:
            Number of bytes written

        Raises:
            ClientSendError: If the client is inactive, the write fails,
                would block, or is partial. The client is marked inactive.
        """
        expected = sum(len(b) for b in buffers)

        async with self._lock:
            if not self.active:
                raise ClientSendError(f"Client {self.addr} is not active")

            try:
                if self._send_timeout > 0:
                    loop = asyncio.get_running_loop()
                    data = buffers[0] if len(buffers) == 1 else b''.join(buffers)
                    await asyncio.wait_for(
                        loop.sock_sendall(self.sock, data),
                        self._send_timeout,
                    )
                    sent = expected
                else:
                    sent = self._send_nowait(buffers)
            except asyncio.TimeoutError:
                self.mark_inactive("write deadline exceeded")
                raise ClientSendError(
                    f"Write to {self.addr} exceeded {self._send_timeout}s"
                ) from None
            except OSError as e:
                # BlockingIOError included: a write that would block is a failure
                self.mark_inactive(str(e))
                raise ClientSendError(f"Write to {self.addr} failed: {e}") from e

            if sent != expected:
                self.mark_inactive(f"partial write {sent}/{expected}")
                raise ClientSendError(
                    f"Partial write to {self.addr}: {sent}/{expected} bytes"
                )
            return sent

    def _send_nowait(self, buffers: Sequence[bytes]) -> int:
        if hasattr(self.sock, 'sendmsg'):
            return self.sock.sendmsg(list(buffers))
        return self.sock.send(b''.join(buffers))

    def close(self) -> None:
        """Mark closed and release the socket."""
        self.mark_inactive("closed")
        try:
            self.sock.close()
        except OSError as e:
            logger.warning(f"Error closing client {self.addr}: {e}")


class ClientRegistry:
    """
    Ordered set of viewers under one registry-wide lock.

    The lock covers add, reap and the iteration done by a broadcast pass.
    Capacity counts active clients only; entries already marked inactive
    but not yet reaped do not hold a slot.
    """

    def __init__(self, max_clients: int = 4):
        if max_clients < 1:
            raise ValueError(f"max_clients must be >= 1, got {max_clients}")
        self._max_clients = max_clients
        self._clients: List[Client] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._clients)

    @property
    def max_clients(self) -> int:
        return self._max_clients

    @property
    def active_count(self) -> int:
        return sum(1 for c in self._clients if c.active)

    def clients(self) -> List[Client]:
        """Copy of every registered client, active or not."""
        return list(self._clients)

    async def try_add(self, client: Client) -> None:
        """
        Register a client if there is room.

        Raises:
            CapacityExceededError: If max_clients are already active
        """
        async with self._lock:
            if self.active_count >= self._max_clients:
                raise CapacityExceededError(
                    f"Maximum clients ({self._max_clients}) reached"
                )
            self._clients.append(client)
            logger.debug(f"Registered {client}, {self.active_count} active")

    async def for_each_active(self, fn: Callable[[Client], Awaitable[None]]) -> int:
        """
        Await ``fn(client)`` for every active client while holding the lock.

        The calls run concurrently, so a client waiting out its write
        deadline does not delay the others. A ClientSendError from ``fn``
        only affects that client.

        Returns:
            Number of clients ``fn`` completed for without a send error
        """
        async with self._lock:
            targets = [c for c in self._clients if c.active]
            results = await asyncio.gather(
                *(fn(c) for c in targets), return_exceptions=True
            )

        succeeded = 0
        failure = None
        for client, result in zip(targets, results):
            if isinstance(result, ClientSendError):
                client.mark_inactive(str(result))
            elif isinstance(result, BaseException):
                failure = failure or result
            else:
                succeeded += 1
        if failure is not None:
            raise failure
        return succeeded

    async def reap(self) -> int:
        """
        Remove and close every inactive client.

        Returns:
            Number of clients removed
        """
        async with self._lock:
            stale = [c for c in self._clients if not c.active]
            if not stale:
                return 0
            self._clients = [c for c in self._clients if c.active]

        for client in stale:
            client.close()
            logger.info(f"Removed inactive client {client.addr}")
        return len(stale)

    async def close_all(self) -> int:
        """
        Close and drop every client, active or not.

        Returns:
            Number of clients closed
        """
        async with self._lock:
            clients, self._clients = self._clients, []

        for client in clients:
            client.close()
        if clients:
            logger.info(f"Closed {len(clients)} client connections")
        return len(clients)
