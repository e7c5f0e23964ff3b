"""Frame broadcast server: listener, broadcaster and ordered teardown."""

from typing import Optional
import asyncio
import socket

from config.settings import ServerConfig
from server.acceptor import ConnectionAcceptor
from server.broadcaster import Broadcaster
from server.context import DisplayContext
from server.pattern import PatternSource
from utils.logging import get_logger

logger = get_logger(__name__)


class DisplayServer:
    """Server class exposing the frame store to remote viewers."""

    def __init__(self, config: ServerConfig):
        """
        Initialize server with configuration. Nothing is allocated or
        bound until ``start``.

        Args:
            config: Server configuration
        """
        self._config: ServerConfig = config
        self._context: Optional[DisplayContext] = None
        self._listen_sock: Optional[socket.socket] = None
        self._acceptor: Optional[ConnectionAcceptor] = None
        self._broadcaster: Optional[Broadcaster] = None
        self._pattern: Optional[PatternSource] = None

    async def __aenter__(self) -> 'DisplayServer':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    @property
    def context(self) -> DisplayContext:
        if self._context is None:
            raise RuntimeError("Server is not started")
        return self._context

    @property
    def broadcaster(self) -> Broadcaster:
        if self._broadcaster is None:
            raise RuntimeError("Server is not started")
        return self._broadcaster

    @property
    def acceptor(self) -> ConnectionAcceptor:
        if self._acceptor is None:
            raise RuntimeError("Server is not started")
        return self._acceptor

    @property
    def bound_port(self) -> int:
        if self._listen_sock is None:
            raise RuntimeError("Server is not listening")
        return self._listen_sock.getsockname()[1]

    @property
    def running(self) -> bool:
        return self._listen_sock is not None

    async def start(self, with_pattern: bool = False) -> None:
        """
        Allocate the frame store, bind the listener and start the
        acceptor and broadcaster tasks.

        Args:
            with_pattern: Also run the built-in test pattern source

        Raises:
            ConfigurationError: If the configuration is invalid
            AllocationError: If the frame buffer cannot be allocated
            OSError: If the listening socket cannot be bound
        """
        if self.running:
            logger.warning("Display server is already running")
            return

        logger.info("Starting display server...")

        self._context = DisplayContext.create(self._config)

        try:
            self._listen_sock = self._bind()
        except OSError as e:
            logger.error(
                f"Failed to bind {self._config.host}:{self._config.port}: {e}"
            )
            await self._context.store.release()
            self._context = None
            raise

        self._broadcaster = Broadcaster(self._context)
        self._broadcaster.start()

        self._acceptor = ConnectionAcceptor(self._context, self._listen_sock)
        self._acceptor.start()

        if with_pattern:
            self._pattern = PatternSource(
                self._context.store, self._broadcaster, self._config.fps
            )
            self._pattern.start()

        logger.info(
            f"Display server listening on {self._config.host}:{self.bound_port} "
            f"({self._config.width}x{self._config.height} {self._config.format.name}, "
            f"max {self._config.max_clients} clients)"
        )

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self._config.host, self._config.port))
            sock.listen(self._config.listen_backlog)
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        return sock

    def signal_frame(self) -> bool:
        """Tell the broadcaster a new frame is in the store."""
        return self.broadcaster.signal()

    def signal_threadsafe(self) -> None:
        """``signal_frame`` for frame sources running on another thread."""
        self.broadcaster.signal_threadsafe()

    async def write_frame(self, data: bytes) -> int:
        """
        Copy a frame into the store and request a broadcast.

        Returns:
            Number of bytes copied
        """
        count = await self.context.store.write(data)
        self.signal_frame()
        return count

    async def reap(self) -> int:
        """Remove viewers marked inactive since the last accept."""
        return await self.context.registry.reap()

    async def stop(self) -> None:
        """
        Tear down in order: frame source and acceptor, pending broadcast,
        listening socket, every client, then the frame buffer.
        """
        if not self.running:
            return

        logger.info("Stopping display server...")

        if self._pattern:
            await self._pattern.stop()
            self._pattern = None

        if self._acceptor:
            await self._acceptor.stop()

        if self._broadcaster:
            await self._broadcaster.stop()

        try:
            self._listen_sock.close()
            logger.debug("Listening socket closed")
        except OSError as e:
            logger.warning(f"Error closing listening socket: {e}")
        finally:
            self._listen_sock = None

        if self._context:
            await self._context.registry.close_all()
            await self._context.store.release()

        logger.info("Display server stopped")
