"""Viewer client: receives the handshake and frames from a display server."""

from typing import AsyncIterator, Optional
import asyncio

from config.settings import ViewerConfig
from protocol.constants import HEADER_SIZE
from protocol.messages import FrameData, PacketHeader
from utils.exceptions import InvalidHeaderError, ProtocolError
from utils.logging import get_logger

logger = get_logger(__name__)


class ViewerClient:
    """
    Receiving end of the frame stream.

    After ``connect`` the first message must be the size-0 handshake that
    announces the display geometry; every later message is a header
    followed by exactly ``size`` payload bytes.
    """

    def __init__(self, config: ViewerConfig):
        self._config = config
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self.display_info: Optional[PacketHeader] = None
        self.frames_received = 0

    async def __aenter__(self) -> 'ViewerClient':
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def connected(self) -> bool:
        return self._writer is not None

    async def connect(self) -> PacketHeader:
        """
        Connect and read the handshake.

        Returns:
            The handshake header

        Raises:
            ConnectionError: If the server closes before the handshake
            ProtocolError: If the first message is not a valid handshake
            asyncio.TimeoutError: If the connection is not established in time
        """
        host, port = self._config.host, self._config.port
        logger.info(f"Connecting to {host}:{port}")

        self._reader, self._writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            self._config.connect_timeout,
        )

        try:
            header = await self._read_header()
            if header is None:
                raise ConnectionError(f"{host}:{port} closed the connection without a handshake")
            if not header.is_info_packet():
                raise InvalidHeaderError(
                    f"Expected handshake, got a {header.size}-byte frame header"
                )
            header.validate()
        except (ConnectionError, ProtocolError):
            await self.close()
            raise

        self.display_info = header
        logger.info(f"Received display info: {header.width}x{header.height}")
        return header

    async def _read_header(self) -> Optional[PacketHeader]:
        try:
            data = await self._reader.readexactly(HEADER_SIZE)
        except asyncio.IncompleteReadError as e:
            if e.partial:
                raise InvalidHeaderError(
                    f"Connection closed mid-header after {len(e.partial)} bytes"
                ) from e
            return None
        return PacketHeader.from_bytes(data)

    async def receive_frame(self) -> Optional[FrameData]:
        """
        Read the next message.

        Returns:
            The frame (an empty-payload FrameData for a repeated handshake),
            or None once the server has closed the stream

        Raises:
            ProtocolError: On a malformed header or payload; the
                connection is closed before raising
        """
        if self._reader is None:
            raise ConnectionError("Not connected")

        try:
            header = await self._read_header()
            if header is None:
                logger.warning("Connection closed by server")
                await self.close()
                return None

            header.validate()

            if header.is_info_packet():
                self.display_info = header
                logger.info(f"Received display info: {header.width}x{header.height}")
                return FrameData(header=header, payload=b'')

            try:
                payload = await self._reader.readexactly(header.size)
            except asyncio.IncompleteReadError:
                logger.warning("Connection closed while reading frame data")
                await self.close()
                return None

            frame = FrameData(header=header, payload=payload)
            frame.validate()
        except ProtocolError as e:
            logger.error(f"Invalid packet from server: {e}")
            await self.close()
            raise

        self.frames_received += 1
        logger.debug(f"Received frame data: {len(payload)} bytes")
        return frame

    async def frames(self) -> AsyncIterator[FrameData]:
        """Yield frames with payloads until the server closes the stream."""
        while True:
            frame = await self.receive_frame()
            if frame is None:
                return
            if not frame.header.is_info_packet():
                yield frame

    async def close(self) -> None:
        if self._writer is None:
            return
        writer, self._writer, self._reader = self._writer, None, None
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass
        logger.info("Disconnected from server")
