"""Pytest configuration and shared fixtures."""

import asyncio
import socket
from typing import List

import pytest
import pytest_asyncio

from config.settings import ServerConfig
from protocol.formats import FrameFormat
from server.context import DisplayContext
from server.frame_store import FrameStore
from server.registry import Client, ClientRegistry

# Small geometry keeps frames well inside loopback socket buffers
SMALL_WIDTH = 64
SMALL_HEIGHT = 48


class FakeSocket:
    """Stand-in for a non-blocking stream socket with scripted write outcomes."""

    def __init__(self, mode: str = "ok"):
        self.mode = mode
        self.sent: List[bytes] = []
        self.closed = False

    def setblocking(self, flag: bool) -> None:
        pass

    def sendmsg(self, buffers) -> int:
        data = b''.join(buffers)
        if self.mode == "block":
            raise BlockingIOError(11, "Resource temporarily unavailable")
        if self.mode == "broken":
            raise BrokenPipeError(32, "Broken pipe")
        if self.mode == "partial":
            self.sent.append(data[:len(data) // 2])
            return len(data) // 2
        self.sent.append(data)
        return len(data)

    def close(self) -> None:
        self.closed = True

    @property
    def data(self) -> bytes:
        return b''.join(self.sent)


@pytest.fixture
def fake_socket():
    """Factory for FakeSocket instances."""
    return FakeSocket


@pytest.fixture
def make_client():
    """Factory building a Client around a FakeSocket in the given mode."""
    counter = iter(range(40000, 50000))

    def factory(mode: str = "ok") -> Client:
        return Client(FakeSocket(mode), ("127.0.0.1", next(counter)))

    return factory


@pytest.fixture
def small_store():
    """A 64x48 RGBA32 frame store."""
    return FrameStore(SMALL_WIDTH, SMALL_HEIGHT, FrameFormat.RGBA32)


@pytest.fixture
def server_config():
    return ServerConfig(host="127.0.0.1", port=8080, max_clients=4)


@pytest.fixture
def context(server_config, small_store):
    """Display context with a small store; the config is not range-checked."""
    return DisplayContext(
        config=server_config,
        store=small_store,
        registry=ClientRegistry(server_config.max_clients),
    )


@pytest.fixture
def listener():
    """A listening TCP socket on an ephemeral loopback port."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(("127.0.0.1", 0))
    sock.listen(8)
    sock.setblocking(False)
    yield sock
    sock.close()


@pytest.fixture
def free_port():
    """A currently unused port number (>= 1024) on the loopback interface."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest_asyncio.fixture
async def open_viewers():
    """Open raw asyncio connections; every one is closed after the test."""
    writers = []

    async def connect(port: int):
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        writers.append(writer)
        return reader, writer

    yield connect

    for writer in writers:
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the loop until it is true or time runs out."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def until():
    return wait_until
