"""Configuration management for the display server and viewer."""

from dataclasses import dataclass
from typing import Optional
import os
from pathlib import Path

from dotenv import load_dotenv

from protocol.formats import FrameFormat
from utils.exceptions import ConfigurationError


# Load .env file from project root
# This is called at module import time to ensure env vars are available
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(dotenv_path=env_path, override=False)

MIN_WIDTH, MAX_WIDTH = 640, 7680
MIN_HEIGHT, MAX_HEIGHT = 480, 4320
MIN_PORT, MAX_PORT = 1024, 65535
MIN_FPS, MAX_FPS = 1, 240


@dataclass
class ServerConfig:
    """Configuration for the frame broadcast server."""

    host: str = "0.0.0.0"
    port: int = 8080
    width: int = 1920
    height: int = 1080
    max_clients: int = 4
    format: FrameFormat = FrameFormat.RGBA32
    send_timeout: float = 0.0
    fps: int = 30
    backlog: Optional[int] = None

    def validate(self) -> None:
        """
        Validate server configuration parameters.

        Raises:
            ConfigurationError: If any option is outside its valid range
        """
        if not self.host:
            raise ConfigurationError("Listen host is required")
        _check_range("port", self.port, MIN_PORT, MAX_PORT)
        _check_range("width", self.width, MIN_WIDTH, MAX_WIDTH)
        _check_range("height", self.height, MIN_HEIGHT, MAX_HEIGHT)
        if not isinstance(self.max_clients, int) or self.max_clients < 1:
            raise ConfigurationError(
                f"max_clients must be an integer >= 1, got: {self.max_clients!r}"
            )
        if not isinstance(self.format, FrameFormat) or not self.format.is_raw:
            raise ConfigurationError(
                f"Frame format {self.format!r} is not supported; use RGBA32 or RGB24"
            )
        if self.send_timeout < 0:
            raise ConfigurationError(
                f"send_timeout must be >= 0, got: {self.send_timeout}"
            )
        _check_range("fps", self.fps, MIN_FPS, MAX_FPS)
        if self.backlog is not None and self.backlog < 1:
            raise ConfigurationError(f"backlog must be >= 1, got: {self.backlog}")

    @property
    def listen_backlog(self) -> int:
        return self.backlog if self.backlog is not None else self.max_clients

    @property
    def frame_size(self) -> int:
        """Payload bytes of one frame at the configured geometry."""
        return self.width * self.height * self.format.bytes_per_pixel


@dataclass
class ViewerConfig:
    """Configuration for the viewer client."""

    host: str = "127.0.0.1"
    port: int = 8080
    connect_timeout: float = 5.0

    def validate(self) -> None:
        """Validate viewer configuration parameters."""
        if not self.host:
            raise ConfigurationError("Viewer host is required")
        _check_range("port", self.port, 1, 65535)
        if self.connect_timeout <= 0:
            raise ConfigurationError(
                f"connect_timeout must be positive, got: {self.connect_timeout}"
            )


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got: {value!r}")
    if value < low or value > high:
        raise ConfigurationError(
            f"{name} must be between {low} and {high}, got: {value}"
        )


def _int_env(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a valid integer, got: {raw}") from None


def _float_env(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got: {raw}") from None


class Config:
    """Main configuration loader and manager."""

    def __init__(self):
        """Initialize configuration manager."""
        self.server: Optional[ServerConfig] = None
        self.viewer: Optional[ViewerConfig] = None

    def load_server_config(self) -> ServerConfig:
        """
        Load server configuration from environment variables.

        Environment variables:
            DISPLAY_HOST: Listen address (default: 0.0.0.0)
            DISPLAY_PORT: Listen port, 1024-65535 (default: 8080)
            DISPLAY_WIDTH: Frame width, 640-7680 (default: 1920)
            DISPLAY_HEIGHT: Frame height, 480-4320 (default: 1080)
            DISPLAY_MAX_CLIENTS: Simultaneous viewers (default: 4)
            DISPLAY_FORMAT: RGBA32 or RGB24 (default: RGBA32)
            DISPLAY_SEND_TIMEOUT: Per-viewer write deadline in seconds,
                0 for a single non-blocking write (default: 0)
            DISPLAY_FPS: Test pattern frame rate (default: 30)
            DISPLAY_BACKLOG: Listen backlog (default: max clients)

        Returns:
            Validated ServerConfig instance

        Raises:
            ConfigurationError: If configuration is invalid
        """
        format_name = os.getenv('DISPLAY_FORMAT', 'RGBA32')
        try:
            fmt = FrameFormat.from_name(format_name)
        except ValueError as e:
            raise ConfigurationError(str(e)) from None

        backlog = os.getenv('DISPLAY_BACKLOG')

        config = ServerConfig(
            host=os.getenv('DISPLAY_HOST', '0.0.0.0'),
            port=_int_env('DISPLAY_PORT', '8080'),
            width=_int_env('DISPLAY_WIDTH', '1920'),
            height=_int_env('DISPLAY_HEIGHT', '1080'),
            max_clients=_int_env('DISPLAY_MAX_CLIENTS', '4'),
            format=fmt,
            send_timeout=_float_env('DISPLAY_SEND_TIMEOUT', '0'),
            fps=_int_env('DISPLAY_FPS', '30'),
            backlog=_int_env('DISPLAY_BACKLOG', backlog) if backlog else None,
        )
        config.validate()
        self.server = config
        return config

    def load_viewer_config(self) -> ViewerConfig:
        """
        Load viewer configuration from environment variables.

        Environment variables:
            VIEWER_HOST: Server address (default: 127.0.0.1)
            VIEWER_PORT: Server port (default: 8080)
            VIEWER_CONNECT_TIMEOUT: Seconds to wait for connect (default: 5)

        Returns:
            Validated ViewerConfig instance

        Raises:
            ConfigurationError: If configuration is invalid
        """
        config = ViewerConfig(
            host=os.getenv('VIEWER_HOST', '127.0.0.1'),
            port=_int_env('VIEWER_PORT', '8080'),
            connect_timeout=_float_env('VIEWER_CONNECT_TIMEOUT', '5'),
        )
        config.validate()
        self.viewer = config
        return config
