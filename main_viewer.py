#!/usr/bin/env python3
"""
Main entry point for the headless viewer.

Connects to a display server, receives frames and logs the frame rate.
Configuration is loaded from environment variables.
"""

import asyncio
import signal
import sys
import os
import time

from config.settings import Config
from client.viewer import ViewerClient
from utils.logging import setup_logging, get_logger
from utils.exceptions import ConfigurationError, ProtocolError

logger = get_logger(__name__)

# Seconds between frame rate reports
REPORT_INTERVAL = 5.0


class ViewerApplication:
    """Main application class for the viewer."""

    def __init__(self):
        """Initialize application."""
        self.config = Config()
        self.viewer: ViewerClient = None
        self.shutdown_event = asyncio.Event()

    async def run(self) -> int:
        """
        Run the viewer until the server disconnects or a signal arrives.

        Returns:
            Process exit code
        """
        receive_task = None
        try:
            viewer_config = self.config.load_viewer_config()
            logger.info(
                f"Configuration loaded: server={viewer_config.host}:{viewer_config.port}"
            )

            self.viewer = ViewerClient(viewer_config)
            await self.viewer.connect()

            receive_task = asyncio.create_task(self._receive_loop())
            shutdown_task = asyncio.create_task(self.shutdown_event.wait())

            done, _ = await asyncio.wait(
                {receive_task, shutdown_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            shutdown_task.cancel()

            if receive_task in done:
                receive_task.result()
                logger.info("Server closed the stream")
            else:
                logger.info("Shutdown signal received, stopping...")
            return 0

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return 1
        except (ConnectionError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Connection failed: {e}")
            return 1
        except ProtocolError as e:
            logger.error(f"Protocol error: {e}")
            return 1
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            return 1
        finally:
            if receive_task and not receive_task.done():
                receive_task.cancel()
                try:
                    await receive_task
                except asyncio.CancelledError:
                    pass
            if self.viewer:
                await self.viewer.close()
            logger.info("Exit")

    async def _receive_loop(self) -> None:
        window_start = time.monotonic()
        window_frames = 0

        async for frame in self.viewer.frames():
            window_frames += 1
            elapsed = time.monotonic() - window_start
            if elapsed >= REPORT_INTERVAL:
                header = frame.header
                logger.info(
                    f"{window_frames / elapsed:.1f} fps, "
                    f"{header.width}x{header.height}, {len(frame.payload)} bytes/frame"
                )
                window_start = time.monotonic()
                window_frames = 0

    def handle_shutdown(self, signum, frame):
        """
        Handle shutdown signals.

        Args:
            signum: Signal number
            frame: Current stack frame
        """
        logger.info(f"Received signal {signum}")
        self.shutdown_event.set()


async def main() -> int:
    """Main entry point."""
    setup_logging(os.getenv('LOG_LEVEL', 'INFO'))

    logger.info("Starting viewer application...")

    app = ViewerApplication()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda s=sig: app.handle_shutdown(s, None)
        )

    return await app.run()


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nShutdown complete")
        sys.exit(0)


if __name__ == '__main__':
    cli()
