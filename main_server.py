#!/usr/bin/env python3
"""
Main entry point for the display server.

Binds the listener, streams frames from the built-in test pattern to
every connected viewer, and shuts down in order on SIGINT/SIGTERM.
Configuration is loaded from environment variables.
"""

import asyncio
import signal
import sys
import os

from config.settings import Config
from server.server import DisplayServer
from utils.logging import setup_logging, get_logger
from utils.exceptions import AllocationError, ConfigurationError

logger = get_logger(__name__)


class ServerApplication:
    """Main application class for the display server."""

    def __init__(self):
        """Initialize application."""
        self.config = Config()
        self.server: DisplayServer = None
        self.shutdown_event = asyncio.Event()

    async def run(self) -> int:
        """
        Run the server application.

        Loads configuration, starts the display server with the test
        pattern source, and stops it once a shutdown signal arrives.

        Returns:
            Process exit code
        """
        try:
            logger.info("Loading configuration...")
            server_config = self.config.load_server_config()

            logger.info(
                f"Configuration loaded: "
                f"listen={server_config.host}:{server_config.port}, "
                f"frame={server_config.width}x{server_config.height} "
                f"{server_config.format.name}, "
                f"max_clients={server_config.max_clients}"
            )

            self.server = DisplayServer(server_config)
            await self.server.start(with_pattern=True)

            logger.info("Server application started successfully")
            logger.info("Press Ctrl+C to stop")

            await self.shutdown_event.wait()

            logger.info("Shutdown signal received, stopping...")
            return 0

        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            logger.error(
                "Please check your environment variables. "
                "See .env.example for the available options."
            )
            return 1
        except AllocationError as e:
            logger.error(f"Frame buffer allocation failed: {e}")
            return 1
        except OSError as e:
            logger.error(f"Failed to start listener: {e}")
            return 1
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            return 1
        finally:
            if self.server:
                await self.server.stop()
            logger.info("Exit")

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

    logger.info("Starting display server application...")

    app = ServerApplication()

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
