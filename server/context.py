"""Shared state handed to every server component."""

from dataclasses import dataclass

from config.settings import ServerConfig
from server.frame_store import FrameStore
from server.registry import ClientRegistry


@dataclass
class DisplayContext:
    """Configuration, frame store and client registry of one server instance."""
    
    config: ServerConfig
    store: FrameStore
    registry: ClientRegistry
    
    @classmethod
    def create(cls, config: ServerConfig) -> 'DisplayContext':
        """
        Validate configuration, then allocate the store and registry.
        
        Raises:
            ConfigurationError: If the configuration is invalid
            AllocationError: If the frame buffer cannot be allocated
        """
        config.validate()
        return cls(
            config=config,
            store=FrameStore(config.width, config.height, config.format),
            registry=ClientRegistry(config.max_clients),
        )
