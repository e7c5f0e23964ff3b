"""Custom exception classes for the display streaming system."""


class DisplayError(Exception):
    """Base exception class for all display-streaming errors."""
    pass


class ConfigurationError(DisplayError):
    """Exception raised when configuration is invalid or missing."""
    pass


class AllocationError(DisplayError):
    """Exception raised when the frame buffer cannot be allocated."""
    pass


class TransientAcceptError(DisplayError):
    """Exception raised for recoverable accept-layer failures."""
    pass


class CapacityExceededError(DisplayError):
    """Exception raised when a viewer arrives while the registry is full."""
    pass


class ProtocolError(DisplayError):
    """Base exception for malformed packets received from a peer."""
    pass


class InvalidHeaderError(ProtocolError):
    """Exception raised when a packet header is truncated or inconsistent."""
    pass


class ProtocolMismatchError(ProtocolError):
    """Exception raised when the magic number or version does not match."""
    pass


class ClientSendError(DisplayError):
    """Exception raised when a write to a viewer fails or is partial."""
    pass
