"""Utility modules for logging and exception handling."""

from utils.logging import setup_logging, get_logger
from utils.exceptions import (
    DisplayError,
    ConfigurationError,
    AllocationError,
    CapacityExceededError,
    TransientAcceptError,
    ProtocolError,
    InvalidHeaderError,
    ProtocolMismatchError,
    ClientSendError,
)

__all__ = [
    'setup_logging',
    'get_logger',
    'DisplayError',
    'ConfigurationError',
    'AllocationError',
    'CapacityExceededError',
    'TransientAcceptError',
    'ProtocolError',
    'InvalidHeaderError',
    'ProtocolMismatchError',
    'ClientSendError',
]
