"""
Common Utilities

Shared modules used across the store, watcher and provider:
- config.py - Source configuration dataclasses
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
"""

from .config import (
    ConsulClientConfiguration,
    ConsulConfigSource,
    default_watch_backoff,
    load_source_config,
    load_source_config_dict,
    parse_json,
)
from .exceptions import (
    ConsulConfigError,
    ConfigurationMissingError,
    OperationCancelledError,
    StoreCommunicationError,
    TransportError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
)

__all__ = [
    # Config
    "ConsulClientConfiguration",
    "ConsulConfigSource",
    "default_watch_backoff",
    "load_source_config",
    "load_source_config_dict",
    "parse_json",
    # Exceptions
    "ConsulConfigError",
    "ConfigurationMissingError",
    "OperationCancelledError",
    "StoreCommunicationError",
    "TransportError",
    # Logging
    "setup_logging",
    "get_service_logger",
]
