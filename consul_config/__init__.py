"""
consul-config

Load application configuration from a Consul key and keep it live-updated
with blocking queries.
"""

from .common import (
    ConsulClientConfiguration,
    ConsulConfigError,
    ConsulConfigSource,
    ConfigurationMissingError,
    OperationCancelledError,
    StoreCommunicationError,
    TransportError,
    load_source_config,
)
from .service import ConsulConfigProvider
from .store import StoreAccessor, StoreResponse, StoreStatus
from .watch import (
    ChangeWatcher,
    ConsulLoadExceptionContext,
    ConsulWatchExceptionContext,
    ReloadToken,
)

__version__ = "0.1.0"

__all__ = [
    "ConsulClientConfiguration",
    "ConsulConfigSource",
    "load_source_config",
    "ConsulConfigError",
    "ConfigurationMissingError",
    "OperationCancelledError",
    "StoreCommunicationError",
    "TransportError",
    "StoreAccessor",
    "StoreResponse",
    "StoreStatus",
    "ChangeWatcher",
    "ReloadToken",
    "ConsulLoadExceptionContext",
    "ConsulWatchExceptionContext",
    "ConsulConfigProvider",
]
