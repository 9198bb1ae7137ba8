"""
Custom Exception Classes for consul-config

Hierarchical exception structure for loading and watching Consul keys.
"""


class ConsulConfigError(Exception):
    """Base exception for all consul-config errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigurationMissingError(ConsulConfigError):
    """Required configuration key is absent from the store"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(
            f"The configuration for key {key} was not found and is not optional.",
            recoverable=False,
        )


class StoreCommunicationError(ConsulConfigError):
    """Store answered with an unexpected status code"""

    def __init__(self, status_code: int, key: str | None = None):
        self.status_code = status_code
        self.key = key
        super().__init__(
            f"Error loading configuration from consul. Status code: {status_code}.",
            recoverable=True,
        )


class TransportError(ConsulConfigError):
    """Network or timeout failure reaching the store"""

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(f"Transport Error: {message}", recoverable=True)


class OperationCancelledError(ConsulConfigError):
    """Request aborted because the source's cancellation event was set"""

    def __init__(self, key: str | None = None):
        self.key = key
        super().__init__(f"Request for key {key} was cancelled", recoverable=False)
