"""
Change Watching - Long-poll change detection

Responsibilities:
- Track the last observed Consul index
- Run a single background long-poll loop per watcher
- Fire a single-use ReloadToken per detected change
- Report and back off from loop errors without stopping
"""

from .context import (
    ConsulExceptionContext,
    ConsulLoadExceptionContext,
    ConsulWatchExceptionContext,
)
from .reload_token import ReloadToken
from .watcher import ChangeWatcher

__all__ = [
    "ChangeWatcher",
    "ReloadToken",
    "ConsulExceptionContext",
    "ConsulLoadExceptionContext",
    "ConsulWatchExceptionContext",
]
