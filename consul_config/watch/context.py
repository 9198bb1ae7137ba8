"""
Exception Contexts

Passed to the host's error hooks; carry the failing source, its key and the
triggering exception.
"""

import asyncio

from consul_config.common.config import ConsulConfigSource


class ConsulExceptionContext:
    """Base context for a failure on one source"""

    def __init__(self, source: ConsulConfigSource, exception: BaseException):
        self.source = source
        self.exception = exception

    @property
    def key(self) -> str:
        return self.source.key

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r}, exception={self.exception!r})"


class ConsulLoadExceptionContext(ConsulExceptionContext):
    """
    Failure during a one-shot load.

    Set `ignore` to True from the load hook to keep the previously loaded
    data instead of raising.
    """

    def __init__(self, source: ConsulConfigSource, exception: BaseException):
        super().__init__(source, exception)
        self.ignore = False


class ConsulWatchExceptionContext(ConsulExceptionContext):
    """Failure during a watch poll; the loop retries after the hook returns"""

    def __init__(
        self,
        source: ConsulConfigSource,
        exception: BaseException,
        consecutive_failures: int = 1,
    ):
        super().__init__(source, exception)
        self.consecutive_failures = consecutive_failures

    @property
    def cancellation(self) -> asyncio.Event:
        """Set this to stop the watch loop from a backoff policy"""
        return self.source.cancellation
