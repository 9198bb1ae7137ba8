"""
Change Watcher

Owns the last observed Consul index for one key, runs the background
long-poll loop and fires the live ReloadToken when the index advances.

Watching is one-shot per epoch: after a token fires the loop stops, and the
host re-fetches and calls watch() again to cover the next change (see
ConsulConfigProvider.run for that re-subscription loop).
"""

import asyncio
import contextlib
from datetime import timedelta
from typing import Callable

from consul_config.common.config import ConsulConfigSource, default_watch_backoff
from consul_config.common.exceptions import OperationCancelledError
from consul_config.common.logging_setup import get_service_logger
from consul_config.store import StoreAccessor, StoreResponse

from .context import ConsulWatchExceptionContext
from .reload_token import ReloadToken

logger = get_service_logger("watch")

WatchExceptionCallback = Callable[[ConsulWatchExceptionContext], None]


class ChangeWatcher:
    """
    Change detection for a single Consul key.

    State shared between get_config(), watch() and the loop (the index, the
    live token and the loop handle) is guarded by one lock. The lock is never
    held across a store request.
    """

    def __init__(
        self,
        source: ConsulConfigSource,
        accessor: StoreAccessor | None = None,
    ):
        self.source = source
        self.accessor = accessor or StoreAccessor(source)

        self._lock = asyncio.Lock()
        self._last_index = 0
        self._reload_token = ReloadToken()
        self._watch_task: asyncio.Task | None = None

    @property
    def last_index(self) -> int:
        return self._last_index

    @property
    def is_watching(self) -> bool:
        return self._watch_task is not None and not self._watch_task.done()

    async def get_config(self, optional: bool | None = None) -> bytes | None:
        """
        One-shot load of the key's raw value.

        Seeds the watch index. Errors propagate to the caller.

        Returns:
            Raw bytes, or None if the key is absent and optional
        """
        if optional is None:
            optional = self.source.optional

        response = await self.accessor.fetch(self.source.key, optional)

        async with self._lock:
            self._advance_index(response)

        return response.value

    async def watch(self, on_exception: WatchExceptionCallback | None = None) -> ReloadToken:
        """
        Start watching for changes, if not already watching.

        Never blocks on the store. Repeated calls while a loop is active
        return the same live token without starting another loop.
        """
        async with self._lock:
            if not self.is_watching:
                self._watch_task = asyncio.create_task(
                    self._poll_for_changes(on_exception),
                    name=f"consul-watch:{self.source.key}",
                )
            return self._reload_token

    async def close(self) -> None:
        """Stop the watch loop, if any, without firing the token"""
        task = self._watch_task
        if task and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _poll_for_changes(self, on_exception: WatchExceptionCallback | None) -> None:
        """Background loop: long-poll until the index advances or cancellation"""
        key = self.source.key
        cancellation = self.source.cancellation
        consecutive_failures = 0

        logger.debug(f"Watching {key} from index {self._last_index}")

        try:
            while not cancellation.is_set():
                async with self._lock:
                    snapshot = self._last_index

                try:
                    response = await self.accessor.fetch(key, True, blocking_index=snapshot)
                except OperationCancelledError:
                    break
                except Exception as e:
                    consecutive_failures += 1
                    context = ConsulWatchExceptionContext(self.source, e, consecutive_failures)
                    await self.handle_exception(context, on_exception)
                    continue

                consecutive_failures = 0

                if response.index <= snapshot:
                    if response.index == 0:
                        # No usable X-Consul-Index: index=0 never blocks, so pace the polls
                        logger.debug(f"No index returned for {key}, pausing before next poll")
                        await self._pause(self.source.min_watch_backoff_s)
                    continue

                async with self._lock:
                    self._advance_index(response)
                    previous_token, self._reload_token = self._reload_token, ReloadToken()
                    self._watch_task = None

                logger.info(
                    f"Config changed: {key} index {snapshot} → {response.index}",
                    extra={"key": key, "old_index": snapshot, "new_index": response.index},
                )
                previous_token.on_reload()
                return

            logger.debug(f"Watch on {key} cancelled")
        finally:
            async with self._lock:
                if self._watch_task is asyncio.current_task():
                    self._watch_task = None

    def _advance_index(self, response: StoreResponse) -> bool:
        """Record a strictly greater index. Caller holds the lock."""
        if response.index > self._last_index:
            self._last_index = response.index
            return True
        return False

    async def handle_exception(
        self,
        context: ConsulWatchExceptionContext,
        on_exception: WatchExceptionCallback | None,
    ) -> None:
        """
        Report a failure through on_exception (or the log), then wait out the
        source's backoff. Returns early if the source is cancelled.
        """
        if on_exception:
            try:
                on_exception(context)
            except Exception as e:
                logger.error(f"Watch exception callback failed: {e}", exc_info=True)
        else:
            logger.warning(
                f"Error watching {context.key}: {context.exception}",
                extra={"key": context.key, "failures": context.consecutive_failures},
            )

        await self._pause(self._backoff_seconds(context))

    async def _pause(self, seconds: float) -> None:
        """Sleep, waking early on cancellation"""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self.source.cancellation.wait(), timeout=seconds)

    def _backoff_seconds(self, context: ConsulWatchExceptionContext) -> float:
        try:
            delay = self.source.on_watch_exception(context)
        except Exception as e:
            logger.error(f"Watch backoff function failed: {e}", exc_info=True)
            delay = default_watch_backoff(context)

        if isinstance(delay, timedelta):
            seconds = delay.total_seconds()
        else:
            seconds = float(delay or 0)

        return max(seconds, self.source.min_watch_backoff_s)
