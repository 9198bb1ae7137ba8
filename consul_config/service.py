"""
Consul Config Provider

Host-side wrapper around ChangeWatcher:
- One-shot load at startup, with the source's load-exception hook
- Parsing the raw value with the source's parser
- Re-subscribing after every fired ReloadToken when reload_on_change is set
- Notifying the application's reload listeners
"""

import asyncio
from typing import Any, Callable

from consul_config.common.config import ConsulConfigSource
from consul_config.common.exceptions import OperationCancelledError
from consul_config.common.logging_setup import get_service_logger
from consul_config.watch import (
    ChangeWatcher,
    ConsulLoadExceptionContext,
    ConsulWatchExceptionContext,
)

logger = get_service_logger("provider")

KEY_DELIMITER = ":"


class ConsulConfigProvider:
    """
    Configuration loaded from one Consul key.

    Usage:
        provider = ConsulConfigProvider(source)
        await provider.load()
        asyncio.create_task(provider.run())   # if source.reload_on_change
        provider.get("database:host")
    """

    def __init__(
        self,
        source: ConsulConfigSource,
        watcher: ChangeWatcher | None = None,
    ):
        self.source = source
        self.watcher = watcher or ChangeWatcher(source)
        self.data: dict[str, Any] = {}
        self._reload_listeners: list[Callable[[dict[str, Any]], None]] = []

    async def load(self) -> None:
        """
        Load and parse the current value.

        A failure is passed to source.on_load_exception; unless the hook sets
        `ignore`, it is re-raised and the previous data is kept.
        """
        try:
            raw = await self.watcher.get_config(self.source.optional)
            self.data = self.source.parser(raw) if raw else {}
            logger.info(
                f"Loaded config from {self.source.key} (index: {self.watcher.last_index})",
                extra={"key": self.source.key, "index": self.watcher.last_index},
            )
        except OperationCancelledError:
            raise
        except Exception as e:
            context = ConsulLoadExceptionContext(self.source, e)
            if self.source.on_load_exception:
                self.source.on_load_exception(context)
            if not context.ignore:
                raise
            logger.warning(f"Ignoring load failure for {self.source.key}: {e}")

    @property
    def key_prefix(self) -> list[str]:
        """
        Path segments the Consul key adds in front of every configuration key.

        source.key_to_remove (default: the whole key) is cut from the front of
        the Consul key; what is left, split on "/", becomes the prefix.
        """
        key = self.source.key
        to_remove = self.source.key_to_remove
        if to_remove is None:
            to_remove = key
        remainder = key[len(to_remove):] if key.startswith(to_remove) else key
        return [part for part in remainder.split("/") if part]

    def get(self, path: str, default: Any = None) -> Any:
        """
        Look up a value by ':'-separated path, e.g. "database:host" or
        "servers:0:name". List elements are addressed by position.
        """
        parts = path.split(KEY_DELIMITER)
        prefix = self.key_prefix
        if parts[:len(prefix)] != prefix:
            return default

        node: Any = self.data
        for part in parts[len(prefix):]:
            if isinstance(node, dict):
                if part not in node:
                    return default
                node = node[part]
            elif isinstance(node, list):
                if not part.isdigit() or int(part) >= len(node):
                    return default
                node = node[int(part)]
            else:
                return default
        return node

    def add_reload_listener(self, listener: Callable[[dict[str, Any]], None]) -> None:
        """Register a function called with the new data after each reload"""
        self._reload_listeners.append(listener)

    async def run(
        self,
        on_exception: Callable[[ConsulWatchExceptionContext], None] | None = None,
    ) -> None:
        """
        Keep the data live until the source is cancelled.

        Each fired token ends one epoch: reload, notify listeners, then
        watch again for the next change.
        """
        if not self.source.reload_on_change:
            logger.debug(f"Reload on change disabled for {self.source.key}")
            return

        cancellation = self.source.cancellation
        try:
            while not cancellation.is_set():
                token = await self.watcher.watch(on_exception)
                if not await self._wait_for_change(token):
                    break

                if not await self._reload(on_exception):
                    break

                self._notify_listeners()
        finally:
            await self.watcher.close()

    async def _reload(
        self,
        on_exception: Callable[[ConsulWatchExceptionContext], None] | None,
    ) -> bool:
        """
        Load the changed value, retrying after the source's backoff until it
        succeeds. The watcher has already moved past the change, so giving up
        would leave stale data until the next one.

        Returns:
            True once loaded, False if cancelled first
        """
        failures = 0
        while not self.source.cancellation.is_set():
            try:
                await self.load()
                return True
            except OperationCancelledError:
                return False
            except Exception as e:
                failures += 1
                context = ConsulWatchExceptionContext(self.source, e, failures)
                await self.watcher.handle_exception(context, on_exception)
        return False

    async def _wait_for_change(self, token) -> bool:
        """Wait for the token or cancellation; True if the token fired"""
        changed = asyncio.ensure_future(token.wait())
        cancelled = asyncio.ensure_future(self.source.cancellation.wait())
        try:
            await asyncio.wait({changed, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            changed.cancel()
            cancelled.cancel()
        return token.has_changed and not self.source.cancellation.is_set()

    def _notify_listeners(self) -> None:
        for listener in list(self._reload_listeners):
            try:
                listener(self.data)
            except Exception as e:
                logger.error(f"Reload listener failed: {e}", exc_info=True)
