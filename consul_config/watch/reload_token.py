"""
Reload Token

Single-fire notification handed to subscribers. One token covers one epoch:
the interval between two detected changes of the watched key.
"""

import asyncio
import threading
from typing import Any, Callable

from consul_config.common.logging_setup import get_service_logger

logger = get_service_logger("watch.token")

ChangeCallback = Callable[[Any], None]


class ReloadToken:
    """
    Fires its registered callbacks exactly once.

    Callbacks registered after the token has fired run immediately.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._callbacks: list[tuple[ChangeCallback, Any]] = []
        self._fired = False

    @property
    def has_changed(self) -> bool:
        """True once the epoch covered by this token has ended"""
        return self._fired

    def register_change_callback(
        self,
        callback: ChangeCallback,
        state: Any = None,
    ) -> Callable[[], None]:
        """
        Register a callback invoked with `state` when the token fires.

        Returns:
            Function that unregisters the callback
        """
        entry = (callback, state)
        with self._lock:
            if not self._fired:
                self._callbacks.append(entry)
                return lambda: self._unregister(entry)

        self._invoke(callback, state)
        return lambda: None

    def _unregister(self, entry: tuple[ChangeCallback, Any]) -> None:
        with self._lock:
            if entry in self._callbacks:
                self._callbacks.remove(entry)

    def on_reload(self) -> None:
        """Fire the token. Later calls are no-ops."""
        with self._lock:
            if self._fired:
                return
            self._fired = True
            callbacks, self._callbacks = self._callbacks, []

        for callback, state in callbacks:
            self._invoke(callback, state)

    async def wait(self) -> None:
        """Wait until the token fires"""
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def resolve(_state: Any) -> None:
            loop.call_soon_threadsafe(_set_done, future)

        unregister = self.register_change_callback(resolve)
        try:
            await future
        finally:
            unregister()

    def _invoke(self, callback: ChangeCallback, state: Any) -> None:
        try:
            callback(state)
        except Exception as e:
            logger.error(f"Reload callback failed: {e}", exc_info=True)


def _set_done(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(None)
