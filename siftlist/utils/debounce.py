"""Single-shot cancellable timer on top of the running event loop."""

from __future__ import annotations

import asyncio
from typing import Any, Callable


class DebounceTimer:
    def __init__(self, delay: float) -> None:
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self.delay = delay
        self._handle: asyncio.TimerHandle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, callback: Callable[..., Any], *args: Any) -> None:
        """Restart the countdown; a previously scheduled callback never fires."""

        self.cancel()
        self._loop = asyncio.get_running_loop()
        self._handle = self._loop.call_later(self.delay, self._fire, callback, args)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def remaining(self) -> float | None:
        """Seconds until the callback fires, ``None`` when nothing is scheduled."""

        if self._handle is None or self._loop is None:
            return None
        return max(self._handle.when() - self._loop.time(), 0.0)

    def _fire(self, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self._handle = None
        callback(*args)


__all__ = ["DebounceTimer"]
