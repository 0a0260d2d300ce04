"""Monotonic request ids used to drop out-of-order async completions."""

from __future__ import annotations


class RequestArbiter:
    """Last-issued-wins bookkeeping.

    Only the controller's owning event loop may call into an arbiter; it holds
    no lock.
    """

    def __init__(self) -> None:
        self._latest = 0
        self._closed = False

    @property
    def latest(self) -> int:
        return self._latest

    def next_id(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, request_id: int) -> bool:
        return not self._closed and request_id == self._latest

    def invalidate(self) -> None:
        """Make every id issued so far stale without issuing a usable one."""

        self._latest += 1
        self._closed = True


__all__ = ["RequestArbiter"]
