"""Bounded LRU memo for derived result sets."""

from __future__ import annotations

from collections import OrderedDict
from typing import Generic, Iterable, NamedTuple, TypeVar

from siftlist.logging import logger

V = TypeVar("V")


class CacheKey(NamedTuple):
    normalized_query: str
    filter_identity: tuple[str, ...]
    filter_version: tuple[int, ...]
    sort_identity: int


class ResultCache(Generic[V]):
    """LRU cache whose keys embed per-filter versions.

    Bumping a filter's version changes every key built afterwards, so entries
    computed with the previous predicate are simply never looked up again and
    age out through normal eviction.
    """

    def __init__(self, max_entries: int = 100) -> None:
        if max_entries < 0:
            raise ValueError("max_entries must be non-negative")
        self.max_entries = max_entries
        self._entries: OrderedDict[CacheKey, V] = OrderedDict()
        self._versions: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: CacheKey) -> V | None:
        try:
            value = self._entries[key]
        except KeyError:
            return None
        self._entries.move_to_end(key)
        return value

    def put(self, key: CacheKey, value: V) -> None:
        if self.max_entries == 0:
            return
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = value
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("cache_evicted", query=evicted.normalized_query, size=len(self._entries))

    def clear(self) -> None:
        self._entries.clear()

    def version_of(self, filter_name: str) -> int:
        return self._versions.get(filter_name, 0)

    def bump_version(self, filter_name: str) -> int:
        version = self._versions.get(filter_name, 0) + 1
        self._versions[filter_name] = version
        return version

    def make_key(self, normalized_query: str, filter_names: Iterable[str], sort_identity: int) -> CacheKey:
        names = tuple(sorted(filter_names))
        return CacheKey(
            normalized_query=normalized_query,
            filter_identity=names,
            filter_version=tuple(self.version_of(name) for name in names),
            sort_identity=sort_identity,
        )


__all__ = ["CacheKey", "ResultCache"]
