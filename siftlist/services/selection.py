"""Identity-keyed selection set."""

from __future__ import annotations

from typing import Any, Callable, Hashable, Iterable, TypeVar

T = TypeVar("T")


class Selection:
    """Selected item identities, independent of list position.

    Mutators return ``True`` when the set actually changed so the controller
    only notifies on real transitions. The last seen payload of each selected
    item is kept so predicates can still reach items that are no longer
    visible.
    """

    def __init__(self, identify: Callable[[Any], Hashable]) -> None:
        self._identify = identify
        self._ids: set[Hashable] = set()
        self._items: dict[Hashable, Any] = {}

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def snapshot(self) -> frozenset[Hashable]:
        return frozenset(self._ids)

    def remember(self, items: Iterable[T]) -> None:
        """Record the payload of every selected item found in ``items``."""

        if not self._ids:
            return
        for item in items:
            item_id = self._identify(item)
            if item_id in self._ids:
                self._items[item_id] = item

    def toggle(self, item_id: Hashable) -> bool:
        if item_id in self._ids:
            self._remove(item_id)
        else:
            self._ids.add(item_id)
        return True

    def add(self, item_id: Hashable) -> bool:
        if item_id in self._ids:
            return False
        self._ids.add(item_id)
        return True

    def discard(self, item_id: Hashable) -> bool:
        if item_id not in self._ids:
            return False
        self._remove(item_id)
        return True

    def add_items(self, items: Iterable[T], predicate: Callable[[T], bool] | None = None) -> bool:
        before = len(self._ids)
        for item in items:
            if predicate is None or predicate(item):
                item_id = self._identify(item)
                self._ids.add(item_id)
                self._items[item_id] = item
        return len(self._ids) != before

    def discard_where(self, predicate: Callable[[T], bool], items: Iterable[T] = ()) -> bool:
        """Drop selected items matching ``predicate``.

        Candidates are the remembered payloads plus ``items``; a selected id
        whose payload was never seen cannot be tested and stays selected.
        """

        self.remember(items)
        doomed = [item_id for item_id, item in self._items.items() if predicate(item)]
        for item_id in doomed:
            self._remove(item_id)
        return bool(doomed)

    def clear(self) -> bool:
        if not self._ids:
            return False
        self._ids.clear()
        self._items.clear()
        return True

    def _remove(self, item_id: Hashable) -> None:
        self._ids.discard(item_id)
        self._items.pop(item_id, None)


__all__ = ["Selection"]
