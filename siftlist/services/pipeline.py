"""Offline result pipeline.

The stage order is fixed: search match, user predicates, grouping,
per-group sort, pagination slice. Every helper is pure and returns new
sequences.
"""

from __future__ import annotations

from functools import cmp_to_key
from typing import Any, Callable, Hashable, Iterable, Mapping, Sequence, TypeVar

from siftlist.services.matcher import FuzzyMatcher

T = TypeVar("T")

TextExtractor = Callable[[T], Sequence[str] | str]
Predicate = Callable[[T], bool]
Comparator = Callable[[T, T], int]
Group = tuple[Hashable, tuple[T, ...]]

UNGROUPED = None


def searchable_fields(extract_text: TextExtractor, item: T) -> Sequence[str]:
    """Fields of ``item``; a bare string counts as a single field."""

    fields = extract_text(item)
    if isinstance(fields, str):
        return (fields,)
    return fields


def match_query(
    items: Iterable[T],
    query: str,
    extract_text: TextExtractor,
    *,
    matcher: FuzzyMatcher,
    fuzzy: bool,
    threshold: float,
) -> list[T]:
    """Keep items matching ``query``; fuzzy mode also orders them by score."""

    if not query:
        return list(items)

    if not fuzzy:
        case_sensitive = matcher.case_sensitive
        needle = query if case_sensitive else query.lower()
        return [
            item
            for item in items
            if any(
                needle in (text if case_sensitive else text.lower())
                for text in searchable_fields(extract_text, item)
            )
        ]

    scored: list[tuple[float, T]] = []
    for item in items:
        result = matcher.match_fields(query, searchable_fields(extract_text, item))
        if result is not None and result.score >= threshold:
            scored.append((result.score, item))
    # list.sort is stable, equal scores keep source order.
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [item for _, item in scored]


def apply_predicates(items: Iterable[T], predicates: Mapping[str, Predicate]) -> list[T]:
    remaining = list(items)
    for predicate in predicates.values():
        remaining = [item for item in remaining if predicate(item)]
    return remaining


def group_items(
    items: Sequence[T],
    group_key: Callable[[T], Hashable] | None,
    group_order: Callable[[Any, Any], int] | None = None,
) -> list[Group]:
    """Bucket items by key in first-appearance order (or ``group_order``).

    Without a key extractor the whole sequence forms one unnamed group. Empty
    groups cannot appear: a bucket only exists once an item lands in it.
    """

    if group_key is None:
        return [(UNGROUPED, tuple(items))] if items else []

    buckets: dict[Hashable, list[T]] = {}
    for item in items:
        buckets.setdefault(group_key(item), []).append(item)
    keys = list(buckets)
    if group_order is not None:
        keys.sort(key=cmp_to_key(group_order))
    return [(key, tuple(buckets[key])) for key in keys]


def sort_groups(groups: Iterable[Group], comparator: Comparator | None) -> list[Group]:
    if comparator is None:
        return list(groups)
    sort_key = cmp_to_key(comparator)
    return [(key, tuple(sorted(members, key=sort_key))) for key, members in groups]


def slice_groups(groups: Sequence[Group], limit: int | None) -> tuple[tuple[T, ...], list[Group]]:
    """Take the first ``limit`` items in group order; drop groups left empty."""

    flat: list[T] = []
    visible: list[Group] = []
    for key, members in groups:
        if limit is not None:
            members = members[: max(limit - len(flat), 0)]
        if not members:
            continue
        flat.extend(members)
        visible.append((key, tuple(members)))
    return tuple(flat), visible


def flatten(groups: Iterable[Group]) -> tuple[T, ...]:
    return tuple(item for _, members in groups for item in members)


__all__ = [
    "Comparator",
    "Group",
    "Predicate",
    "TextExtractor",
    "UNGROUPED",
    "apply_predicates",
    "flatten",
    "group_items",
    "match_query",
    "slice_groups",
    "sort_groups",
]
