"""Typo-tolerant text matching with deterministic scores.

Matching runs three phases and the first one that succeeds wins:

1. exact substring, always scored ``1.0``;
2. ordered subsequence (gaps allowed), scored inside ``(0.01, 0.99)``;
3. bounded edit distance against the closest window of the text, scored
   inside ``(0.01, 0.59)`` and strictly decreasing with the distance.

Because only phase 1 can ever produce ``1.0``, exact matches always sort
ahead of fuzzy ones.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Sequence

from siftlist.domain.models import MatchResult

DEFAULT_MAX_EDIT_DISTANCE = 2
WORD_BOUNDARY_CHARS = frozenset(" -_.,/()")

# Phase 2 weights; they sum to 1.0 before clamping.
CONSECUTIVE_WEIGHT = 0.50
DENSITY_WEIGHT = 0.25
POSITION_WEIGHT = 0.15
BOUNDARY_WEIGHT = 0.10
SUBSEQUENCE_MIN_SCORE = 0.02
SUBSEQUENCE_MAX_SCORE = 0.98

# Phase 3 score: a distance-driven base plus small position/boundary bonuses.
# The bonuses together stay below one distance step so ordering by distance holds.
EDIT_BASE_WEIGHT = 0.50
EDIT_POSITION_WEIGHT = 0.05
EDIT_BOUNDARY_WEIGHT = 0.03
EDIT_MIN_SCORE = 0.02
EDIT_MAX_SCORE = 0.58


def is_word_boundary(text: str, index: int) -> bool:
    if index <= 0:
        return True
    return text[index - 1] in WORD_BOUNDARY_CHARS


def fold_case(text: str, case_sensitive: bool = False) -> tuple[str, list[int] | None]:
    """Return the comparison form of ``text`` and a position map back to it.

    The map is ``None`` when every folded position is also an original one;
    otherwise ``origin[i]`` is the index in ``text`` that produced folded
    character ``i``. Some characters, such as a dotted capital I, lower-case
    to two code points.
    """

    if case_sensitive:
        return text, None
    folded = text.lower()
    if len(folded) == len(text):
        return folded, None
    chars: list[str] = []
    origin: list[int] = []
    for index, char in enumerate(text):
        lowered = char.lower()
        chars.append(lowered)
        origin.extend([index] * len(lowered))
    return "".join(chars), origin


class FuzzyMatcher:
    """Pure scorer; an instance only carries its configuration."""

    def __init__(
        self,
        *,
        case_sensitive: bool = False,
        max_edit_distance: int = DEFAULT_MAX_EDIT_DISTANCE,
    ) -> None:
        if max_edit_distance < 0:
            raise ValueError("max_edit_distance must be non-negative")
        self.case_sensitive = case_sensitive
        self.max_edit_distance = max_edit_distance

    def match(self, query: str, text: str) -> MatchResult | None:
        """Return the best match of ``query`` inside ``text`` or ``None``."""

        if not query or not text:
            return None
        q, _ = fold_case(query, self.case_sensitive)
        t, origin = fold_case(text, self.case_sensitive)
        result = self._match_folded(q, t)
        if result is None or origin is None:
            return result
        indices = dict.fromkeys(origin[index] for index in result.indices)
        return MatchResult(score=result.score, indices=tuple(indices))

    def _match_folded(self, q: str, t: str) -> MatchResult | None:
        if len(q) <= len(t):
            start = t.find(q)
            if start != -1:
                return MatchResult(score=1.0, indices=tuple(range(start, start + len(q))))

            subsequence = self._subsequence_match(q, t)
            if subsequence is not None:
                return subsequence

        if not self._edit_distance_allowed(q, t):
            return None
        return self._edit_distance_match(q, t)

    def match_fields(self, query: str, fields: Iterable[str]) -> MatchResult | None:
        """Best result across ``fields``; equal scores keep the earliest field."""

        best: MatchResult | None = None
        for text in fields:
            result = self.match(query, text)
            if result is not None and (best is None or result.score > best.score):
                best = result
                if best.score == 1.0:
                    break
        return best

    # -- phase 2 -------------------------------------------------------------

    def _subsequence_match(self, q: str, t: str) -> MatchResult | None:
        indices: list[int] = []
        position = 0
        for char in q:
            found = t.find(char, position)
            if found == -1:
                return None
            indices.append(found)
            position = found + 1

        # Pull each match as far right as the next one allows so runs cluster
        # near the tail; every gap is scanned once.
        for i in range(len(q) - 2, -1, -1):
            for j in range(indices[i + 1] - 1, indices[i], -1):
                if t[j] == q[i]:
                    indices[i] = j
                    break

        return MatchResult(score=self._subsequence_score(q, t, indices), indices=tuple(indices))

    @staticmethod
    def _subsequence_score(q: str, t: str, indices: Sequence[int]) -> float:
        q_len = len(q)
        in_run = 0
        for i in range(1, q_len):
            if indices[i] == indices[i - 1] + 1:
                in_run += 1
                if i == 1 or indices[i - 1] != indices[i - 2] + 1:
                    in_run += 1
        consecutive = 1.0 if q_len <= 1 else in_run / q_len
        density = q_len / (indices[-1] - indices[0] + 1)
        position = 1.0 - indices[0] / len(t)
        boundary = 1.0 if is_word_boundary(t, indices[0]) else 0.0

        raw = (
            consecutive * CONSECUTIVE_WEIGHT
            + density * DENSITY_WEIGHT
            + position * POSITION_WEIGHT
            + boundary * BOUNDARY_WEIGHT
        )
        return min(max(raw, SUBSEQUENCE_MIN_SCORE), SUBSEQUENCE_MAX_SCORE)

    # -- phase 3 -------------------------------------------------------------

    def _edit_distance_allowed(self, q: str, t: str) -> bool:
        """Cheap length and character-overlap guard in front of the DP."""

        limit = self.max_edit_distance
        if limit == 0:
            return False
        if len(q) - len(t) > limit:
            return False
        # Every unshared query character costs at least one edit.
        shared = sum((Counter(q) & Counter(t)).values())
        return len(q) - shared <= limit

    def _edit_distance_match(self, q: str, t: str) -> MatchResult | None:
        found = self._closest_window(q, t)
        if found is None:
            return None
        distance, start, end = found
        # Two edits on a three letter query is noise, not a typo.
        if distance * 3 >= len(q) * 2:
            return None
        return MatchResult(
            score=self._edit_distance_score(distance, start, t),
            indices=tuple(range(start, end)),
        )

    def _closest_window(self, q: str, t: str) -> tuple[int, int, int] | None:
        """Smallest edit distance between ``q`` and any substring of ``t``.

        Column-wise approximate substring DP: the window may start anywhere in
        the text for free. Returns ``(distance, start, end)`` of the earliest
        best window, or ``None`` when every window exceeds the limit.
        """

        m = len(q)
        limit = self.max_edit_distance
        dist = list(range(m + 1))
        starts = [0] * (m + 1)
        best: tuple[int, int, int] | None = (m, 0, 0) if m <= limit else None

        for j in range(1, len(t) + 1):
            char = t[j - 1]
            prev_dist, prev_start = dist[0], starts[0]
            dist[0], starts[0] = 0, j
            for i in range(1, m + 1):
                diag = prev_dist + (0 if q[i - 1] == char else 1)
                diag_start = prev_start
                prev_dist, prev_start = dist[i], starts[i]
                up = dist[i - 1] + 1
                left = prev_dist + 1
                if diag <= up and diag <= left:
                    dist[i], starts[i] = diag, diag_start
                elif up <= left:
                    dist[i], starts[i] = up, starts[i - 1]
                else:
                    dist[i], starts[i] = left, prev_start
            if dist[m] <= limit and (best is None or dist[m] < best[0]):
                best = (dist[m], starts[m], j)
        return best

    def _edit_distance_score(self, distance: int, start: int, t: str) -> float:
        base = EDIT_BASE_WEIGHT * (1.0 - distance / (self.max_edit_distance + 1))
        position = 1.0 - start / len(t)
        boundary = 1.0 if is_word_boundary(t, start) else 0.0
        raw = base + position * EDIT_POSITION_WEIGHT + boundary * EDIT_BOUNDARY_WEIGHT
        return min(max(raw, EDIT_MIN_SCORE), EDIT_MAX_SCORE)


def highlight_segments(
    text: str,
    terms: Sequence[str],
    *,
    fuzzy: bool = False,
    case_sensitive: bool = False,
    matcher: FuzzyMatcher | None = None,
) -> list[tuple[str, bool]]:
    """Split ``text`` into ``(segment, matched)`` runs for highlighting.

    Exact mode marks every occurrence of every term; fuzzy mode marks the
    characters reported by the matcher.
    """

    if not text:
        return []
    marked = [False] * len(text)
    haystack, origin = fold_case(text, case_sensitive)
    matcher = matcher or FuzzyMatcher(case_sensitive=case_sensitive)

    for term in terms:
        if not term:
            continue
        if fuzzy:
            result = matcher.match(term, text)
            if result is not None:
                for index in result.indices:
                    marked[index] = True
            continue
        needle, _ = fold_case(term, case_sensitive)
        start = haystack.find(needle)
        while start != -1:
            for index in range(start, start + len(needle)):
                marked[index if origin is None else origin[index]] = True
            start = haystack.find(needle, start + 1)

    segments: list[tuple[str, bool]] = []
    run_start = 0
    for index in range(1, len(text) + 1):
        if index == len(text) or marked[index] != marked[run_start]:
            segments.append((text[run_start:index], marked[run_start]))
            run_start = index
    return segments


__all__ = ["FuzzyMatcher", "fold_case", "highlight_segments", "is_word_boundary", "DEFAULT_MAX_EDIT_DISTANCE"]
