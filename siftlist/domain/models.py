"""Pydantic models shared across the matcher, controller and host layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SearchMode(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    LOADED = "loaded"
    ERROR = "error"


class SourceMode(str, Enum):
    """Where results come from, fixed once at controller construction."""

    OFFLINE_OWNED = "offline_owned"
    ASYNC_OWNED = "async_owned"
    EXTERNAL_CONTROLLER = "external_controller"


class TriggerMode(str, Enum):
    ON_EDIT = "on_edit"
    ON_SUBMIT = "on_submit"


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Score in ``[0, 1]`` plus the matched character positions of the text."""

    score: float
    indices: tuple[int, ...] = field(default_factory=tuple)

    @property
    def is_exact(self) -> bool:
        return self.score == 1.0


class ResultGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: Any
    items: tuple[Any, ...]


class PaginationState(BaseModel):
    model_config = ConfigDict(frozen=True)

    cursor: Any = None
    has_more: bool = False
    page_size: int = Field(default=20, ge=1)


class SearchState(BaseModel):
    """Immutable snapshot delivered to subscribers on every committed transition."""

    model_config = ConfigDict(frozen=True)

    query: str = ""
    mode: SearchMode = SearchMode.IDLE
    results: tuple[Any, ...] = ()
    groups: tuple[ResultGroup, ...] = ()
    total_known: int | None = None
    is_loading: bool = False
    is_loading_more: bool = False
    error_message: str | None = None
    active_request_id: int = 0
    has_searched: bool = False
    pagination: PaginationState = Field(default_factory=PaginationState)
    selection: frozenset[Any] = frozenset()


class LoaderPage(BaseModel):
    """One page returned by an async loader."""

    items: list[Any]
    has_more: bool
    next_cursor: Any = None
    total: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _cursor_required_when_more(self) -> "LoaderPage":
        if self.has_more and self.next_cursor is None:
            raise ValueError("next_cursor is required when has_more is true")
        return self


__all__ = [
    "LoaderPage",
    "MatchResult",
    "PaginationState",
    "ResultGroup",
    "SearchMode",
    "SearchState",
    "SourceMode",
    "TriggerMode",
]
