from siftlist.domain.models import (
    LoaderPage,
    MatchResult,
    PaginationState,
    ResultGroup,
    SearchMode,
    SearchState,
    SourceMode,
    TriggerMode,
)

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
