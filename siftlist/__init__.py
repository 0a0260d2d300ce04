"""Searchable, filterable, sortable collections for any rendering layer."""

from siftlist.config import HttpLoaderSettings, SearchSettings, get_settings
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
from siftlist.services.cache import CacheKey, ResultCache
from siftlist.services.controller import SearchController
from siftlist.services.exceptions import (
    ConfigurationError,
    LoaderContractError,
    LoaderError,
    SiftListError,
)
from siftlist.services.loaders import HttpPageLoader
from siftlist.services.matcher import FuzzyMatcher, highlight_segments
from siftlist.utils.arbiter import RequestArbiter
from siftlist.utils.debounce import DebounceTimer

__all__ = [
    "CacheKey",
    "ConfigurationError",
    "DebounceTimer",
    "FuzzyMatcher",
    "HttpLoaderSettings",
    "HttpPageLoader",
    "LoaderContractError",
    "LoaderError",
    "LoaderPage",
    "MatchResult",
    "PaginationState",
    "RequestArbiter",
    "ResultCache",
    "ResultGroup",
    "SearchController",
    "SearchMode",
    "SearchSettings",
    "SearchState",
    "SiftListError",
    "SourceMode",
    "TriggerMode",
    "get_settings",
    "highlight_segments",
]
