"""Search/filter/sort/paginate/select state machine.

``SearchController`` owns the authoritative ``SearchState`` and is the only
place it changes. Every committed transition produces one immutable snapshot
that is pushed to subscribers.

All methods must be called from the event loop that owns the controller.
Async loads are ordinary coroutines; when they finish, their result is only
applied if the request id they were issued under is still the latest one.
"""

from __future__ import annotations

import asyncio
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Coroutine, Generic, Hashable, Iterable, Mapping, Sequence, TypeVar

from pydantic import ValidationError

from siftlist.config import SearchSettings, get_settings
from siftlist.domain.models import (
    LoaderPage,
    PaginationState,
    ResultGroup,
    SearchMode,
    SearchState,
    SourceMode,
    TriggerMode,
)
from siftlist.logging import logger
from siftlist.services.cache import ResultCache
from siftlist.services.exceptions import ConfigurationError, LoaderContractError
from siftlist.services.matcher import FuzzyMatcher
from siftlist.services.pipeline import (
    Comparator,
    Group,
    Predicate,
    TextExtractor,
    apply_predicates,
    flatten,
    group_items,
    match_query,
    slice_groups,
    sort_groups,
)
from siftlist.services.selection import Selection
from siftlist.utils.arbiter import RequestArbiter
from siftlist.utils.debounce import DebounceTimer

T = TypeVar("T")

Loader = Callable[[str, Any], Awaitable[LoaderPage | Mapping[str, Any]]]
StateListener = Callable[[SearchState], None]
SelectionListener = Callable[[frozenset], None]


class SearchController(Generic[T]):
    def __init__(
        self,
        *,
        source: SourceMode,
        identify: Callable[[T], Hashable],
        extract_text: TextExtractor | None = None,
        group_key: Callable[[T], Hashable] | None = None,
        group_order: Callable[[Any, Any], int] | None = None,
        items: Iterable[T] | None = None,
        loader: Loader | None = None,
        settings: SearchSettings | None = None,
    ) -> None:
        if source is SourceMode.OFFLINE_OWNED:
            if extract_text is None:
                raise ConfigurationError("offline controllers need an extract_text accessor")
            if loader is not None:
                raise ConfigurationError("offline controllers do not accept an async loader")
        if source is SourceMode.ASYNC_OWNED and items is not None:
            raise ConfigurationError("async controllers do not accept in-memory items")

        settings = settings or get_settings()
        self.source = source
        self._identify = identify
        self._extract_text = extract_text
        self._group_key = group_key
        self._group_order = group_order
        self._loader = loader

        self._trigger_mode = TriggerMode(settings.trigger_mode)
        self._case_sensitive = settings.case_sensitive
        self._min_search_length = settings.min_search_length
        self._fuzzy_enabled = settings.fuzzy_enabled
        self._fuzzy_threshold = settings.fuzzy_threshold
        self._max_edit_distance = settings.max_edit_distance
        self._cache_enabled = settings.cache_enabled
        self._page_size = settings.page_size
        self._paginate_offline = settings.paginate_offline
        self._matcher = self._build_matcher()

        self._arbiter = RequestArbiter()
        self._debounce = DebounceTimer(settings.debounce_seconds)
        self._cache: ResultCache[list[Group]] = ResultCache(settings.max_cache_size)
        self._selection = Selection(identify)

        self._items: list[T] = list(items) if items is not None else []
        self._loaded: list[T] = []
        self._derived: list[Group] = []
        self._filters: dict[str, Predicate] = {}
        self._comparator: Comparator | None = None
        self._sort_identity = 0
        self._input_query = ""

        self._state = SearchState(pagination=PaginationState(page_size=self._page_size))
        self._listeners: list[StateListener] = []
        self._selection_listeners: list[SelectionListener] = []
        self._tasks: set[asyncio.Task] = set()
        self._notifying = False
        self._disposed = False
        self._log = logger.bind(source=source.value)

        if items is not None:
            self._execute_offline("")

    # -- read side -----------------------------------------------------------

    @property
    def state(self) -> SearchState:
        return self._state

    @property
    def results(self) -> tuple[T, ...]:
        return self._state.results

    @property
    def groups(self) -> tuple[ResultGroup, ...]:
        return self._state.groups

    @property
    def all_items(self) -> tuple[T, ...]:
        return tuple(self._items)

    @property
    def pending_query(self) -> str:
        """Latest text received through :meth:`search`, executed or not."""

        return self._input_query

    @property
    def active_filters(self) -> Mapping[str, Predicate]:
        return MappingProxyType(self._filters)

    @property
    def comparator(self) -> Comparator | None:
        return self._comparator

    @property
    def selection(self) -> frozenset:
        return self._selection.snapshot()

    @property
    def trigger_mode(self) -> TriggerMode:
        return self._trigger_mode

    @property
    def case_sensitive(self) -> bool:
        return self._case_sensitive

    @property
    def min_search_length(self) -> int:
        return self._min_search_length

    @property
    def fuzzy_enabled(self) -> bool:
        return self._fuzzy_enabled

    @property
    def fuzzy_threshold(self) -> float:
        return self._fuzzy_threshold

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def is_selected(self, item_id: Hashable) -> bool:
        return item_id in self._selection

    # -- subscriptions -------------------------------------------------------

    def subscribe(self, listener: StateListener) -> None:
        if self._disposed:
            return
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def subscribe_selection(self, listener: SelectionListener) -> None:
        if self._disposed:
            return
        if listener not in self._selection_listeners:
            self._selection_listeners.append(listener)

    def unsubscribe_selection(self, listener: SelectionListener) -> None:
        if listener in self._selection_listeners:
            self._selection_listeners.remove(listener)

    # -- data source ---------------------------------------------------------

    def set_items(self, items: Iterable[T]) -> None:
        """Replace the in-memory backing set and re-derive the visible results."""

        if not self._accepting():
            return
        if self._async_source():
            raise ConfigurationError("set_items is not available while an async loader drives results")
        self._items = list(items)
        self._cache.clear()
        self._execute_offline(self._state.query)

    def set_async_loader(self, loader: Loader | None) -> None:
        """Install the page loader. Does not start a search."""

        if not self._accepting():
            return
        if self.source is SourceMode.OFFLINE_OWNED:
            raise ConfigurationError("offline controllers do not accept an async loader")
        if loader is None and self.source is SourceMode.ASYNC_OWNED:
            raise ConfigurationError("async controllers cannot drop their loader")
        self._loader = loader

    # -- searching -----------------------------------------------------------

    def search(self, query: str) -> None:
        """Handle an edit of the query text according to the trigger mode."""

        if not self._accepting():
            return
        self._input_query = query
        if self._trigger_mode is TriggerMode.ON_EDIT:
            self._debounce.schedule(self._on_debounce, query)

    async def search_immediate(self, query: str) -> None:
        if not self._accepting():
            return
        self._debounce.cancel()
        self._input_query = query
        await self._execute(query)

    async def submit(self) -> None:
        """Execute the stored query text now (on-submit trigger mode)."""

        await self.search_immediate(self._input_query)

    async def clear_search(self) -> None:
        await self.search_immediate("")

    async def refresh(self) -> None:
        """Drop cached results and reload the current query from the first page."""

        if not self._accepting():
            return
        self._cache.clear()
        await self._execute(self._state.query)

    async def retry(self) -> None:
        if not self._accepting():
            return
        await self._execute(self._state.query)

    async def load_more(self) -> None:
        """Fetch (async) or reveal (offline) the next page of results."""

        if not self._accepting():
            return
        state = self._state
        if not state.pagination.has_more:
            return
        if (state.is_loading or state.is_loading_more) and self._arbiter.is_current(state.active_request_id):
            return

        if self._async_source():
            request_id = self._arbiter.next_id()
            await self._load_page(request_id, state.query, state.pagination.cursor, append=True)
            return
        if not self._paginate_offline:
            return
        request_id = self._arbiter.next_id()
        self._publish_offline(request_id, state.query, state.pagination.cursor + self._page_size, searched=True)

    async def wait_idle(self) -> None:
        """Return once no debounce timer is pending and no load is running."""

        while True:
            remaining = self._debounce.remaining()
            if remaining is not None:
                await asyncio.sleep(remaining)
                await asyncio.sleep(0)
                continue
            if not self._tasks:
                return
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- filters and sorting -------------------------------------------------

    def set_filter(self, key: str, predicate: Predicate) -> None:
        if not self._accepting():
            return
        if self._filters.get(key) is not predicate:
            self._cache.bump_version(key)
        self._filters[key] = predicate
        self._reexecute()

    def remove_filter(self, key: str) -> None:
        if not self._accepting() or key not in self._filters:
            return
        del self._filters[key]
        self._cache.bump_version(key)
        self._reexecute()

    def clear_filters(self) -> None:
        if not self._accepting() or not self._filters:
            return
        for key in self._filters:
            self._cache.bump_version(key)
        self._filters.clear()
        self._reexecute()

    def set_sort_comparator(self, comparator: Comparator | None) -> None:
        """Install a ``cmp``-style comparator; ``None`` restores source/relevance order."""

        if not self._accepting():
            return
        self._comparator = comparator
        self._sort_identity += 1
        self._reexecute()

    # -- runtime settings ----------------------------------------------------

    def update_case_sensitive(self, value: bool) -> None:
        if not self._accepting() or value == self._case_sensitive:
            return
        self._case_sensitive = value
        self._matcher = self._build_matcher()
        self._settings_changed()

    def update_min_search_length(self, value: int) -> None:
        if not self._accepting() or value == self._min_search_length:
            return
        if value < 0:
            raise ConfigurationError("min_search_length must be non-negative")
        self._min_search_length = value
        self._settings_changed()

    def update_fuzzy_enabled(self, value: bool) -> None:
        if not self._accepting() or value == self._fuzzy_enabled:
            return
        self._fuzzy_enabled = value
        self._settings_changed()

    def update_fuzzy_threshold(self, value: float) -> None:
        if not self._accepting() or value == self._fuzzy_threshold:
            return
        if not 0.0 <= value <= 1.0:
            raise ConfigurationError("fuzzy_threshold must be between 0.0 and 1.0")
        self._fuzzy_threshold = value
        self._settings_changed()

    # -- selection -----------------------------------------------------------

    def toggle_selection(self, item_id: Hashable) -> None:
        if self._accepting() and self._selection.toggle(item_id):
            self._selection_changed()

    def select(self, item_id: Hashable) -> None:
        if self._accepting() and self._selection.add(item_id):
            self._selection_changed()

    def deselect(self, item_id: Hashable) -> None:
        if self._accepting() and self._selection.discard(item_id):
            self._selection_changed()

    def select_all(self) -> None:
        """Select every currently visible item; hidden items are left alone."""

        if self._accepting() and self._selection.add_items(self._state.results):
            self._selection_changed()

    def select_where(self, predicate: Callable[[T], bool]) -> None:
        if self._accepting() and self._selection.add_items(self._state.results, predicate):
            self._selection_changed()

    def deselect_where(self, predicate: Callable[[T], bool]) -> None:
        """Deselect matching items, including selected items no longer visible."""

        if not self._accepting():
            return
        known = self._loaded if self._async_source() else self._items
        if self._selection.discard_where(predicate, known):
            self._selection_changed()

    def deselect_all(self) -> None:
        if self._accepting() and self._selection.clear():
            self._selection_changed()

    # -- lifecycle -----------------------------------------------------------

    def dispose(self) -> None:
        """Tear down: cancel the timer, orphan in-flight loads, drop listeners."""

        if self._disposed:
            return
        self._disposed = True
        self._debounce.cancel()
        self._arbiter.invalidate()
        self._listeners.clear()
        self._selection_listeners.clear()
        self._cache.clear()
        self._log.debug("controller_disposed", inflight=len(self._tasks))

    def release(self) -> None:
        """Called by a view going away; externally owned controllers survive it."""

        if self.source is SourceMode.EXTERNAL_CONTROLLER:
            return
        self.dispose()

    # -- internals -----------------------------------------------------------

    def _accepting(self) -> bool:
        if self._disposed:
            return False
        if self._notifying:
            raise ConfigurationError("listeners must not mutate the controller during notification")
        return True

    def _async_source(self) -> bool:
        if self.source is SourceMode.ASYNC_OWNED:
            return True
        return self.source is SourceMode.EXTERNAL_CONTROLLER and self._loader is not None

    def _build_matcher(self) -> FuzzyMatcher:
        return FuzzyMatcher(case_sensitive=self._case_sensitive, max_edit_distance=self._max_edit_distance)

    def _settings_changed(self) -> None:
        self._cache.clear()
        if self._state.query or not self._async_source():
            self._reexecute()

    def _on_debounce(self, query: str) -> None:
        if not self._disposed:
            self._spawn(self._execute(query))

    def _reexecute(self) -> None:
        query = self._state.query
        if not self._async_source():
            self._execute_offline(query, searched=self._state.has_searched)
        elif self._loader is not None and self._state.has_searched:
            self._spawn(self._execute(query))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log.error("background_search_failed", error=str(exc), exc_info=exc)

    def _below_min_length(self, query: str) -> bool:
        return bool(query) and len(query) < self._min_search_length

    async def _execute(self, query: str) -> None:
        if self._disposed or self._below_min_length(query):
            return
        if self._async_source():
            await self._load_page(self._arbiter.next_id(), query, None, append=False)
        else:
            self._execute_offline(query, searched=True)

    def _execute_offline(self, query: str, *, searched: bool = False) -> None:
        if self._disposed or self._below_min_length(query):
            return
        if query and self._extract_text is None:
            raise ConfigurationError("offline search needs an extract_text accessor")
        request_id = self._arbiter.next_id()
        self._derived = self._derive(query)
        limit = self._page_size if self._paginate_offline else None
        self._publish_offline(request_id, query, limit, searched=searched)

    def _derive(self, query: str) -> list[Group]:
        normalized = query if self._case_sensitive else query.lower()
        key = self._cache.make_key(normalized, self._filters, self._sort_identity)
        if self._cache_enabled:
            cached = self._cache.get(key)
            if cached is not None:
                self._log.debug("cache_hit", query=query)
                return cached

        matched = match_query(
            self._items,
            query,
            self._extract_text,
            matcher=self._matcher,
            fuzzy=self._fuzzy_enabled,
            threshold=self._fuzzy_threshold,
        )
        filtered = apply_predicates(matched, self._filters)
        groups = sort_groups(group_items(filtered, self._group_key, self._group_order), self._comparator)

        if self._cache_enabled:
            self._cache.put(key, groups)
        return groups

    def _publish_offline(self, request_id: int, query: str, limit: int | None, *, searched: bool) -> None:
        total = sum(len(members) for _, members in self._derived)
        visible, groups = slice_groups(self._derived, limit)
        self._selection.remember(visible)
        self._commit(
            query=query,
            mode=SearchMode.LOADED,
            results=visible,
            groups=self._to_groups(groups),
            total_known=total,
            is_loading=False,
            is_loading_more=False,
            error_message=None,
            active_request_id=request_id,
            has_searched=self._state.has_searched or searched,
            pagination=PaginationState(
                cursor=len(visible),
                has_more=len(visible) < total,
                page_size=self._page_size,
            ),
        )
        self._log.debug("search_executed", query=query, request_id=request_id, results=len(visible), total=total)

    async def _load_page(self, request_id: int, query: str, cursor: Any, *, append: bool) -> None:
        loader = self._loader
        if loader is None:
            raise ConfigurationError("no async loader installed")

        previous_mode = self._state.mode
        self._commit(
            query=query,
            mode=SearchMode.SEARCHING,
            is_loading=not append,
            is_loading_more=append,
            error_message=None,
            active_request_id=request_id,
            has_searched=True,
        )
        try:
            raw = await loader(query, cursor)
            if self._disposed:
                return
            page = self._coerce_page(raw)
        except LoaderContractError:
            if self._disposed:
                return
            if self._arbiter.is_current(request_id):
                self._commit(
                    mode=SearchMode.IDLE if previous_mode is SearchMode.SEARCHING else previous_mode,
                    is_loading=False,
                    is_loading_more=False,
                )
            raise
        except Exception as exc:
            if self._disposed or not self._arbiter.is_current(request_id):
                self._log.debug("search_result_discarded", request_id=request_id, failed=True)
                return
            self._log.warning("loader_failed", query=query, request_id=request_id, error=str(exc))
            self._commit(
                mode=SearchMode.ERROR,
                error_message=str(exc) or exc.__class__.__name__,
                is_loading=False,
                is_loading_more=False,
            )
            return

        if not self._arbiter.is_current(request_id):
            self._log.debug("search_result_discarded", request_id=request_id, latest=self._arbiter.latest)
            return

        self._loaded = self._loaded + page.items if append else list(page.items)
        self._selection.remember(page.items)
        groups = group_items(self._loaded, self._group_key, self._group_order)
        self._commit(
            mode=SearchMode.LOADED,
            results=flatten(groups),
            groups=self._to_groups(groups),
            total_known=page.total,
            is_loading=False,
            is_loading_more=False,
            pagination=PaginationState(
                cursor=page.next_cursor,
                has_more=page.has_more,
                page_size=self._page_size,
            ),
        )
        self._log.debug("search_executed", query=query, request_id=request_id, results=len(self._loaded))

    def _coerce_page(self, raw: Any) -> LoaderPage:
        if isinstance(raw, LoaderPage):
            return raw
        if isinstance(raw, Mapping):
            try:
                return LoaderPage.model_validate(raw)
            except ValidationError as exc:
                self._log.error("loader_contract_violated", error=str(exc))
                raise LoaderContractError(f"malformed loader page: {exc}") from exc
        self._log.error("loader_contract_violated", returned=type(raw).__name__)
        raise LoaderContractError(f"loader returned {type(raw).__name__}, expected a page mapping")

    @staticmethod
    def _to_groups(groups: Sequence[Group]) -> tuple[ResultGroup, ...]:
        return tuple(ResultGroup(key=key, items=members) for key, members in groups)

    def _selection_changed(self) -> None:
        self._selection.remember(self._state.results)
        snapshot = self._selection.snapshot()
        self._commit(selection=snapshot)
        self._notify(self._selection_listeners, snapshot)

    def _commit(self, **changes: Any) -> None:
        self._state = self._state.model_copy(update=changes)
        self._notify(self._listeners, self._state)

    def _notify(self, listeners: Sequence[Callable[[Any], None]], payload: Any) -> None:
        if self._disposed or not listeners:
            return
        self._notifying = True
        try:
            for listener in list(listeners):
                try:
                    listener(payload)
                except Exception:
                    self._log.exception("listener_failed", listener=getattr(listener, "__name__", repr(listener)))
        finally:
            self._notifying = False


__all__ = ["Loader", "SearchController", "SelectionListener", "StateListener"]
