"""SearchController driven by an external page loader."""

from __future__ import annotations

import asyncio

import pytest
from structlog.testing import capture_logs

from siftlist.domain.models import LoaderPage, SearchMode, SearchState, SourceMode
from siftlist.services.exceptions import ConfigurationError, LoaderContractError


class GatedLoader:
    """Loader whose calls block until the test opens the matching gate."""

    def __init__(self, pages: dict | None = None) -> None:
        self.calls: list[tuple[str, object]] = []
        self.gates: dict[tuple[str, object], asyncio.Event] = {}
        self.pages = pages or {}
        self.failures: dict[tuple[str, object], Exception] = {}

    def gate(self, query: str, cursor=None) -> asyncio.Event:
        return self.gates.setdefault((query, cursor), asyncio.Event())

    async def __call__(self, query, cursor):
        self.calls.append((query, cursor))
        await self.gate(query, cursor).wait()
        failure = self.failures.get((query, cursor))
        if failure is not None:
            raise failure
        return self.pages.get((query, cursor), {"items": [f"{query}-{cursor}"], "has_more": False})


class InstantLoader:
    def __init__(self, pages: dict | None = None) -> None:
        self.calls: list[tuple[str, object]] = []
        self.pages = pages or {}
        self.error: Exception | None = None

    async def __call__(self, query, cursor):
        self.calls.append((query, cursor))
        if self.error is not None:
            raise self.error
        return self.pages.get((query, cursor), {"items": [f"{query}-{cursor}"], "has_more": False})


@pytest.mark.asyncio
async def test_late_stale_completion_is_discarded(async_controller):
    loader = GatedLoader()
    controller = async_controller(loader)

    first = asyncio.create_task(controller.search_immediate("one"))
    await asyncio.sleep(0)
    second = asyncio.create_task(controller.search_immediate("two"))
    await asyncio.sleep(0)

    loader.gate("two").set()
    await second
    loader.gate("one").set()
    await first

    assert controller.results == ("two-None",)
    assert controller.state.query == "two"
    assert controller.state.mode is SearchMode.LOADED
    assert controller.state.active_request_id == 2


@pytest.mark.asyncio
async def test_stale_failure_does_not_surface(async_controller):
    loader = GatedLoader()
    loader.failures[("one", None)] = RuntimeError("slow backend died")
    controller = async_controller(loader)

    first = asyncio.create_task(controller.search_immediate("one"))
    await asyncio.sleep(0)
    second = asyncio.create_task(controller.search_immediate("two"))
    await asyncio.sleep(0)
    loader.gate("two").set()
    await second
    loader.gate("one").set()
    await first

    assert controller.state.mode is SearchMode.LOADED
    assert controller.state.error_message is None


@pytest.mark.asyncio
async def test_debounced_async_search_calls_loader_once(async_controller):
    loader = InstantLoader()
    controller = async_controller(loader)

    controller.search("a")
    controller.search("ab")
    await controller.wait_idle()

    assert loader.calls == [("ab", None)]
    assert controller.results == ("ab-None",)


@pytest.mark.asyncio
async def test_loader_output_is_not_filtered_client_side(async_controller):
    loader = InstantLoader({("zzz", None): {"items": ["apple", "banana"], "has_more": False, "total": 2}})
    controller = async_controller(loader, fuzzy_enabled=True)

    await controller.search_immediate("zzz")

    assert controller.results == ("apple", "banana")
    assert controller.state.total_known == 2


@pytest.mark.asyncio
async def test_listeners_see_searching_then_loaded(async_controller):
    controller = async_controller(InstantLoader())
    modes: list[SearchMode] = []
    controller.subscribe(lambda state: modes.append(state.mode))

    await controller.search_immediate("kiwi")

    assert modes == [SearchMode.SEARCHING, SearchMode.LOADED]


@pytest.mark.asyncio
async def test_load_more_appends_next_page_with_cursor(async_controller):
    loader = InstantLoader(
        {
            ("fruit", None): {"items": ["apple", "banana"], "has_more": True, "next_cursor": "p2"},
            ("fruit", "p2"): {"items": ["cherry"], "has_more": False},
        }
    )
    controller = async_controller(loader)

    await controller.search_immediate("fruit")
    assert controller.state.pagination.has_more is True

    await controller.load_more()
    await controller.load_more()

    assert controller.results == ("apple", "banana", "cherry")
    assert controller.state.pagination.has_more is False
    assert loader.calls == [("fruit", None), ("fruit", "p2")]


@pytest.mark.asyncio
async def test_load_more_ignored_while_same_cursor_in_flight(async_controller):
    loader = GatedLoader(
        {
            ("fruit", None): {"items": ["apple"], "has_more": True, "next_cursor": 1},
            ("fruit", 1): {"items": ["banana"], "has_more": False},
        }
    )
    loader.gate("fruit").set()
    controller = async_controller(loader)
    await controller.search_immediate("fruit")

    pending = asyncio.create_task(controller.load_more())
    await asyncio.sleep(0)
    assert controller.state.is_loading_more is True

    await controller.load_more()
    loader.gate("fruit", 1).set()
    await pending

    assert loader.calls == [("fruit", None), ("fruit", 1)]
    assert controller.results == ("apple", "banana")


@pytest.mark.asyncio
async def test_new_search_supersedes_in_flight_load_more(async_controller):
    loader = GatedLoader(
        {
            ("fruit", None): {"items": ["apple"], "has_more": True, "next_cursor": 1},
            ("veg", None): {"items": ["leek"], "has_more": False},
        }
    )
    loader.gate("fruit").set()
    loader.gate("veg").set()
    controller = async_controller(loader)
    await controller.search_immediate("fruit")

    pending = asyncio.create_task(controller.load_more())
    await asyncio.sleep(0)
    await controller.search_immediate("veg")
    loader.gate("fruit", 1).set()
    await pending

    assert controller.results == ("leek",)


@pytest.mark.asyncio
async def test_loader_failure_keeps_results_selection_and_pagination(async_controller):
    loader = InstantLoader({("fruit", None): {"items": [{"id": 1}, {"id": 2}], "has_more": True, "next_cursor": 5}})
    with capture_logs() as logs:
        controller = async_controller(loader)
        await controller.search_immediate("fruit")
        controller.select(1)

        loader.error = RuntimeError("backend unavailable")
        await controller.refresh()

    state = controller.state
    assert state.mode is SearchMode.ERROR
    assert state.error_message == "backend unavailable"
    assert state.is_loading is False
    assert state.results == ({"id": 1}, {"id": 2})
    assert state.selection == frozenset({1})
    assert state.pagination.cursor == 5
    assert any(entry["event"] == "loader_failed" for entry in logs)

    loader.error = None
    await controller.retry()
    assert controller.state.mode is SearchMode.LOADED
    assert controller.state.error_message is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        {"items": []},
        {"items": ["a"], "has_more": True},
        {"has_more": False},
        ["a", "b"],
        None,
    ],
)
async def test_malformed_loader_page_raises_contract_error(async_controller, response):
    async def loader(query, cursor):
        return response

    controller = async_controller(loader)

    with pytest.raises(LoaderContractError):
        await controller.search_immediate("fruit")

    assert controller.state.is_loading is False
    assert controller.state.mode is not SearchMode.ERROR


@pytest.mark.asyncio
async def test_loader_page_model_is_accepted(async_controller):
    async def loader(query, cursor):
        return LoaderPage(items=[query], has_more=False)

    controller = async_controller(loader)
    await controller.search_immediate("kiwi")

    assert controller.results == ("kiwi",)


@pytest.mark.asyncio
async def test_dispose_turns_in_flight_completion_into_noop(async_controller):
    loader = GatedLoader()
    controller = async_controller(loader)
    snapshots: list[SearchState] = []
    controller.subscribe(snapshots.append)

    pending = asyncio.create_task(controller.search_immediate("kiwi"))
    await asyncio.sleep(0)
    controller.dispose()
    loader.gate("kiwi").set()
    await pending

    assert len(snapshots) == 1
    assert controller.results == ()
    assert controller.state.mode is SearchMode.SEARCHING


@pytest.mark.asyncio
async def test_select_all_uses_visible_page_only(async_controller):
    loader = InstantLoader({("fruit", None): {"items": [{"id": 1}, {"id": 2}], "has_more": True, "next_cursor": 2}})
    controller = async_controller(loader)
    await controller.search_immediate("fruit")

    controller.select_all()

    assert controller.selection == frozenset({1, 2})


@pytest.mark.asyncio
async def test_async_results_are_grouped(async_controller):
    items = [{"id": 1, "kind": "b"}, {"id": 2, "kind": "a"}, {"id": 3, "kind": "b"}]
    loader = InstantLoader({("x", None): {"items": items, "has_more": False}})
    controller = async_controller(loader, group_key=lambda item: item["kind"])

    await controller.search_immediate("x")

    assert [group.key for group in controller.groups] == ["b", "a"]
    assert [item["id"] for item in controller.results] == [1, 3, 2]


@pytest.mark.asyncio
async def test_filter_change_reloads_without_client_filtering(async_controller):
    loader = InstantLoader()
    controller = async_controller(loader)

    controller.set_filter("ignored_before_search", lambda item: False)
    await controller.wait_idle()
    assert loader.calls == []

    await controller.search_immediate("kiwi")
    controller.set_filter("hide_all", lambda item: False)
    await controller.wait_idle()

    assert loader.calls == [("kiwi", None), ("kiwi", None)]
    assert controller.results == ("kiwi-None",)


@pytest.mark.asyncio
async def test_async_controller_rejects_in_memory_items(async_controller):
    controller = async_controller(InstantLoader())

    with pytest.raises(ConfigurationError):
        controller.set_items(["apple"])


@pytest.mark.asyncio
async def test_async_controller_without_loader_fails_fast(async_controller):
    controller = async_controller(None)

    with pytest.raises(ConfigurationError):
        await controller.search_immediate("kiwi")


@pytest.mark.asyncio
async def test_external_controller_switches_source_with_loader(async_controller):
    loader = InstantLoader()
    controller = async_controller(None, source=SourceMode.EXTERNAL_CONTROLLER)

    controller.set_async_loader(loader)
    await controller.search_immediate("kiwi")
    assert controller.results == ("kiwi-None",)

    controller.set_async_loader(None)
    await controller.clear_search()
    controller.set_items(["x"])
    assert controller.results == ("x",)

    controller.release()
    assert not controller.is_disposed
