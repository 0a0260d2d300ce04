"""Shared fixtures: small item catalogues and controller factories."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from siftlist.config import SearchSettings
from siftlist.domain.models import SourceMode
from siftlist.services.controller import SearchController


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    category: str = "fruit"


def make_settings(**overrides) -> SearchSettings:
    overrides.setdefault("debounce_seconds", 0.01)
    return SearchSettings(_env_file=None, **overrides)


@pytest.fixture
def products() -> list[Product]:
    return [
        Product(1, "Apple"),
        Product(2, "Banana"),
        Product(3, "Cherry"),
        Product(4, "Carrot", "vegetable"),
        Product(5, "Broccoli", "vegetable"),
    ]


@pytest.fixture
def offline_controller():
    created: list[SearchController] = []

    def factory(items, *, group_key=None, group_order=None, **overrides) -> SearchController:
        controller = SearchController(
            source=SourceMode.OFFLINE_OWNED,
            identify=lambda product: product.id,
            extract_text=lambda product: [product.name],
            group_key=group_key,
            group_order=group_order,
            items=items,
            settings=make_settings(**overrides),
        )
        created.append(controller)
        return controller

    yield factory
    for controller in created:
        controller.dispose()


@pytest.fixture
def async_controller():
    created: list[SearchController] = []

    def factory(loader, *, group_key=None, source=SourceMode.ASYNC_OWNED, **overrides) -> SearchController:
        controller = SearchController(
            source=source,
            identify=lambda item: item["id"] if isinstance(item, dict) else item,
            group_key=group_key,
            loader=loader,
            settings=make_settings(**overrides),
        )
        created.append(controller)
        return controller

    yield factory
    for controller in created:
        controller.dispose()
