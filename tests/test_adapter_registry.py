"""Tests for adapter lookup and the startup coverage check."""

from __future__ import annotations

from typing import FrozenSet

import pytest

from file_converter.adapters import AdapterRegistry
from file_converter.adapters.registry import AdapterConfigurationError
from file_converter.app import create_app
from file_converter.formats import AUDIO, DOCUMENT, IMAGE, VIDEO

from .conftest import FakeAdapter


class _LimitedAdapter(FakeAdapter):
    def __init__(self, registry, *, name, categories, without=()) -> None:
        super().__init__(registry, name=name, categories=categories)
        self.without = frozenset(without)

    def supported_targets(self) -> FrozenSet[str]:
        return super().supported_targets() - self.without


def _registry(formats, image_without=()) -> AdapterRegistry:
    registry = AdapterRegistry()
    registry.register(_LimitedAdapter(formats, name="image", categories=(IMAGE,), without=image_without))
    registry.register(FakeAdapter(formats, name="media", categories=(AUDIO, VIDEO)))
    registry.register(FakeAdapter(formats, name="document", categories=(DOCUMENT,)))
    return registry


def test_get_and_list_adapters(formats):
    registry = _registry(formats)

    assert registry.get(AUDIO) is registry.get(VIDEO)
    assert [adapter.name for adapter in registry.list()] == ["image", "media", "document"]
    with pytest.raises(KeyError):
        registry.get("archive")


def test_duplicate_category_is_rejected(formats):
    registry = _registry(formats)

    with pytest.raises(ValueError):
        registry.register(FakeAdapter(formats, name="other", categories=(AUDIO,)))


def test_missing_catalog_format_fails_startup(test_settings, formats):
    with pytest.raises(AdapterConfigurationError) as exc:
        create_app(test_settings, adapters=_registry(formats, image_without={"avif"}))

    assert "image: image lacks avif" in str(exc.value)


def test_missing_cross_category_target_fails_startup(test_settings, formats):
    registry = AdapterRegistry()
    registry.register(_LimitedAdapter(formats, name="image", categories=(IMAGE,), without=formats.formats_of(DOCUMENT)))
    registry.register(FakeAdapter(formats, name="media", categories=(AUDIO, VIDEO)))
    registry.register(FakeAdapter(formats, name="document", categories=(DOCUMENT,)))

    with pytest.raises(AdapterConfigurationError) as exc:
        create_app(test_settings, adapters=registry)

    assert "image->document: image lacks pdf" in str(exc.value)


def test_missing_category_adapter_fails_startup(test_settings, formats):
    registry = AdapterRegistry()
    registry.register(FakeAdapter(formats, name="image", categories=(IMAGE,)))
    registry.register(FakeAdapter(formats, name="media", categories=(AUDIO, VIDEO)))

    with pytest.raises(AdapterConfigurationError) as exc:
        create_app(test_settings, adapters=registry)

    assert "document: no adapter" in str(exc.value)
