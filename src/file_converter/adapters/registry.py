"""Adapter registry mapping format categories to converter adapters."""

from __future__ import annotations

from typing import Dict, Iterable, List

from ..formats import FormatRegistry
from ..validation import ConversionValidator
from .base import ConverterAdapter


class AdapterConfigurationError(RuntimeError):
    """Raised at startup when the catalog names a format no adapter can produce."""


class AdapterRegistry:
    def __init__(self) -> None:
        self._by_category: Dict[str, ConverterAdapter] = {}

    def register(self, adapter: ConverterAdapter) -> None:
        for category in adapter.categories:
            if category in self._by_category:
                raise ValueError(f"Adapter already registered for {category}")
        for category in adapter.categories:
            self._by_category[category] = adapter

    def get(self, category: str) -> ConverterAdapter:
        if category not in self._by_category:
            raise KeyError(f"No adapter registered for {category}")
        return self._by_category[category]

    def list(self) -> Iterable[ConverterAdapter]:
        seen: List[ConverterAdapter] = []
        for adapter in self._by_category.values():
            if adapter not in seen:
                seen.append(adapter)
        return seen

    def verify(self, formats: FormatRegistry, validator: ConversionValidator) -> None:
        """Fail fast when a catalog format (or allowed cross-category target) has no encoder."""

        problems: List[str] = []
        for category in formats.list_categories():
            adapter = self._by_category.get(category)
            if adapter is None:
                problems.append(f"{category}: no adapter")
                continue
            missing = formats.formats_of(category) - adapter.supported_targets()
            if missing:
                problems.append(f"{category}: {adapter.name} lacks {', '.join(sorted(missing))}")

        for (source, target), permitted in validator.cross_category.items():
            adapter = self._by_category.get(source)
            if adapter is None:
                continue
            wanted = permitted if permitted is not None else formats.formats_of(target)
            missing = set(wanted) - adapter.supported_targets()
            if missing:
                problems.append(f"{source}->{target}: {adapter.name} lacks {', '.join(sorted(missing))}")

        if problems:
            raise AdapterConfigurationError("Unimplemented formats: " + "; ".join(problems))
