"""Decides whether a source/target format pair may be converted."""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Mapping, Optional, Tuple

from .formats import AUDIO, DOCUMENT, IMAGE, VIDEO, FormatRegistry, normalize_format

UNSUPPORTED_FORMAT = "Unsupported format"
SAME_CATEGORY = "Same category conversion"
CROSS_CATEGORY = "Cross-category conversion allowed"

# (source category, target category) -> permitted target formats, None meaning any.
# Directional policy data: review whenever a category is added to the catalog.
DEFAULT_CROSS_CATEGORY: Mapping[Tuple[str, str], Optional[FrozenSet[str]]] = {
    (VIDEO, AUDIO): None,
    (IMAGE, DOCUMENT): frozenset({"pdf"}),
}


@dataclass(frozen=True)
class ValidationDecision:
    allowed: bool
    reason: str


class ConversionValidator:
    def __init__(
        self,
        registry: FormatRegistry,
        cross_category: Mapping[Tuple[str, str], Optional[FrozenSet[str]]] | None = None,
    ) -> None:
        self._registry = registry
        self._cross = dict(DEFAULT_CROSS_CATEGORY if cross_category is None else cross_category)

    @property
    def cross_category(self) -> Mapping[Tuple[str, str], Optional[FrozenSet[str]]]:
        return dict(self._cross)

    def validate(self, source_ext: str, target_ext: str) -> ValidationDecision:
        source_category = self._registry.category_of(source_ext)
        target_category = self._registry.category_of(target_ext)

        if not source_category or not target_category:
            return ValidationDecision(False, UNSUPPORTED_FORMAT)

        if source_category == target_category:
            return ValidationDecision(True, SAME_CATEGORY)

        key = (source_category, target_category)
        if key in self._cross:
            permitted = self._cross[key]
            if permitted is None or normalize_format(target_ext) in permitted:
                return ValidationDecision(True, CROSS_CATEGORY)
            return ValidationDecision(
                False,
                f"Cannot convert {source_category} to {target_category} ({normalize_format(target_ext)})",
            )

        return ValidationDecision(False, f"Cannot convert {source_category} to {target_category}")

    def adapter_category(self, source_ext: str, target_ext: str) -> Optional[str]:
        """Category whose adapter handles an allowed pair; the source side always owns it."""
        if not self.validate(source_ext, target_ext).allowed:
            return None
        return self._registry.category_of(source_ext)
