"""Static catalog of supported formats per category with default encoder options."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

IMAGE = "image"
AUDIO = "audio"
VIDEO = "video"
DOCUMENT = "document"


def normalize_format(value: str | None) -> str:
    """Lower-case a format identifier and strip a leading dot (".JPG" -> "jpg")."""
    return (value or "").strip().lower().lstrip(".")


@dataclass(frozen=True)
class CategorySpec:
    name: str
    formats: FrozenSet[str]
    default_options: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)


class FormatRegistry:
    """Read-only lookup over the category catalog.

    Category order is preserved from construction; it is the order reported by
    ``/formats`` and ``/system-info``.
    """

    def __init__(self, categories: Iterable[CategorySpec]) -> None:
        ordered: Dict[str, CategorySpec] = {}
        owner: Dict[str, str] = {}
        for spec in categories:
            if spec.name in ordered:
                raise ValueError(f"Category {spec.name} declared twice")
            for fmt in spec.formats:
                if fmt in owner:
                    raise ValueError(f"Format {fmt} belongs to both {owner[fmt]} and {spec.name}")
                owner[fmt] = spec.name
            frozen_options = MappingProxyType(
                {fmt: MappingProxyType(dict(opts)) for fmt, opts in spec.default_options.items()}
            )
            ordered[spec.name] = CategorySpec(spec.name, frozenset(spec.formats), frozen_options)
        self._categories = MappingProxyType(ordered)
        self._owner = MappingProxyType(owner)

    def list_categories(self) -> Tuple[str, ...]:
        return tuple(self._categories)

    def formats_of(self, category: str) -> FrozenSet[str]:
        spec = self._categories.get(category)
        return spec.formats if spec else frozenset()

    def category_of(self, fmt: str) -> Optional[str]:
        return self._owner.get(normalize_format(fmt))

    def default_options_of(self, category: str, fmt: str) -> Dict[str, Any]:
        spec = self._categories.get(category)
        if spec is None:
            return {}
        return dict(spec.default_options.get(normalize_format(fmt), {}))

    def __contains__(self, fmt: object) -> bool:
        return isinstance(fmt, str) and normalize_format(fmt) in self._owner

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: {
                "formats": sorted(spec.formats),
                "qualityOptions": {fmt: dict(opts) for fmt, opts in spec.default_options.items()},
            }
            for name, spec in self._categories.items()
        }


DEFAULT_CATEGORIES: Tuple[CategorySpec, ...] = (
    CategorySpec(
        IMAGE,
        frozenset({"jpg", "jpeg", "png", "webp", "gif", "bmp", "avif", "tiff"}),
        {
            "jpg": {"quality": 80, "progressive": True},
            "jpeg": {"quality": 80, "progressive": True},
            "png": {"compressionLevel": 6},
            "webp": {"quality": 80, "lossless": False},
            "avif": {"quality": 50, "lossless": False},
        },
    ),
    CategorySpec(
        AUDIO,
        frozenset({"mp3", "wav", "ogg", "aac", "flac", "m4a"}),
        {
            "mp3": {"audioBitrate": "192k", "audioChannels": 2},
            "aac": {"audioBitrate": "128k", "audioChannels": 2},
            "ogg": {"audioBitrate": "192k", "audioChannels": 2},
        },
    ),
    CategorySpec(
        VIDEO,
        frozenset({"mp4", "webm", "mov", "avi", "mkv", "flv"}),
        {
            "mp4": {"videoBitrate": "1000k", "audioBitrate": "128k", "preset": "medium"},
            "webm": {"videoBitrate": "1000k", "audioBitrate": "128k"},
            "mov": {"videoBitrate": "1000k", "audioBitrate": "128k"},
        },
    ),
    CategorySpec(
        DOCUMENT,
        frozenset({"pdf", "docx", "txt", "odt", "rtf", "html", "pptx", "xlsx"}),
    ),
)


def build_default_registry() -> FormatRegistry:
    return FormatRegistry(DEFAULT_CATEGORIES)


__all__ = [
    "AUDIO",
    "CategorySpec",
    "DEFAULT_CATEGORIES",
    "DOCUMENT",
    "FormatRegistry",
    "IMAGE",
    "VIDEO",
    "build_default_registry",
    "normalize_format",
]
