"""File conversion service: images, audio, video and office documents over HTTP."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
	from fastapi import FastAPI


def create_app(*args: Any, **kwargs: Any) -> "FastAPI":
	from .app import create_app as _create_app

	return _create_app(*args, **kwargs)


__all__ = ["create_app"]
