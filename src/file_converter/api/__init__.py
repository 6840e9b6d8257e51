"""HTTP surface of the conversion service."""

from .routes import router

__all__ = ["router"]
