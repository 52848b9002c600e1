"""Utility helpers for the Up Next metadata core."""

from __future__ import annotations

from .errors import InvalidRequestError

IMAGE_SIZES = ("w92", "w154", "w185", "w342", "w500", "w780", "original")


def build_image_url(base_url: str, path: str | None, size: str = "w500") -> str | None:
    """Return a full TMDB image URL for ``path`` or ``None`` when absent."""

    if not path:
        return None
    if size not in IMAGE_SIZES:
        raise ValueError(f"Unsupported image size: {size}")
    clean_path = path[1:] if path.startswith("/") else path
    return f"{base_url.rstrip('/')}/{size}/{clean_path}"


def normalize_region(value: str | None, default: str) -> str:
    """Return an upper-cased two-letter region code."""

    region = (value or default or "").strip().upper()
    if len(region) != 2 or not region.isascii() or not region.isalpha():
        raise InvalidRequestError(f"Invalid region code: {value!r}")
    return region
