"""Up Next TMDB metadata core.

The coordinator and client are importable from the package root; the FastAPI
app is only built when first requested.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "app": "upnext.main",
    "create_app": "upnext.main",
    "ProviderSelection": "upnext.services.providers",
    "RequestCoordinator": "upnext.services.request_cache",
    "RequestIdentity": "upnext.services.request_cache",
    "TMDBClient": "upnext.services.tmdb",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module 'upnext' has no attribute {name}")
    return getattr(import_module(module_name), name)
