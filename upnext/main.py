"""Entry point for the FastAPI service exposing the metadata core."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .errors import (
    DecodingError,
    HTTPStatusError,
    InvalidRequestError,
    MetadataServiceError,
    TransportError,
)
from .models import CanonicalProvider, ProviderCategory
from .services.providers import ProviderSelection
from .services.request_cache import RequestCoordinator
from .services.tmdb import TMDBClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(settings.http_timeout_seconds, connect=10.0),
        )
    )
    coordinator = RequestCoordinator(settings.response_cache_seconds)
    fastapi_app.state.tmdb_client = TMDBClient(settings, http_client, coordinator)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Deduplicated, cached TMDB watch provider metadata",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_tmdb_client(fastapi_app: FastAPI) -> TMDBClient:
    client = getattr(fastapi_app.state, "tmdb_client", None)
    if not isinstance(client, TMDBClient):
        raise RuntimeError("TMDB client not initialised")
    return client


def _to_http_error(exc: MetadataServiceError) -> HTTPException:
    if isinstance(exc, InvalidRequestError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, HTTPStatusError):
        return HTTPException(
            status_code=502, detail=f"Upstream returned status {exc.status_code}"
        )
    if isinstance(exc, TransportError):
        return HTTPException(status_code=503, detail="Metadata service unreachable")
    if isinstance(exc, DecodingError):
        return HTTPException(status_code=502, detail="Malformed upstream response")
    return HTTPException(status_code=500, detail=str(exc))


def _provider_payload(
    providers: list[CanonicalProvider],
    categories: dict[int, ProviderCategory],
    selected: list[int],
) -> dict[str, Any]:
    """Serialise badges visible under the caller's provider selection."""

    visible, hidden_count = ProviderSelection.of(selected).filter(providers)
    return {
        "providers": [provider.model_dump() for provider in visible],
        "categories": {
            str(provider.id): categories[provider.id]
            for provider in visible
            if provider.id in categories
        },
        "hidden_count": hidden_count,
    }


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/providers")
    async def region_providers(region: str | None = None) -> dict[str, Any]:
        client = get_tmdb_client(fastapi_app)
        try:
            providers = await client.fetch_region_providers(region)
        except MetadataServiceError as exc:
            raise _to_http_error(exc) from exc
        return {"providers": [provider.model_dump() for provider in providers]}

    @fastapi_app.get("/{content_type}/{title_id}/providers")
    async def title_providers(
        content_type: str,
        title_id: int,
        region: str | None = None,
        provider: list[int] = Query(default=[]),
    ) -> dict[str, Any]:
        client = get_tmdb_client(fastapi_app)
        try:
            providers, categories = await client.get_title_providers(
                content_type, title_id, region
            )
        except MetadataServiceError as exc:
            raise _to_http_error(exc) from exc
        return _provider_payload(providers, categories, provider)

    @fastapi_app.get("/tv/{title_id}/badges")
    async def tv_badges(
        title_id: int,
        region: str | None = None,
        provider: list[int] = Query(default=[]),
    ) -> dict[str, Any]:
        client = get_tmdb_client(fastapi_app)
        try:
            providers, categories = await client.get_tv_badges(title_id, region)
        except MetadataServiceError as exc:
            raise _to_http_error(exc) from exc
        return _provider_payload(providers, categories, provider)

    @fastapi_app.post("/cache/clear")
    async def clear_cache() -> dict[str, int]:
        cleared = get_tmdb_client(fastapi_app).clear_response_cache()
        return {"cleared": cleared}


app = create_app()
