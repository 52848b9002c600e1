"""Client for The Movie Database (TMDB) backed by the request coordinator."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..config import Settings
from ..errors import DecodingError, HTTPStatusError, InvalidRequestError, TransportError
from ..models import (
    CanonicalProvider,
    ContentType,
    Genre,
    GenreListResponse,
    Network,
    ProviderCategory,
    ProviderListResponse,
    RegionAvailability,
    SearchResponse,
    TitleSummary,
    TVDetail,
    WatchProvidersResponse,
)
from ..utils import build_image_url, normalize_region
from .providers import build_network_badges, merge_availability, normalize_catalog
from .request_cache import RequestCoordinator, RequestIdentity

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class TMDBClient:
    """Fetches TMDB resources through a shared :class:`RequestCoordinator`.

    Identical concurrent requests collapse onto one HTTP call and successful
    responses are reused for the coordinator's TTL. Payloads are validated
    before they are cached and decoded again for each caller.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        coordinator: RequestCoordinator | None = None,
    ):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client
        self._coordinator = coordinator or RequestCoordinator(
            settings.response_cache_seconds
        )

    @property
    def coordinator(self) -> RequestCoordinator:
        return self._coordinator

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_movies(self, query: str) -> list[TitleSummary]:
        return await self._search("movie", query)

    async def search_tv(self, query: str) -> list[TitleSummary]:
        return await self._search("tv", query)

    async def _search(self, content_type: ContentType, query: str) -> list[TitleSummary]:
        cleaned = (query or "").strip()
        if not cleaned:
            return []
        response = await self._request(
            f"/search/{content_type}", {"query": cleaned}, SearchResponse
        )
        return list(response.results)

    # ------------------------------------------------------------------
    # Watch providers
    # ------------------------------------------------------------------

    async def get_title_availability(
        self,
        content_type: str,
        title_id: int,
        region: str | None = None,
    ) -> RegionAvailability | None:
        """Return the categorised providers of a title in ``region``, if licensed there."""

        kind = self._content_type(content_type)
        region_code = normalize_region(region, self._settings.default_region)
        response = await self._request(
            f"/{kind}/{self._title_id(title_id)}/watch/providers",
            {},
            WatchProvidersResponse,
        )
        return (response.results or {}).get(region_code)

    async def get_title_providers(
        self,
        content_type: str,
        title_id: int,
        region: str | None = None,
    ) -> tuple[list[CanonicalProvider], dict[int, ProviderCategory]]:
        availability = await self.get_title_availability(content_type, title_id, region)
        return merge_availability(availability)

    async def get_tv_networks(self, title_id: int) -> list[Network]:
        detail = await self._request(f"/tv/{self._title_id(title_id)}", {}, TVDetail)
        return list(detail.networks)

    async def get_tv_badges(
        self, title_id: int, region: str | None = None
    ) -> tuple[list[CanonicalProvider], dict[int, ProviderCategory]]:
        """Return the badge strip for a show: watch providers then its networks."""

        availability, networks = await asyncio.gather(
            self.get_title_availability("tv", title_id, region),
            self.get_tv_networks(title_id),
        )
        return build_network_badges(availability, networks)

    async def fetch_region_providers(
        self, region: str | None = None
    ) -> list[CanonicalProvider]:
        """Fetch all selectable providers for a region, merged from movie and TV lists."""

        region_code = normalize_region(region, self._settings.default_region)
        params = {"watch_region": region_code}
        movie_list, tv_list = await asyncio.gather(
            self._request("/watch/providers/movie", params, ProviderListResponse),
            self._request("/watch/providers/tv", params, ProviderListResponse),
        )
        providers = normalize_catalog(movie_list.results, tv_list.results)
        logger.debug("Normalized %d providers for region %s", len(providers), region_code)
        return providers

    # ------------------------------------------------------------------
    # Genres and images
    # ------------------------------------------------------------------

    async def fetch_genres(self, content_type: str) -> list[Genre]:
        kind = self._content_type(content_type)
        response = await self._request(f"/genre/{kind}/list", {}, GenreListResponse)
        return list(response.genres)

    def image_url(self, path: str | None, size: str = "w500") -> str | None:
        return build_image_url(self._settings.image_base_url, path, size)

    def clear_response_cache(self) -> int:
        """Force fresh data on the next request, e.g. after preferences change."""

        return self._coordinator.clear_cache()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        endpoint: str,
        params: Mapping[str, Any],
        model: type[ModelT],
    ) -> ModelT:
        identity = RequestIdentity.build(endpoint, params)
        query = {**identity.query(), "api_key": self._settings.tmdb_api_key}

        async def fetch() -> bytes:
            try:
                response = await self._client.get(identity.endpoint, params=query)
            except httpx.HTTPError as exc:
                raise TransportError(
                    f"Request to {identity.endpoint} failed: {exc.__class__.__name__}"
                ) from exc
            if not 200 <= response.status_code < 300:
                logger.warning(
                    "TMDB request %s failed with status %s",
                    identity,
                    response.status_code,
                )
                raise HTTPStatusError(response.status_code)
            # Reject malformed payloads here so they never reach the cache.
            self._decode(identity, response.content, model)
            return response.content

        payload = await self._coordinator.resolve(identity, fetch)
        return self._decode(identity, payload, model)

    @staticmethod
    def _decode(identity: RequestIdentity, payload: bytes, model: type[ModelT]) -> ModelT:
        try:
            return model.model_validate_json(payload)
        except ValidationError as exc:
            logger.warning("Undecodable TMDB response for %s", identity)
            raise DecodingError(
                f"Failed to decode response for {identity}: {exc.error_count()} error(s)"
            ) from exc

    @staticmethod
    def _content_type(value: str) -> ContentType:
        kind = (value or "").strip().lower()
        if kind == "movie":
            return "movie"
        if kind == "tv":
            return "tv"
        raise InvalidRequestError(f"Unsupported content type: {value!r}")

    @staticmethod
    def _title_id(value: int | str) -> int:
        if isinstance(value, bool):
            raise InvalidRequestError(f"Invalid title id: {value!r}")
        try:
            title_id = int(value)
        except (TypeError, ValueError) as exc:
            raise InvalidRequestError(f"Invalid title id: {value!r}") from exc
        if title_id <= 0:
            raise InvalidRequestError(f"Invalid title id: {value!r}")
        return title_id
