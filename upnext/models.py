"""Pydantic models describing TMDB payloads and canonical providers."""

from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

ContentType = Literal["movie", "tv"]
ProviderCategory = Literal["stream", "ads", "rent", "buy"]


class _Payload(BaseModel):
    """Base for upstream payloads; unknown keys are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class ProviderRecord(_Payload):
    """A raw provider entry as returned by the watch provider endpoints."""

    provider_id: int
    provider_name: str
    logo_path: str | None = None
    display_priority: int | None = None


class ProviderListResponse(_Payload):
    """Response of ``/watch/providers/movie`` and ``/watch/providers/tv``."""

    results: list[ProviderRecord] = Field(default_factory=list)


class RegionAvailability(_Payload):
    """Categorised providers for one title in one region."""

    link: str | None = None
    flatrate: list[ProviderRecord] | None = None
    ads: list[ProviderRecord] | None = None
    rent: list[ProviderRecord] | None = None
    buy: list[ProviderRecord] | None = None

    def by_category(self) -> list[tuple[ProviderCategory, list[ProviderRecord]]]:
        """Return the provider buckets in priority order."""

        return [
            ("stream", list(self.flatrate or [])),
            ("ads", list(self.ads or [])),
            ("rent", list(self.rent or [])),
            ("buy", list(self.buy or [])),
        ]


class WatchProvidersResponse(_Payload):
    """Response of ``/{movie,tv}/{id}/watch/providers`` keyed by region."""

    id: int | None = None
    results: dict[str, RegionAvailability] | None = None


class Network(_Payload):
    """An originating broadcast network attached to a TV show."""

    id: int
    name: str
    logo_path: str | None = None
    origin_country: str | None = None


class TVDetail(_Payload):
    id: int
    name: str
    overview: str | None = None
    poster_path: str | None = None
    networks: list[Network] = Field(default_factory=list)


class TitleSummary(_Payload):
    """A movie or TV show search hit."""

    id: int
    title: str = Field(validation_alias=AliasChoices("title", "name"))
    overview: str | None = None
    poster_path: str | None = None
    backdrop_path: str | None = None
    release_date: str | None = Field(
        default=None, validation_alias=AliasChoices("release_date", "first_air_date")
    )
    vote_average: float | None = None


class SearchResponse(_Payload):
    results: list[TitleSummary] = Field(default_factory=list)
    total_pages: int | None = None


class Genre(_Payload):
    id: int
    name: str


class GenreListResponse(_Payload):
    genres: list[Genre] = Field(default_factory=list)


class CanonicalProvider(BaseModel):
    """A deduplicated, alias-resolved provider ready for display."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    logo_path: str | None = None
    category: ProviderCategory | None = None
    display_priority: int | None = None
