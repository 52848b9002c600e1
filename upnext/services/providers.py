"""Reconcile raw watch provider payloads into canonical provider lists.

All functions here are pure: they never mutate their inputs or any shared
state, so they are safe to call from any thread.
"""

from __future__ import annotations

import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from ..models import (
    CanonicalProvider,
    Network,
    ProviderCategory,
    ProviderRecord,
    RegionAvailability,
)
from .provider_aliases import (
    canonical_name,
    is_channel_variant,
    is_rent_buy_only,
    provider_id_for_network,
)


class _SeenProviders:
    """Remembers which raw IDs and canonical names were already emitted."""

    def __init__(self) -> None:
        self.ids: set[int] = set()
        self.names: set[str] = set()

    def admit(self, record: ProviderRecord) -> str | None:
        """Return the canonical name if ``record`` should be emitted, else ``None``."""

        if record.provider_id in self.ids:
            return None
        if is_channel_variant(record.provider_name):
            return None
        name = canonical_name(record.provider_name)
        if name in self.names:
            return None
        self.ids.add(record.provider_id)
        self.names.add(name)
        return name


def merge_availability(
    availability: RegionAvailability | None,
) -> tuple[list[CanonicalProvider], dict[int, ProviderCategory]]:
    """Collapse a title's categorised providers into one badge list.

    Buckets are walked as stream > ads > rent > buy and entries in upstream
    order; the first occurrence of a canonical name wins both its identity and
    its category. Returns the providers in emission order together with a
    provider ID to category map.
    """

    if availability is None:
        return [], {}

    seen = _SeenProviders()
    providers: list[CanonicalProvider] = []
    categories: dict[int, ProviderCategory] = {}

    for category, records in availability.by_category():
        for record in records:
            name = seen.admit(record)
            if name is None:
                continue
            providers.append(
                CanonicalProvider(
                    id=record.provider_id,
                    name=name,
                    logo_path=record.logo_path,
                    category=category,
                )
            )
            categories[record.provider_id] = category

    return providers, categories


def normalize_catalog(
    movie_providers: Iterable[ProviderRecord],
    tv_providers: Iterable[ProviderRecord],
) -> list[CanonicalProvider]:
    """Merge the movie and TV provider lists of a region into a picker list.

    Rent/buy-only storefronts and channel variants are dropped, aliases are
    collapsed with movie-sourced records taking precedence, and the result is
    ordered by ``display_priority`` (missing last) then by name, ignoring case.
    """

    seen = _SeenProviders()
    merged: list[CanonicalProvider] = []

    for record in [*movie_providers, *tv_providers]:
        if is_rent_buy_only(record.provider_id):
            continue
        name = seen.admit(record)
        if name is None:
            continue
        merged.append(
            CanonicalProvider(
                id=record.provider_id,
                name=name,
                logo_path=record.logo_path,
                display_priority=record.display_priority,
            )
        )

    # Lower display_priority means more prominent.
    merged.sort(
        key=lambda provider: (
            provider.display_priority
            if provider.display_priority is not None
            else sys.maxsize,
            provider.name.casefold(),
        )
    )
    return merged


def build_network_badges(
    availability: RegionAvailability | None,
    networks: Sequence[Network],
) -> tuple[list[CanonicalProvider], dict[int, ProviderCategory]]:
    """Combine a show's watch providers with its originating networks.

    Networks already covered by a watch provider are skipped. Known networks
    are re-keyed to the provider now operating them so they match the user's
    provider selection, and reuse that provider's logo when available.

    Network and provider IDs are separate namespaces upstream. A network whose
    ID is already taken by a badge is dropped so every badge ID stays unique
    and keeps its category.
    """

    providers, categories = merge_availability(availability)
    logos = {provider.id: provider.logo_path for provider in providers if provider.logo_path}
    names = {provider.name for provider in providers}

    for network in networks:
        name = canonical_name(network.name)
        if name in names:
            continue
        provider_id = provider_id_for_network(network.name, network.id)
        if provider_id in categories:
            continue
        names.add(name)
        providers.append(
            CanonicalProvider(
                id=provider_id,
                name=name,
                logo_path=logos.get(provider_id) or network.logo_path,
                category="stream",
            )
        )
        categories[provider_id] = "stream"

    return providers, categories


@dataclass(frozen=True)
class ProviderSelection:
    """The providers a user subscribes to. An empty selection shows everything."""

    selected_ids: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def of(cls, ids: Iterable[int]) -> "ProviderSelection":
        return cls(frozenset(ids))

    def is_selected(self, provider_id: int) -> bool:
        return not self.selected_ids or provider_id in self.selected_ids

    def filter(
        self, providers: Iterable[CanonicalProvider]
    ) -> tuple[list[CanonicalProvider], int]:
        """Return the visible providers and how many were hidden."""

        visible: list[CanonicalProvider] = []
        hidden = 0
        for provider in providers:
            if self.is_selected(provider.id):
                visible.append(provider)
            else:
                hidden += 1
        return visible, hidden
