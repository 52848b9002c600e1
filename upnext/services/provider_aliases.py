"""Static lookup tables used to canonicalize provider names."""

from __future__ import annotations

from types import MappingProxyType

# Variant provider names collapsed onto one canonical name. The first entry
# encountered keeps its ID, logo and category.
PROVIDER_ALIASES = MappingProxyType(
    {
        # Netflix tiers
        "Netflix basic with Ads": "Netflix",
        "Netflix Standard with Ads": "Netflix",
        # Peacock tiers
        "Peacock Premium": "Peacock",
        "Peacock Premium Plus": "Peacock",
        # HBO / Max
        "HBO": "HBO Max",
        "Max": "HBO Max",
        "Max Amazon Channel": "HBO Max",
        # Disney
        "Disney Plus": "Disney+",
        # AMC
        "AMC": "AMC+",
        "AMC Plus": "AMC+",
        "AMC+ Roku Premium Channel": "AMC+",
        # Paramount
        "Paramount Plus": "Paramount+",
        "Paramount+ Premium": "Paramount+",
        "Paramount Plus Premium": "Paramount+",
        "Paramount+ Amazon Channel": "Paramount+",
        # Hulu
        "Hulu (No Ads)": "Hulu",
        # Amazon
        "Amazon Prime Video": "Prime Video",
        "Amazon Prime Video with Ads": "Prime Video",
    }
)

# A service resold through another platform's billing, e.g. "HBO Max Amazon Channel".
CHANNEL_SUFFIXES: tuple[str, ...] = (
    " Amazon Channel",
    " Apple TV Channel",
    " Roku Premium Channel",
)

# Storefronts that only rent or sell titles and are never user-selectable.
RENT_BUY_ONLY_PROVIDER_IDS = frozenset(
    {
        2,  # Apple iTunes
        3,  # Google Play Movies
        7,  # Vudu
        10,  # Amazon Video
        68,  # Microsoft Store
        192,  # YouTube
        652,  # Apple TV
    }
)

# Originating networks whose service is now operated by a streaming provider.
NETWORK_PROVIDER_IDS = MappingProxyType(
    {
        "AMC": 526,
        "AMC+": 526,
        "HBO": 1899,
        "HBO Max": 1899,
        "Max": 1899,
    }
)


def canonical_name(name: str) -> str:
    """Return the canonical provider name; unknown names are already canonical."""

    return PROVIDER_ALIASES.get(name, name)


def is_channel_variant(name: str) -> bool:
    return name.endswith(CHANNEL_SUFFIXES)


def is_rent_buy_only(provider_id: int) -> bool:
    return provider_id in RENT_BUY_ONLY_PROVIDER_IDS


def provider_id_for_network(name: str, default: int) -> int:
    """Map an originating network to its streaming provider ID, else ``default``."""

    return NETWORK_PROVIDER_IDS.get(name, default)
