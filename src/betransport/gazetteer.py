"""Offline stop search using the bundled per-network gazetteer.

Loads gazetteer.json once, then searches with accent-folded, case-insensitive
substring matching. Gazetteer order is kept as-is.
"""

import json
import unicodedata
from functools import lru_cache
from importlib import resources

from .models import TransportNetwork


def _strip_accents(text: str) -> str:
    """Remove accents/diacritics from text via NFKD decomposition."""
    nfkd = unicodedata.normalize("NFKD", text)
    return "".join(c for c in nfkd if not unicodedata.combining(c))


def normalize_name(text: str) -> str:
    """Normalize text for search: strip accents and casefold."""
    return _strip_accents(text).casefold()


def filter_names(query: str, names: list[str]) -> list[str]:
    """Return the names containing ``query``, in their original order."""
    needle = normalize_name(query.strip())
    if not needle:
        return []
    return [name for name in names if needle in normalize_name(name)]


@lru_cache(maxsize=1)
def load_gazetteer() -> dict[str, tuple[str, ...]]:
    """Load the canonical stop names of every network from bundled JSON."""
    data_files = resources.files("betransport.data")
    raw = json.loads(data_files.joinpath("gazetteer.json").read_text(encoding="utf-8"))
    return {network: tuple(names) for network, names in raw.items()}


def search_gazetteer(query: str, network: TransportNetwork) -> list[str]:
    """Search one network's gazetteer.

    Args:
        query: Search string (e.g., "Liege", "bruxelles", "Gare")
        network: Network whose stop list is searched

    Returns:
        Matching canonical stop names, possibly empty.
    """
    names = load_gazetteer().get(network.value, ())
    return filter_names(query, list(names))
