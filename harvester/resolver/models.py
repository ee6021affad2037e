"""
Records passed between the harvest stages.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

TRENDING_GROUP = "Trending Movies"


@dataclass(frozen=True)
class GenreFacet:
    """A named catalog filter.

    ``button_text`` is the label clicked when the facet is applied through
    the listing UI; ``query`` is used instead when the listing accepts the
    filter as query parameters (e.g. ``"with_genres=27"``).
    """

    name: str
    button_text: str
    query: Optional[str] = None


@dataclass(frozen=True)
class CatalogItem:
    id: str
    title: str
    poster_url: str
    detail_url: str
    watch_url: str
    quality: Optional[str] = None


@dataclass(frozen=True)
class EmbedCandidate:
    url: str
    provider: str


@dataclass(frozen=True)
class ResolvedStream:
    url: str
    source: EmbedCandidate


@dataclass(frozen=True)
class MetadataRecord:
    title: str
    year: str
    rating: float
    poster_url: Optional[str] = None


@dataclass(frozen=True)
class EnrichedFields:
    title: str
    logo_url: str
    description: Optional[str] = None


@dataclass(frozen=True)
class PlaylistEntry:
    title: str
    logo_url: str
    group: str
    stream_url: str
    description: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.stream_url:
            raise ValueError(f"Playlist entry '{self.title}' has no stream URL")
