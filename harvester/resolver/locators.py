"""
Locator strategies for the listing, watch and player pages.

The markup of the upstream pages is not under our control, so every place
that depends on it is expressed as data here: ordered selector chains, card
field selectors, provider profiles and the genre facets.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from playwright.async_api import Error as PlaywrightError

from .models import GenreFacet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocatorRule:
    name: str
    selector: str


@dataclass(frozen=True)
class LocatorChain:
    """Ordered selector rules tried one after another until one matches."""

    rules: Tuple[LocatorRule, ...]

    @classmethod
    def of(cls, *selectors: str) -> "LocatorChain":
        return cls(tuple(LocatorRule(name=selector, selector=selector) for selector in selectors))

    async def first_match(self, page: Any, *, timeout_ms: float) -> Tuple[Optional[LocatorRule], List[Any]]:
        for rule in self.rules:
            try:
                await page.wait_for_selector(rule.selector, timeout=timeout_ms)
                handles = await page.query_selector_all(rule.selector)
            except PlaywrightError:
                logger.debug("[locator] %s not found, trying next...", rule.name)
                continue
            if handles:
                logger.info("[locator] found %d nodes using selector: %s", len(handles), rule.selector)
                return rule, handles
        return None, []


@dataclass(frozen=True)
class CardLayout:
    """Selectors and patterns used to read one catalog card."""

    cards: LocatorChain
    id_pattern: str = r"/movie/(\d+)"
    title_selector: str = ".textBlock"
    title_suffix_pattern: str = r"\s*\d{4}.*$"
    poster_selector: str = ".posterBlock span.lazy-load-image-background"
    quality_selector: str = ".qualityTag"
    watch_path: str = "/watch/movie/{id}"


@dataclass(frozen=True)
class ProviderProfile:
    """How to pick the streaming provider on a watch page."""

    name: str
    aliases: Tuple[str, ...]
    structural_tokens: Tuple[str, ...] = ("server",)
    embed_markers: Tuple[str, ...] = ("movie", "embed", "player")

    def matches_text(self, text: str) -> bool:
        lowered = text.strip().lower()
        return any(alias in lowered for alias in self.aliases)

    def matches_structure(self, class_name: Optional[str], element_id: Optional[str]) -> bool:
        tokens = f"{class_name or ''} {element_id or ''}".lower()
        return any(token in tokens for token in self.structural_tokens)

    def is_provider_embed(self, url: Optional[str]) -> bool:
        return bool(url) and self.name in url.lower()

    def is_embed(self, url: Optional[str]) -> bool:
        if not url:
            return False
        lowered = url.lower()
        return self.is_provider_embed(url) or any(marker in lowered for marker in self.embed_markers)


CATALOG_CARDS = CardLayout(
    cards=LocatorChain.of("a.movieCard", ".movie-card", '[href*="/movie/"]', ".card"),
)

VIDFAST = ProviderProfile(name="vidfast", aliases=("vidfast", "vid fast", "vf"))

FACET_ACTIVE_SELECTOR = 'button[class*="active"], button.selected'

PLAY_SELECTORS: Sequence[str] = (
    ".vjs-big-play-button",
    ".plyr__control--overlaid",
    'button[aria-label*="play" i]',
    'button[class*="play"]',
    ".play-button",
    '[data-testid*="play"]',
    ".jw-icon-playback",
)

DEFAULT_GENRES: Tuple[GenreFacet, ...] = tuple(
    GenreFacet(name=name, button_text=name)
    for name in (
        "Action",
        "Adventure",
        "Animation",
        "Comedy",
        "Crime",
        "Drama",
        "Family",
        "Fantasy",
        "History",
        "Horror",
        "Music",
        "Mystery",
        "Romance",
        "Science Fiction",
        "Thriller",
        "War",
        "Western",
    )
)


@dataclass
class FacetMatcher:
    """Decides which filter button represents a genre facet."""

    facet: GenreFacet
    words: List[str] = field(init=False)

    def __post_init__(self) -> None:
        self.words = self.facet.button_text.lower().split()

    def primary(self, text: str, class_name: Optional[str]) -> bool:
        label = self.facet.button_text.lower()
        lowered = text.strip().lower()
        classes = (class_name or "").lower()
        return lowered == label or label in lowered or label.replace(" ", "") in classes

    def secondary(self, text: str) -> bool:
        lowered = text.strip().lower()
        return any(word in lowered for word in self.words)
