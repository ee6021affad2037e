"""
Catalog discovery on the infinite-scroll listing page.
"""
from __future__ import annotations

import logging
import re
from typing import Any, List, Optional
from urllib.parse import urljoin

from playwright.async_api import Error as PlaywrightError

from ..services.stages import run_stage
from .browser_pool import Session
from .locators import CATALOG_CARDS, FACET_ACTIVE_SELECTOR, CardLayout, FacetMatcher
from .models import CatalogItem, GenreFacet

logger = logging.getLogger(__name__)

LISTING_PATH = "/explore/movie?sort=popularity.desc"
BACKGROUND_URL_RE = re.compile(r"""url\(["']?(.*?)["']?\)""")


class CatalogDiscovery:
    """Collects catalog item stubs from the explore listing."""

    def __init__(
        self,
        base_url: str,
        *,
        layout: CardLayout = CATALOG_CARDS,
        navigation_timeout: float = 45.0,
        selector_timeout: float = 10.0,
        card_timeout: float = 5.0,
        settle_delay: float = 2.0,
        interaction_delay: float = 3.0,
        scroll_attempts: int = 8,
        scroll_delay: float = 1.5,
        extra_cards: int = 10,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.layout = layout
        self.navigation_timeout = navigation_timeout
        self.selector_timeout = selector_timeout
        self.card_timeout = card_timeout
        self.settle_delay = settle_delay
        self.interaction_delay = interaction_delay
        self.scroll_attempts = scroll_attempts
        self.scroll_delay = scroll_delay
        self.extra_cards = extra_cards
        self._id_re = re.compile(layout.id_pattern)
        self._title_suffix_re = re.compile(layout.title_suffix_pattern)

    def listing_url(self, facet: Optional[GenreFacet] = None) -> str:
        url = f"{self.base_url}{LISTING_PATH}"
        if facet is not None and facet.query:
            url = f"{url}&{facet.query.lstrip('?&')}"
        return url

    async def discover(
        self,
        session: Session,
        facet: Optional[GenreFacet] = None,
        limit: int = 25,
    ) -> List[CatalogItem]:
        label = f"{facet.name} movies" if facet else "trending movies"
        url = self.listing_url(facet)
        logger.info("[catalog] navigating to explore page for %s: %s", label, url)

        async with session.page() as page:
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout * 1000)
            except PlaywrightError as exc:
                logger.error("[catalog] navigation failed for %s: %s", label, exc)
                return []

            if facet is not None and not facet.query:
                await self.select_facet(page, facet)

            await page.wait_for_timeout(self.settle_delay * 1000)
            items = await self._extract_items(page, limit, label)

        logger.info("[catalog] extracted %d items for %s", len(items), label)
        return items

    async def select_facet(self, page: Any, facet: GenreFacet) -> bool:
        """Apply a genre by clicking its filter button; returns whether one was clicked."""

        logger.info("[catalog] selecting genre: %s", facet.name)
        try:
            for active in await page.query_selector_all(FACET_ACTIVE_SELECTOR):
                await active.click()
            await page.wait_for_timeout(1000)

            matcher = FacetMatcher(facet)
            buttons = await page.query_selector_all("button")
            described = []
            for button in buttons:
                text = await button.inner_text() or ""
                class_name = await button.get_attribute("class")
                described.append((button, text))
                if matcher.primary(text, class_name):
                    logger.info("[catalog] clicking genre button: %r", text.strip())
                    await button.click()
                    await page.wait_for_timeout(self.interaction_delay * 1000)
                    return True

            for button, text in described:
                if matcher.secondary(text):
                    logger.info("[catalog] clicking alternative genre button: %r", text.strip())
                    await button.click()
                    await page.wait_for_timeout(self.interaction_delay * 1000)
                    return True
        except PlaywrightError as exc:
            logger.warning("[catalog] error selecting genre %s: %s", facet.name, exc)
            return False

        logger.warning("[catalog] no matching button found for genre: %s", facet.name)
        return False

    async def _scroll(self, page: Any, label: str) -> None:
        logger.debug("[catalog] scrolling to load more %s", label)
        for attempt in range(self.scroll_attempts):
            try:
                await page.evaluate("() => window.scrollBy(0, window.innerHeight)")
                await page.wait_for_timeout(self.scroll_delay * 1000)
            except PlaywrightError as exc:
                logger.debug("[catalog] scroll attempt %d failed: %s", attempt, exc)
                break

    async def _extract_items(self, page: Any, limit: int, label: str) -> List[CatalogItem]:
        rule, cards = await self.layout.cards.first_match(page, timeout_ms=self.selector_timeout * 1000)
        if rule is None:
            logger.warning("[catalog] no cards found with any selector for %s", label)
            return []

        await self._scroll(page, label)
        try:
            cards = await page.query_selector_all(rule.selector)
        except PlaywrightError as exc:
            logger.warning("[catalog] re-query after scrolling failed: %s", exc)

        items: List[CatalogItem] = []
        seen: set[str] = set()
        for index, card in enumerate(cards[: limit + self.extra_cards]):
            outcome = await run_stage(
                lambda card=card: self.extract_card(page, card),
                self.card_timeout,
                label=f"card {index}",
            )
            if not outcome.ok:
                logger.debug("[catalog] skipped card %d: %s", index, outcome.error or "timeout")
                continue
            item = outcome.value
            if item is None or item.id in seen:
                continue
            seen.add(item.id)
            items.append(item)
            if len(items) >= limit:
                break
        return items

    async def extract_card(self, page: Any, card: Any) -> Optional[CatalogItem]:
        href = await card.get_attribute("href")
        match = self._id_re.search(href or "")
        if not match:
            return None

        item_id = match.group(1)
        title = ""
        title_node = await card.query_selector(self.layout.title_selector)
        if title_node is not None:
            title = " ".join((await title_node.text_content() or "").split())
        title = self._title_suffix_re.sub("", title).strip()

        poster = ""
        poster_node = await card.query_selector(self.layout.poster_selector)
        if poster_node is not None:
            try:
                background = await page.evaluate(
                    "el => window.getComputedStyle(el).backgroundImage", poster_node
                )
            except PlaywrightError:
                background = ""
            found = BACKGROUND_URL_RE.search(background or "")
            if found and found.group(1):
                poster = found.group(1)

        quality = None
        quality_node = await card.query_selector(self.layout.quality_selector)
        if quality_node is not None:
            quality = (await quality_node.inner_text() or "").strip() or None

        return CatalogItem(
            id=item_id,
            title=title,
            poster_url=poster,
            detail_url=urljoin(f"{self.base_url}/", href),
            watch_url=f"{self.base_url}{self.layout.watch_path.format(id=item_id)}",
            quality=quality,
        )
