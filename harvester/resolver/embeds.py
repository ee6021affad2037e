"""
Embedded-player link extraction from a title's watch page.
"""
from __future__ import annotations

import logging
from typing import Any, List

from playwright.async_api import Error as PlaywrightError

from ..services.stages import RetryPolicy, retry_stage
from .browser_pool import Session
from .locators import VIDFAST, ProviderProfile
from .models import EmbedCandidate

logger = logging.getLogger(__name__)

IFRAME_SOURCES_JS = "frames => frames.map(frame => frame.src)"


class EmbedLinkExtractor:
    """Selects a streaming provider on the watch page and collects its iframe URLs."""

    def __init__(
        self,
        *,
        provider: ProviderProfile = VIDFAST,
        navigation_timeout: float = 10.0,
        controls_timeout: float = 8.0,
        settle_delay: float = 1.0,
        after_click_delay: float = 2.5,
    ) -> None:
        self.provider = provider
        self.navigation_timeout = navigation_timeout
        self.controls_timeout = controls_timeout
        self.settle_delay = settle_delay
        self.after_click_delay = after_click_delay

    async def extract_embeds(self, session: Session, watch_url: str) -> List[EmbedCandidate]:
        logger.info("[embeds] loading watch page: %s", watch_url)
        async with session.page() as page:
            try:
                await page.goto(watch_url, wait_until="domcontentloaded", timeout=self.navigation_timeout * 1000)
                await page.wait_for_selector("button", timeout=self.controls_timeout * 1000)
            except PlaywrightError as exc:
                logger.warning("[embeds] watch page not ready %s: %s", watch_url, exc)
                return []
            await page.wait_for_timeout(self.settle_delay * 1000)

            existing = [src for src in await self._iframe_sources(page) if self.provider.is_provider_embed(src)]
            if existing:
                logger.info("[embeds] found existing %s iframe(s): %s", self.provider.name, existing)
                return self._candidates(existing)

            if await self.select_provider(page):
                await page.wait_for_timeout(self.after_click_delay * 1000)
            else:
                logger.warning("[embeds] no clickable provider control on %s", watch_url)

            sources = [src for src in await self._iframe_sources(page) if self.provider.is_embed(src)]

        logger.info("[embeds] extracted %d iframe link(s)", len(sources))
        return self._candidates(sources)

    async def extract_with_retry(
        self, session: Session, watch_url: str, policy: RetryPolicy
    ) -> List[EmbedCandidate]:
        found = await retry_stage(
            lambda: self.extract_embeds(session, watch_url),
            policy,
            label=f"embeds {watch_url}",
        )
        return found or []

    async def select_provider(self, page: Any) -> bool:
        buttons = await page.query_selector_all("button")
        described = []
        for button in buttons:
            try:
                text = await button.inner_text() or ""
            except PlaywrightError:
                text = ""
            described.append((button, text))
            if self.provider.matches_text(text) and await self._click(
                button, f"{self.provider.name} button {text.strip()!r}"
            ):
                return True

        for button, _ in described:
            try:
                class_name = await button.get_attribute("class")
                element_id = await button.get_attribute("id")
            except PlaywrightError:
                continue
            if self.provider.matches_structure(class_name, element_id) and await self._click(
                button, f"server button {class_name or element_id!r}"
            ):
                return True
        return False

    async def _click(self, button: Any, description: str) -> bool:
        try:
            await button.click()
        except PlaywrightError as exc:
            logger.debug("[embeds] failed to click %s: %s", description, exc)
            return False
        logger.info("[embeds] clicked %s", description)
        return True

    async def _iframe_sources(self, page: Any) -> List[str]:
        try:
            sources = await page.eval_on_selector_all("iframe", IFRAME_SOURCES_JS)
        except PlaywrightError as exc:
            logger.debug("[embeds] iframe scan failed: %s", exc)
            return []
        unique: List[str] = []
        for src in sources or []:
            if src and src not in unique:
                unique.append(src)
        return unique

    def _candidates(self, sources: List[str]) -> List[EmbedCandidate]:
        return [EmbedCandidate(url=src, provider=self.provider.name) for src in sources]
