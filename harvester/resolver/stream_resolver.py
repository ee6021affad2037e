"""
Stream resolution by watching an embedded player's network traffic.

Each attempt opens the embed URL in an isolated browsing context, simulates
the user pressing play and captures the first request for an HLS manifest.
When no request is observed, the rendered HTML of every frame is scanned for
an inline manifest URL before the attempt gives up.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import re
from typing import Any, List, Optional, Sequence
from urllib.parse import urlsplit

from playwright.async_api import Error as PlaywrightError

from ..services.stages import RetryPolicy, retry_stage, run_stage
from .browser_pool import Session
from .locators import PLAY_SELECTORS
from .models import EmbedCandidate, ResolvedStream

logger = logging.getLogger(__name__)

MANIFEST_EXTENSION = ".m3u8"
INLINE_MANIFEST_RE = re.compile(r"""https?://[^\s"'<>\\]+\.m3u8[^\s"'<>\\]*""", re.IGNORECASE)

VIDEO_PLAY_JS = """
() => {
    const video = document.querySelector('video');
    if (!video) {
        return false;
    }
    video.muted = true;
    const result = video.play();
    if (result && typeof result.then === 'function') {
        result.then(() => {}).catch(() => {});
    }
    return true;
}
"""


class ResolverState(enum.Enum):
    IDLE = "idle"
    NAVIGATING = "navigating"
    INTERACTING = "interacting"
    AWAITING_SIGNAL = "awaiting_signal"
    RESOLVED = "resolved"
    TIMED_OUT = "timed_out"


def is_manifest_url(url: Optional[str]) -> bool:
    if not url:
        return False
    return urlsplit(url).path.lower().endswith(MANIFEST_EXTENSION)


def find_inline_manifest(content: str) -> Optional[str]:
    for match in INLINE_MANIFEST_RE.finditer(content or ""):
        candidate = match.group(0)
        if is_manifest_url(candidate):
            return candidate
    return None


class ManifestSignal:
    """Tracks one resolution attempt and the first manifest request it observes."""

    def __init__(self, candidate: EmbedCandidate) -> None:
        self.candidate = candidate
        self.state = ResolverState.IDLE
        self.url: Optional[str] = None
        self._event = asyncio.Event()

    def transition(self, state: ResolverState) -> None:
        logger.debug("[resolver] %s: %s -> %s", self.candidate.url, self.state.value, state.value)
        self.state = state

    @property
    def captured(self) -> bool:
        return self._event.is_set()

    def on_request(self, request: Any) -> None:
        if self.captured:
            return
        if is_manifest_url(request.url):
            self.url = request.url
            self._event.set()
            logger.info("[resolver] manifest request captured: %s", request.url)

    async def wait(self, timeout: float) -> bool:
        if self.captured:
            return True
        if timeout <= 0:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


class StreamResolver:
    """Resolves embed URLs to manifest URLs inside a headless session."""

    def __init__(
        self,
        *,
        attempt_budget: float = 15.0,
        navigation_timeout: float = 10.0,
        settle_delay: float = 2.0,
        click_point: tuple[int, int] = (400, 300),
        play_selectors: Sequence[str] = PLAY_SELECTORS,
        interaction_pause: float = 0.5,
        scan_reserve: float = 1.5,
    ) -> None:
        self.attempt_budget = attempt_budget
        self.navigation_timeout = navigation_timeout
        self.settle_delay = settle_delay
        self.click_point = click_point
        self.play_selectors = tuple(play_selectors)
        self.interaction_pause = interaction_pause
        self.scan_reserve = scan_reserve

    async def resolve(
        self,
        session: Session,
        candidate: EmbedCandidate,
        budget: Optional[float] = None,
    ) -> Optional[ResolvedStream]:
        """Single attempt; returns None if no manifest shows up within ``budget``."""

        budget = budget or self.attempt_budget
        outcome = await run_stage(
            lambda: self._attempt(session, candidate, budget),
            budget,
            label=f"resolve {candidate.url}",
        )
        if outcome.error is not None:
            logger.warning("[resolver] attempt on %s failed: %s", candidate.url, outcome.error)
        return outcome.value if outcome.ok else None

    async def resolve_with_retry(
        self,
        session: Session,
        candidate: EmbedCandidate,
        policy: RetryPolicy,
    ) -> Optional[ResolvedStream]:
        return await retry_stage(
            lambda: self._attempt(session, candidate, policy.per_attempt_budget),
            policy,
            label=f"resolve {candidate.url}",
        )

    async def resolve_first(
        self,
        session: Session,
        candidates: List[EmbedCandidate],
        policy: RetryPolicy,
    ) -> Optional[ResolvedStream]:
        """Resolve all candidates concurrently; the first stream found wins."""

        if not candidates:
            return None
        tasks = [
            asyncio.ensure_future(self.resolve_with_retry(session, candidate, policy))
            for candidate in candidates
        ]
        try:
            for next_done in asyncio.as_completed(tasks):
                stream = await next_done
                if stream is not None:
                    return stream
            return None
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _attempt(
        self,
        session: Session,
        candidate: EmbedCandidate,
        budget: float,
    ) -> Optional[ResolvedStream]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget
        signal = ManifestSignal(candidate)

        async with session.isolated_page() as page:
            page.on("request", signal.on_request)

            signal.transition(ResolverState.NAVIGATING)
            logger.info("[resolver] checking embed URL: %s", candidate.url)
            try:
                await page.goto(
                    candidate.url,
                    wait_until="domcontentloaded",
                    timeout=self.navigation_timeout * 1000,
                )
            except PlaywrightError as exc:
                logger.warning("[resolver] failed to load %s: %s", candidate.url, exc)
                signal.transition(ResolverState.TIMED_OUT)
                return None

            signal.transition(ResolverState.INTERACTING)
            await self._interact(page, signal)

            signal.transition(ResolverState.AWAITING_SIGNAL)
            remaining = deadline - loop.time() - self.scan_reserve
            url = signal.url if await signal.wait(remaining) else await self._scan_frames(page)

        if url:
            signal.transition(ResolverState.RESOLVED)
            return ResolvedStream(url=url, source=candidate)
        signal.transition(ResolverState.TIMED_OUT)
        logger.info("[resolver] no manifest from %s", candidate.url)
        return None

    async def _interact(self, page: Any, signal: ManifestSignal) -> None:
        if await signal.wait(self.settle_delay):
            return

        try:
            await page.mouse.click(*self.click_point)
        except PlaywrightError as exc:
            logger.debug("[resolver] click interaction failed: %s", exc)
        if await signal.wait(self.interaction_pause):
            return

        for selector in self.play_selectors:
            try:
                control = await page.query_selector(selector)
                if control is None:
                    continue
                await control.click(timeout=2000, force=True)
                logger.debug("[resolver] clicked play control: %s", selector)
                break
            except PlaywrightError:
                continue
        if await signal.wait(self.interaction_pause):
            return

        for frame in page.frames:
            try:
                if await frame.evaluate(VIDEO_PLAY_JS):
                    logger.debug("[resolver] triggered video.play() fallback")
                    break
            except PlaywrightError:
                continue

    async def _scan_frames(self, page: Any) -> Optional[str]:
        for frame in page.frames:
            try:
                content = await frame.content()
            except PlaywrightError:
                continue
            url = find_inline_manifest(content)
            if url:
                logger.info("[resolver] inline manifest found: %s", url)
                return url
        return None
