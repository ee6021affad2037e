"""Drives catalog discovery, stream resolution and export for one harvest run."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterator, Sequence

import httpx

from ..resolver.browser_pool import BrowserSessionPool, Session
from ..resolver.catalog import CatalogDiscovery
from ..resolver.embeds import EmbedLinkExtractor
from ..resolver.locators import DEFAULT_GENRES
from ..resolver.metadata_fetcher import MetadataEnricher
from ..resolver.models import TRENDING_GROUP, CatalogItem, GenreFacet, PlaylistEntry
from ..resolver.stream_resolver import StreamResolver
from .playlist import write_playlist
from .stages import run_stage

if TYPE_CHECKING:
    from ..settings import HarvesterSettings

logger = logging.getLogger(__name__)


def chunked(facets: Sequence[GenreFacet], size: int) -> Iterator[Sequence[GenreFacet]]:
    for start in range(0, len(facets), size):
        yield facets[start : start + size]


class HarvestOrchestrator:
    """Runs the trending category and then the genre facets in concurrent chunks.

    Failures below this level are logged and skipped: a category that cannot
    be discovered, an item without embeds or an item whose stream never
    resolves only shrinks the playlist.
    """

    def __init__(
        self,
        settings: HarvesterSettings,
        pool: BrowserSessionPool,
        discovery: CatalogDiscovery,
        extractor: EmbedLinkExtractor,
        resolver: StreamResolver,
        enricher: MetadataEnricher,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.pool = pool
        self.discovery = discovery
        self.extractor = extractor
        self.resolver = resolver
        self.enricher = enricher
        self._sleep = sleep
        self.entries: list[PlaylistEntry] = []

    async def run(self, categories: Sequence[GenreFacet]) -> None:
        try:
            logger.info("[run] getting trending movies (no genre filter)")
            await self.run_category(None, self.settings.trending_limit)

            genres = list(categories)[: self.settings.max_genres]
            if not genres:
                logger.warning("[run] no genres configured, skipping genre-specific harvesting")
            for index, chunk in enumerate(chunked(genres, self.settings.chunk_size)):
                if index and self.settings.chunk_pause:
                    await self._sleep(self.settings.chunk_pause)
                names = ", ".join(facet.name for facet in chunk)
                logger.info("[run] processing genre chunk %d: %s", index + 1, names)
                results = await asyncio.gather(
                    *(self.run_category(facet, self.settings.genre_limit) for facet in chunk),
                    return_exceptions=True,
                )
                for facet, result in zip(chunk, results):
                    if isinstance(result, BaseException):
                        logger.error("[run] genre %s failed: %s", facet.name, result)
        except Exception:
            logger.exception("[run] unrecoverable error; exporting what was collected")
        finally:
            self.export()

    def export(self) -> None:
        if not self.entries:
            logger.warning("[run] no playable streams found to export")
            return
        write_playlist(self.settings.output_path, self.entries)
        logger.info("[run] total: %d items exported", len(self.entries))

    async def run_category(self, facet: GenreFacet | None, limit: int) -> int:
        """Harvest one category; returns the number of entries it added."""

        group = facet.name if facet else TRENDING_GROUP
        session = await self.pool.acquire_with_retry()
        if session is None:
            logger.error("[run] no browser session for %s; category aborted", group)
            return 0

        added = 0
        try:
            outcome = await run_stage(
                lambda: self.discovery.discover(session, facet, limit),
                self.settings.discovery_timeout,
                label=f"discover {group}",
            )
            if not outcome.ok:
                logger.error("[run] discovery for %s did not complete: %s", group, outcome.error or "timeout")
            items: list[CatalogItem] = (outcome.value or []) if outcome.ok else []
            if not items:
                logger.warning("[run] %s is empty, skipping", group)
                return 0
            logger.info("[run] found %d movies for %s", len(items), group)

            for index, item in enumerate(items):
                if (index and index % self.settings.recycle_every == 0) or not session.healthy:
                    session = await self.pool.recycle(session)
                    if session is None:
                        logger.error("[run] lost browser for %s after %d items", group, index)
                        break

                entry = await self._run_item(session, item, group)
                if entry is not None:
                    self.entries.append(entry)
                    added += 1
                    logger.info("[run] %s: %d/%d processed", group, added, len(items))
        except Exception:
            logger.exception("[run] error processing %s", group)
        finally:
            if session is not None:
                await self.pool.dispose(session)

        logger.info("[run] completed %s: %d items added", group, added)
        return added

    async def _run_item(self, session: Session, item: CatalogItem, group: str) -> PlaylistEntry | None:
        outcome = await run_stage(
            lambda: self.process_item(session, item, group),
            self.settings.item_timeout,
            label=f"item {item.title!r}",
        )
        if outcome.ok:
            return outcome.value
        if outcome.timed_out:
            logger.warning("[run] skipped %r in %s: timed out", item.title, group)
        else:
            logger.warning("[run] skipped %r in %s: %s", item.title, group, outcome.error)
        return None

    async def process_item(self, session: Session, item: CatalogItem, group: str) -> PlaylistEntry | None:
        logger.info("[run] %s -> %s", item.title, item.watch_url)
        candidates = await self.extractor.extract_with_retry(
            session, item.watch_url, self.settings.embed_policy
        )
        if not candidates:
            logger.info("[run] no embeds for %r; dropped", item.title)
            return None

        limited = candidates[: self.settings.max_embed_candidates]
        logger.info("[run] trying %d server(s) for %r", len(limited), item.title)
        stream = await self.resolver.resolve_first(session, limited, self.settings.resolve_policy)
        if stream is None:
            logger.info("[run] no .m3u8 found from any server for %r", item.title)
            return None
        logger.info("[run] found .m3u8 for %r: %s", item.title, stream.url)

        fields = await self.enricher.enrich(item.title, item.poster_url)
        return PlaylistEntry(
            title=fields.title,
            logo_url=fields.logo_url,
            group=group,
            stream_url=stream.url,
            description=fields.description,
        )


async def run_harvest(
    settings: HarvesterSettings,
    categories: Sequence[GenreFacet] = DEFAULT_GENRES,
) -> list[PlaylistEntry]:
    """Build the real collaborators, run one harvest and return the exported entries."""

    async with httpx.AsyncClient(
        base_url=settings.tmdb_base_url, timeout=settings.tmdb_timeout
    ) as http_client, BrowserSessionPool(settings.browser, settings.chunk_size) as pool:
        enricher = MetadataEnricher(
            http_client, settings.tmdb_api_key, language=settings.tmdb_language
        )
        if not enricher.enabled:
            logger.warning("[tmdb] no API key configured; using catalog titles and posters")
        orchestrator = HarvestOrchestrator(
            settings,
            pool,
            CatalogDiscovery(settings.base_url, navigation_timeout=settings.browser.navigation_timeout),
            EmbedLinkExtractor(),
            StreamResolver(attempt_budget=settings.resolve_attempt_budget),
            enricher,
        )
        await orchestrator.run(categories)
        return orchestrator.entries
