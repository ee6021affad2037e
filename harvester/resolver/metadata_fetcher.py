"""
TMDB metadata enrichment and title normalization.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Optional

import httpx

from .models import EnrichedFields, MetadataRecord

logger = logging.getLogger(__name__)

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"

_MONTHS = "Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec"
GLUED_DATE_RE = re.compile(rf"([a-zA-Z\d])(({_MONTHS})\s?\d{{1,2}},\s?\d{{2}})")
DATE_LABEL_RE = re.compile(rf"\b({_MONTHS})\s+\d{{1,2}},\s+\d{{2}}\b", re.IGNORECASE)
LABEL_DELIMITER_RE = re.compile("•.*", re.DOTALL)
CAMEL_BOUNDARY_RE = re.compile(r"([a-z])([A-Z])")
WHITESPACE_RE = re.compile(r"\s{2,}")


def _clean_once(title: str) -> str:
    cleaned = GLUED_DATE_RE.sub(r"\1 \2", title)
    cleaned = DATE_LABEL_RE.sub("", cleaned)
    cleaned = LABEL_DELIMITER_RE.sub("", cleaned)
    cleaned = CAMEL_BOUNDARY_RE.sub(r"\1 \2", cleaned)
    cleaned = WHITESPACE_RE.sub(" ", cleaned)
    return cleaned.strip()


def normalize_title(raw_title: str) -> str:
    """Strip listing labels from a raw catalog title.

    >>> normalize_title("InterstellarNov 5, 24")
    'Interstellar'
    >>> normalize_title("Good•Movie")
    'Good'

    Cleaning is repeated until the title stops changing, so applying it to
    an already normalized title is a no-op.
    """

    previous = None
    cleaned = raw_title or ""
    while cleaned != previous:
        previous = cleaned
        cleaned = _clean_once(cleaned)
    return cleaned


def describe_rating(rating: float) -> str:
    return f"IMDb {rating}"


class MetadataEnricher:
    """Looks titles up on TMDB and merges the result with catalog fallbacks.

    ``http_client`` must be configured with the TMDB API root as its base URL.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        *,
        language: str = "en-US",
    ) -> None:
        self._client = http_client
        self.api_key = api_key
        self.language = language
        self.enabled = bool(api_key)
        self._cache: Dict[str, Optional[MetadataRecord]] = {}

    async def lookup(self, title: str) -> Optional[MetadataRecord]:
        if not self.enabled or not title:
            return None
        if title in self._cache:
            return self._cache[title]

        params = {
            "api_key": self.api_key,
            "query": title,
            "include_adult": "false",
            "language": self.language,
        }
        try:
            response = await self._client.get("/search/movie", params=params)
        except httpx.HTTPError as exc:
            logger.warning("[tmdb] search for %r failed: %s", title, exc)
            return None
        if response.status_code != 200:
            logger.warning("[tmdb] search for %r returned HTTP %s", title, response.status_code)
            return None

        try:
            results = response.json().get("results") or []
        except ValueError:
            logger.warning("[tmdb] search for %r returned invalid JSON", title)
            return None

        record = self._to_record(results[0]) if results else None
        self._cache[title] = record
        return record

    async def enrich(self, raw_title: str, fallback_poster: Optional[str] = None) -> EnrichedFields:
        clean_title = normalize_title(raw_title)
        logger.debug("[tmdb] raw title %r cleaned to %r", raw_title, clean_title)
        try:
            record = await self.lookup(clean_title)
        except Exception:
            logger.exception("[tmdb] lookup crashed for %r", clean_title)
            record = None

        if record is None:
            return EnrichedFields(title=raw_title, logo_url=fallback_poster or "")
        return EnrichedFields(
            title=record.title or raw_title,
            logo_url=record.poster_url or fallback_poster or "",
            description=describe_rating(record.rating),
        )

    def _to_record(self, data: Dict[str, object]) -> MetadataRecord:
        release_date = str(data.get("release_date") or "")
        try:
            rating = round(float(data.get("vote_average") or 0), 1)
        except (TypeError, ValueError):
            rating = 0.0
        return MetadataRecord(
            title=str(data.get("title") or "Unknown Title"),
            year=release_date.split("-")[0] if release_date else "N/A",
            rating=rating,
            poster_url=self._build_image_url(data.get("poster_path")),
        )

    def _build_image_url(self, path: object) -> Optional[str]:
        if not path:
            return None
        return f"{POSTER_BASE_URL}{path}"
