"""Runtime configuration for the playlist harvester."""
from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .services.stages import RetryPolicy

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


class BrowserOptions(BaseModel):
    """Options applied when a headless browser session is launched."""

    headless: bool = Field(default=True, description="Run Chromium without a window.")
    blocked_resource_types: frozenset[str] = Field(
        default=frozenset({"image", "font", "media"}),
        description="Playwright resource types aborted by the session route handler.",
    )
    protocol_timeout: float = Field(
        default=60.0, description="Seconds before a browser protocol call is abandoned."
    )
    navigation_timeout: float = Field(
        default=45.0, description="Default navigation timeout for session pages, in seconds."
    )
    viewport_width: int = Field(default=1280)
    viewport_height: int = Field(default=720)
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    locale: str = Field(default="en-US")
    launch_args: tuple[str, ...] = Field(
        default=(
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-extensions",
            "--disable-background-timer-throttling",
            "--disable-backgrounding-occluded-windows",
            "--disable-renderer-backgrounding",
        ),
        description="Extra Chromium command line switches.",
    )


class HarvesterSettings(BaseSettings):
    """Environment-aware settings for a harvest run."""

    base_url: str = Field(
        default="https://nunflix.org", description="Root URL of the catalog listing site."
    )
    output_path: str = Field(
        default="movies&tvshows.m3u", description="Playlist file overwritten on every run."
    )
    tmdb_api_key: str | None = Field(
        default=None, description="TMDB API key; metadata enrichment is disabled without it."
    )
    tmdb_base_url: str = Field(default="https://api.themoviedb.org/3")
    tmdb_language: str = Field(default="en-US")
    tmdb_timeout: float = Field(default=20.0, description="HTTP timeout for TMDB lookups.")

    trending_limit: int = Field(default=25, ge=1, description="Items harvested for the trending group.")
    genre_limit: int = Field(default=20, ge=1, description="Items harvested per genre.")
    max_genres: int = Field(default=12, ge=0, description="Number of genre facets processed per run.")
    chunk_size: int = Field(default=3, ge=1, description="Genres processed concurrently.")
    recycle_every: int = Field(
        default=10, ge=1, description="Recycle a category's browser session after this many items."
    )
    chunk_pause: float = Field(default=5.0, ge=0, description="Seconds to pause between genre chunks.")

    discovery_timeout: float = Field(default=120.0, gt=0, description="Budget for one catalog discovery.")
    item_timeout: float = Field(
        default=75.0,
        gt=0,
        description="Budget for processing one catalog item; covers every embed and resolve attempt.",
    )
    max_embed_candidates: int = Field(default=5, ge=1)
    embed_attempts: int = Field(default=2, ge=1)
    embed_attempt_budget: float = Field(default=20.0, gt=0)
    resolve_attempts: int = Field(default=2, ge=1)
    resolve_attempt_budget: float = Field(default=15.0, gt=0)

    browser: BrowserOptions = Field(default_factory=BrowserOptions)

    model_config = SettingsConfigDict(
        env_prefix="HARVESTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    @property
    def embed_policy(self) -> RetryPolicy:
        return RetryPolicy(self.embed_attempts, self.embed_attempt_budget)

    @property
    def resolve_policy(self) -> RetryPolicy:
        return RetryPolicy(self.resolve_attempts, self.resolve_attempt_budget)
