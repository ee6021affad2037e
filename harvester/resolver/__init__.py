"""
Browser-driven resolution stages.

This package bundles the headless session pool, the catalog and watch-page
scrapers, the stream resolver and the TMDB metadata enricher.
"""

__all__ = [
    "browser_pool",
    "catalog",
    "embeds",
    "locators",
    "metadata_fetcher",
    "models",
    "stream_resolver",
]
