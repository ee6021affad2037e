"""
Playlist harvester.

Discovers titles on the catalog listing site, resolves a playable HLS
stream for each one through a headless browser, enriches it with TMDB
metadata and exports everything as an M3U playlist.
"""

__version__ = "0.1.0"

__all__ = ["resolver", "services", "cli", "settings"]
