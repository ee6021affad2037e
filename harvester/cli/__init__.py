"""Command line entry point for the playlist harvester."""
