"""M3U playlist assembly, export and parsing."""
from __future__ import annotations

import logging
import re
from collections import Counter
from pathlib import Path
from typing import Iterable

from ..resolver.models import TRENDING_GROUP, PlaylistEntry

logger = logging.getLogger(__name__)

EXTINF_RE = re.compile(
    r'^#EXTINF:-1 tvg-logo="(?P<logo>[^"]*)" group-title="(?P<group>[^"]*)", (?P<display>.*)$'
)
DESCRIPTION_RE = re.compile(r"^(?P<title>.*) - (?P<description>IMDb [\d.]+)$")
LINE_BREAK_RE = re.compile(r"\s*[\r\n]+\s*")


def group_entries(entries: Iterable[PlaylistEntry]) -> dict[str, list[PlaylistEntry]]:
    """Partition entries by group, trending first and the rest by name.

    Entries keep the order in which they were appended within their group.
    """

    grouped: dict[str, list[PlaylistEntry]] = {}
    for entry in entries:
        grouped.setdefault(entry.group, []).append(entry)
    order = sorted(grouped, key=lambda name: (name != TRENDING_GROUP, name))
    return {name: grouped[name] for name in order}


def single_line(value: str) -> str:
    """Collapse line breaks so a field cannot split an #EXTINF line."""

    return LINE_BREAK_RE.sub(" ", value).strip()


def format_entry(entry: PlaylistEntry) -> str:
    display = single_line(entry.title)
    if entry.description:
        display = f"{display} - {single_line(entry.description)}"
    group = single_line(entry.group)
    return f'#EXTINF:-1 tvg-logo="{entry.logo_url}" group-title="{group}", {display}'


def build_playlist(entries: Iterable[PlaylistEntry]) -> str:
    parts = ["#EXTM3U\n\n"]
    for name, members in group_entries(entries).items():
        parts.append(f"# {single_line(name)} ({len(members)} items)\n")
        for entry in members:
            parts.append(f"{format_entry(entry)}\n{entry.stream_url}\n\n")
        parts.append("\n")
    return "".join(parts).strip()


def group_counts(entries: Iterable[PlaylistEntry]) -> dict[str, int]:
    counts = Counter(entry.group for entry in entries)
    return {name: counts[name] for name in sorted(counts, key=lambda n: (n != TRENDING_GROUP, n))}


def write_playlist(path: str | Path, entries: list[PlaylistEntry]) -> Path:
    """Overwrite ``path`` with the serialized playlist."""

    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.with_name(target.name + ".tmp")
    tmp_path.write_text(build_playlist(entries), encoding="utf-8")
    tmp_path.replace(target)

    logger.info("[playlist] exported %d entries to %s", len(entries), target)
    for name, count in group_counts(entries).items():
        logger.info("[playlist]   %s: %d items", name, count)
    return target


def parse_playlist(text: str) -> list[PlaylistEntry]:
    """Read entries back from a playlist produced by :func:`build_playlist`."""

    entries: list[PlaylistEntry] = []
    pending: re.Match[str] | None = None
    for line in text.splitlines():
        if not line.strip():
            continue
        if line.startswith("#EXTINF"):
            pending = EXTINF_RE.match(line)
            continue
        if line.startswith("#") or pending is None:
            continue

        display = pending.group("display")
        description = None
        described = DESCRIPTION_RE.match(display)
        if described:
            display, description = described.group("title"), described.group("description")
        entries.append(
            PlaylistEntry(
                title=display,
                logo_url=pending.group("logo"),
                group=pending.group("group"),
                stream_url=line,
                description=description,
            )
        )
        pending = None
    return entries
