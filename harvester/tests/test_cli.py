from __future__ import annotations

from typer.testing import CliRunner

from harvester.cli import app as cli_app
from harvester.resolver.models import PlaylistEntry

runner = CliRunner()


def _entry() -> PlaylistEntry:
    return PlaylistEntry(title="Dune", logo_url="", group="Trending Movies", stream_url="https://cdn/dune.m3u8")


def test_harvest_with_defaults(monkeypatch) -> None:
    seen = []

    async def fake_run(settings):
        seen.append(settings)
        return [_entry()]

    monkeypatch.setattr(cli_app, "run_harvest", fake_run)

    result = runner.invoke(cli_app.app, [])

    assert result.exit_code == 0, result.output
    assert "Exported 1 entries to movies&tvshows.m3u" in result.output
    assert seen[0].browser.headless is True
    assert seen[0].max_genres == 12


def test_harvest_applies_options(monkeypatch) -> None:
    seen = []

    async def fake_run(settings):
        seen.append(settings)
        return []

    monkeypatch.setattr(cli_app, "run_harvest", fake_run)

    result = runner.invoke(
        cli_app.app,
        ["--output", "out.m3u", "--headed", "--max-genres", "2", "--trending-limit", "5", "--genre-limit", "3"],
    )

    assert result.exit_code == 0, result.output
    assert "No playable streams found" in result.output
    settings = seen[0]
    assert settings.output_path == "out.m3u"
    assert settings.browser.headless is False
    assert (settings.max_genres, settings.trending_limit, settings.genre_limit) == (2, 5, 3)


def test_harvest_failure_exits_non_zero(monkeypatch) -> None:
    async def fake_run(settings):
        raise RuntimeError("Executable doesn't exist at chromium")

    monkeypatch.setattr(cli_app, "run_harvest", fake_run)

    result = runner.invoke(cli_app.app, [])

    assert result.exit_code == 1
    assert "Harvest failed" in result.output


def test_rejects_invalid_limits() -> None:
    result = runner.invoke(cli_app.app, ["--trending-limit", "0"])

    assert result.exit_code != 0
