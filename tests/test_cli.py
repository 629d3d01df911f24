"""Tests for the fixdispatch CLI."""

import asyncio

import httpx
import pytest
import respx
from sqlalchemy.ext.asyncio import create_async_engine
from typer.testing import CliRunner

from fixdispatch import __version__
from fixdispatch.cli import app
from fixdispatch.config import clear_settings_cache
from fixdispatch.db.models import Base

runner = CliRunner()

CLI_ENDPOINT = "https://hooks.example.com/cli/apply"


async def _create_tables(url: str) -> None:
    engine = create_async_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


@pytest.fixture
def cli_database(tmp_path, monkeypatch):
    """Point the CLI at a fresh SQLite database."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("FIXDISPATCH_DATABASE_URL", url)
    monkeypatch.setenv("FIXDISPATCH_DISPATCH_ENDPOINT_URL", CLI_ENDPOINT)
    clear_settings_cache()
    asyncio.run(_create_tables(url))
    yield url
    clear_settings_cache()


class TestInfoCommands:
    """Tests for version and configuration output."""

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert f"FixDispatch version {__version__}" in result.stdout

    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "enqueue" in result.stdout
        assert "run-once" in result.stdout

    def test_show_config_masks_secrets(self, monkeypatch):
        monkeypatch.setenv("FIXDISPATCH_DISPATCH_SIGNING_SECRET", "super-secret-value")
        clear_settings_cache()

        result = runner.invoke(app, ["show-config"])

        clear_settings_cache()
        assert result.exit_code == 0
        assert "********" in result.stdout
        assert "super-secret-value" not in result.stdout


class TestQueueCommands:
    """Tests for enqueue, stats, list and run-once."""

    def test_enqueue_then_stats(self, cli_database):
        result = runner.invoke(
            app,
            ["enqueue", "proj-1", "--field", "title", "--value", "New", "--priority", "3"],
        )
        assert result.exit_code == 0, result.stdout
        assert "Enqueued dispatch item" in result.stdout
        assert "priority 3" in result.stdout

        result = runner.invoke(app, ["stats"])
        assert result.exit_code == 0, result.stdout
        assert "Dispatch Queue" in result.stdout
        assert "pending" in result.stdout

    def test_list_empty(self, cli_database):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "No dispatch items found" in result.stdout

    def test_list_filters_by_status(self, cli_database):
        runner.invoke(app, ["enqueue", "proj-1", "--value", "x"])

        result = runner.invoke(app, ["list", "--status", "pending"])
        assert result.exit_code == 0, result.stdout
        assert "Dispatch Items" in result.stdout

        result = runner.invoke(app, ["list", "--status", "sent"])
        assert result.exit_code == 0
        assert "No dispatch items found" in result.stdout

    def test_list_rejects_unknown_status(self, cli_database):
        result = runner.invoke(app, ["list", "--status", "bogus"])
        assert result.exit_code != 0

    def test_run_once_nothing_due(self, cli_database):
        result = runner.invoke(app, ["run-once"])
        assert result.exit_code == 0, result.stdout
        assert "No dispatch items due" in result.stdout

    def test_run_once_delivers(self, cli_database):
        runner.invoke(app, ["enqueue", "proj-1", "--value", "x"])

        with respx.mock:
            route = respx.post(CLI_ENDPOINT).mock(return_value=httpx.Response(200))
            result = runner.invoke(app, ["run-once"])

        assert result.exit_code == 0, result.stdout
        assert route.call_count == 1
        assert "Dispatch Results" in result.stdout

        result = runner.invoke(app, ["list", "--status", "sent"])
        assert "No dispatch items found" not in result.stdout

    def test_serve_rejects_conflicting_flags(self):
        result = runner.invoke(app, ["serve", "--api-only", "--worker-only"])
        assert result.exit_code == 1
