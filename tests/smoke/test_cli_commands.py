"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import random
from types import SimpleNamespace

import pytest
from rich.console import Console
from rich.text import Text
from typer.testing import CliRunner

from config import get_settings
from neuroplay.cli import main as cli_main
from neuroplay.engine.generator import ChallengeGenerator
from neuroplay.engine.profiles import CRYSTAL_PATTERN, MEMORIA_COLORIDA

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

runner = CliRunner()


@pytest.fixture(autouse=True)
def memory_backend(monkeypatch):
    """Point the CLI at the in-memory store and a wide console."""
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("LOG_FILE", "")
    get_settings.cache_clear()
    monkeypatch.setattr(cli_main, "console", Console(width=200))
    yield
    get_settings.cache_clear()


def run_cli_command(*args: str):
    return runner.invoke(cli_main.app, list(args))


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        """Main help should list every command."""
        result = run_cli_command("--help")

        assert result.exit_code == 0, result.output
        for command in ("play", "games", "sessions", "discard"):
            assert command in result.output

    def test_play_help(self):
        result = run_cli_command("play", "--help")

        assert result.exit_code == 0, result.output
        assert "--resume" in result.output


class TestCLIGames:
    def test_games_lists_builtin_profiles(self):
        result = run_cli_command("games")

        assert result.exit_code == 0, result.output
        assert "memoria-colorida" in result.output
        assert "silaba-magica" in result.output

    def test_unknown_game_exits_with_error(self):
        result = run_cli_command("play", "no-such-game", "--guest")

        assert result.exit_code == 1
        assert "Unknown game" in result.output


class TestCLISessions:
    def test_no_unfinished_sessions(self):
        result = run_cli_command("sessions", "--actor", "alice")

        assert result.exit_code == 0, result.output
        assert "No unfinished sessions" in result.output

    def test_discard_unknown_session(self):
        result = run_cli_command("discard", "missing-id")

        assert result.exit_code == 1
        assert "not found" in result.output


class TestPatternInput:
    def test_shown_cell_number_parses_back_to_cell(self):
        challenge = ChallengeGenerator(random.Random(7)).generate(3, CRYSTAL_PATTERN)
        engine = SimpleNamespace(challenge=challenge)

        for item in challenge.items:
            shown = Text.from_markup(cli_main.display_value(item.value, challenge)).plain
            assert cli_main._parse_answer(shown, engine) == item.value

    def test_other_domains_show_raw_value(self):
        challenge = ChallengeGenerator(random.Random(7)).generate(1, MEMORIA_COLORIDA)
        item = challenge.items[0]
        assert Text.from_markup(cli_main.display_value(item.value, challenge)).plain == str(item.value)

    def test_discard_owned_by_someone_else(self):
        result = run_cli_command("discard", "missing-id", "--actor", "alice")

        assert result.exit_code == 1
        assert "not found" in result.output
