# ==============================================================================
# Tests for CLI Help Commands
# ==============================================================================
"""
Tests that all CLI help commands generate the expected output.

Verifies that every command and subcommand in the shopsignal CLI:
- Exits with code 0 when invoked with --help
- Contains the expected description text
- Lists the expected subcommands or options

These tests use the real app from shopsignal.app (not minimal Typer apps)
to ensure the full command tree is wired up correctly and that Typer can
introspect all command function signatures without errors.
"""

from typer.testing import CliRunner

from shopsignal.app import app

runner = CliRunner()


# ==============================================================================
# Root App
# ==============================================================================


class TestRootHelp:
    """Tests for the root `shopsignal --help` output."""

    def test_exit_code(self):
        """Root --help exits successfully."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0

    def test_description(self):
        """Root --help shows the app description."""
        result = runner.invoke(app, ["--help"])
        assert "Storefront behavioral telemetry engine CLI" in result.output

    def test_lists_all_subcommands(self):
        """Root --help lists every top-level command."""
        result = runner.invoke(app, ["--help"])
        for cmd in ["config", "db", "replay", "status"]:
            assert cmd in result.output, f"Missing command: {cmd}"


# ==============================================================================
# Config
# ==============================================================================


class TestConfigHelp:
    """Tests for `shopsignal config` help output."""

    def test_exit_code(self):
        result = runner.invoke(app, ["config", "--help"])
        assert result.exit_code == 0

    def test_lists_show(self):
        result = runner.invoke(app, ["config", "--help"])
        assert "Configuration management" in result.output
        assert "show" in result.output

    def test_show_options(self):
        result = runner.invoke(app, ["config", "show", "--help"])
        assert result.exit_code == 0
        assert "--json" in result.output


# ==============================================================================
# Database
# ==============================================================================


class TestDbHelp:
    """Tests for `shopsignal db` help output."""

    def test_lists_init(self):
        result = runner.invoke(app, ["db", "--help"])
        assert result.exit_code == 0
        assert "Sink database operations" in result.output
        assert "init" in result.output

    def test_init_description(self):
        result = runner.invoke(app, ["db", "init", "--help"])
        assert result.exit_code == 0
        assert "Create the sink schema" in result.output


# ==============================================================================
# Replay and Status
# ==============================================================================


class TestReplayHelp:
    """Tests for `shopsignal replay --help`."""

    def test_options(self):
        result = runner.invoke(app, ["replay", "--help"])
        assert result.exit_code == 0
        assert "Replay recorded page signals" in result.output
        for option in ["--granted", "--denied", "--json"]:
            assert option in result.output, f"Missing option: {option}"


class TestStatusHelp:
    """Tests for `shopsignal status --help`."""

    def test_description(self):
        result = runner.invoke(app, ["status", "--help"])
        assert result.exit_code == 0
        assert "Show backend health" in result.output
