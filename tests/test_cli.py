"""Tests for the contentloom CLI."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner

from contentloom import __version__
from contentloom.cli import main

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    """The CLI reconfigures the package logger; put it back for later tests."""
    logger = logging.getLogger("contentloom")
    handlers, level, propagate = logger.handlers[:], logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


class TestMain:
    def test_help_lists_commands(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "dev" in result.output
        assert "server:start" in result.output
        assert "init" in result.output

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestDev:
    def test_help_hides_deprecated_option(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["dev", "--help"])
        assert result.exit_code == 0
        assert "--no-sdk" in result.output
        assert "--no-watch" in result.output
        assert "--watch-folders" not in result.output

    @pytest.mark.parametrize("command", ["dev", "server:start"])
    def test_missing_config_exits_1(
        self, runner: CliRunner, tmp_path: Path, command: str
    ) -> None:
        result = runner.invoke(main, [command, "--root-path", str(tmp_path), "--no-watch"])
        assert result.exit_code == 1
        assert "Unable to start dev server" in result.output
        assert "contentloom init" in result.output

    def test_camel_case_root_path(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, ["dev", "--rootPath", str(tmp_path), "--noWatch"])
        assert result.exit_code == 1
        assert "Unable to find config file" in result.output


class TestInit:
    def test_init_then_rerun(self, runner: CliRunner, tmp_path: Path) -> None:
        first = runner.invoke(main, ["init", "--root-path", str(tmp_path)])
        assert first.exit_code == 0
        assert "created contentloom/config.yml" in first.output
        assert (tmp_path / "content" / "posts" / "hello-world.md").is_file()

        second = runner.invoke(main, ["init", "--root-path", str(tmp_path)])
        assert second.exit_code == 0
        assert "exists  contentloom/config.yml" in second.output
        assert "created" not in second.output
