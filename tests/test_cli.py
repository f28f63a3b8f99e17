# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the popguard CLI entry point."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from popguard import __version__
from popguard.cli import build_parser, main


@pytest.fixture
def db(tmp_path) -> str:
    return str(tmp_path / "cli.db")


# ── TestParser ───────────────────────────────────────────────────────


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_run_flags(self):
        args = build_parser().parse_args(["-v", "--json-logs", "run", "--headless", "--no-classifier"])
        assert args.verbose is True
        assert args.json_logs is True
        assert args.headless is True
        assert args.no_classifier is True

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out


# ── TestListCommands ─────────────────────────────────────────────────


class TestListCommands:
    def test_block_then_lists(self, db, capsys):
        main(["--db-path", db, "block", "Bad.Example"])
        assert "Blocked bad.example" in capsys.readouterr().out

        main(["--db-path", db, "lists", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data == {"enabled": True, "blocked": ["bad.example"], "safe": []}

    def test_allow_moves_domain(self, db, capsys):
        main(["--db-path", db, "block", "a.example"])
        main(["--db-path", db, "allow", "a.example"])
        capsys.readouterr()

        main(["--db-path", db, "lists"])
        out = capsys.readouterr().out
        assert "enabled: yes" in out
        assert "blocked (0):" in out
        assert "safe (1):" in out
        assert "  a.example" in out


# ── TestRun ──────────────────────────────────────────────────────────


class TestRun:
    def test_run_builds_config_from_flags(self, db):
        with (
            patch("popguard.cli._run_guard", new_callable=AsyncMock) as mock_run,
            patch("popguard.cli.configure_logging") as mock_logging,
        ):
            main(["-v", "--db-path", db, "run", "--headless", "--url", "https://start.example/", "--no-classifier"])

        config = mock_run.await_args.args[0]
        assert config.headless is True
        assert config.start_url == "https://start.example/"
        assert config.db_path == db
        assert config.log_level == "DEBUG"
        assert mock_run.await_args.kwargs == {"use_classifier": False}
        mock_logging.assert_called_once_with(json_output=False, level="DEBUG")


# ── TestErrors ───────────────────────────────────────────────────────


class TestErrors:
    def test_config_error_exits_1(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(tmp_path / "missing.yaml"), "lists"])
        assert exc_info.value.code == 1
        assert "error:" in capsys.readouterr().err

    def test_keyboard_interrupt_exits_130(self, capsys):
        with patch.dict("popguard.cli.COMMANDS", {"lists": MagicMock(side_effect=KeyboardInterrupt)}):
            with pytest.raises(SystemExit) as exc_info:
                main(["lists"])
        assert exc_info.value.code == 130
        assert "Interrupted" in capsys.readouterr().err
