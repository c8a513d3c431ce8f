"""Tests for hookrunner.cli module."""

from __future__ import annotations

from unittest.mock import patch

import pytest
import yaml

from hookrunner.cli import build_parser, main


class TestParser:
    def test_invalid_level_exits_with_error(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "--level", "loud"])
        assert exc_info.value.code == 2
        assert "invalid choice" in capsys.readouterr().err

    def test_no_flags_parse_as_none(self):
        args = build_parser().parse_args(["run"])
        assert args.port is None and args.health is None and args.history is None

    def test_no_plugin_flags(self):
        args = build_parser().parse_args(["run", "--no-health", "--no-history"])
        assert args.health is False and args.history is False


class TestRunCommand:
    def test_bare_options_run_the_server(self, tmp_path):
        with patch("uvicorn.run") as run:
            main([
                "--port", "4000",
                "--hooks", str(tmp_path / "h"),
                "--logs", str(tmp_path / "l"),
                "--no-history",
                "--config", str(tmp_path / "none.yaml"),
            ])
        assert run.call_count == 1
        app = run.call_args.args[0]
        assert run.call_args.kwargs["port"] == 4000
        assert run.call_args.kwargs["host"] == "0.0.0.0"
        settings = app.state.settings
        assert settings.plugins.history is False
        assert settings.plugins.health is True
        assert app.state.engine.hooks_root == (tmp_path / "h").resolve()

    def test_config_file_is_used(self, tmp_path):
        cfg = tmp_path / "settings.yaml"
        cfg.write_text("server:\n  port: 5000\n  host: 127.0.0.1\n")
        with patch("uvicorn.run") as run:
            main(["run", "--config", str(cfg)])
        assert run.call_args.kwargs["port"] == 5000
        assert run.call_args.kwargs["host"] == "127.0.0.1"


class TestConfigCommand:
    def test_set_then_get(self, tmp_path, capsys):
        cfg = tmp_path / "config" / "settings.yaml"
        main(["config", "--config", str(cfg), "set", "server.port", "8080"])
        assert yaml.safe_load(cfg.read_text()) == {"server": {"port": 8080}}
        capsys.readouterr()
        main(["config", "--config", str(cfg), "get", "server.port"])
        assert capsys.readouterr().out.strip() == "8080"

    def test_set_requires_value(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["config", "--config", str(tmp_path / "s.yaml"), "set", "server.port"])
        assert exc_info.value.code == 1
