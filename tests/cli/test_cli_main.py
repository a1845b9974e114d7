"""Tests for the bootserve command-line entry point."""

from __future__ import annotations

import json
import logging

import pytest

from bootserve.cli import main as cli
from bootserve.server import core


class TestParser:
    def test_defaults(self):
        args = cli._build_parser().parse_args([])
        assert args.config == "config/config.yaml"
        assert args.debug is False
        assert args.validate_only is False

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["--version"])
        assert excinfo.value.code == 0
        assert "bootserve 1.0.0" in capsys.readouterr().out


class TestValidateOnly:
    def test_prints_resolved_config(self, tmp_config_file, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["-c", str(tmp_config_file), "--validate-only"])
        assert excinfo.value.code == 0

        summary = json.loads(capsys.readouterr().out)
        assert summary["source"] == str(tmp_config_file)
        assert summary["server"]["kind"] == "pooled-async"
        assert summary["server"]["port"] == "9000"
        assert summary["app"] == {"app_name": "ibis-test", "version": "2.3.4"}
        assert summary["logger"]["logfile_name"] == "ibis.log"

    def test_missing_file_prints_defaults(self, tmp_path, capsys):
        with pytest.raises(SystemExit):
            cli.main(["-c", str(tmp_path / "nope.yaml"), "--validate-only"])
        summary = json.loads(capsys.readouterr().out)
        assert summary["source"] is None
        assert summary["app"]["app_name"] == "xxx"


class TestRun:
    def test_runs_server_with_config_path(self, monkeypatch):
        calls = []
        monkeypatch.setattr(core, "run", calls.append)
        cli.main(["-c", "/etc/bootserve.yaml"])
        assert calls == ["/etc/bootserve.yaml"]

    def test_keyboard_interrupt_is_handled(self, monkeypatch, caplog):
        def interrupted(_path):
            raise KeyboardInterrupt

        monkeypatch.setattr(core, "run", interrupted)
        with caplog.at_level(logging.INFO, logger="bootserve"):
            cli.main([])
        assert "Interrupted, shutting down" in caplog.text
