"""Tests for the python -m partners_gateway entry point."""

import os
from unittest.mock import patch

import pytest

from partners_gateway.__main__ import main
from partners_gateway.__version__ import __version__

ENV = {"COUPANG_ACCESS_KEY": "ak-1234", "COUPANG_SECRET_KEY": "sk-5678"}


class TestVersionCommand:
    def test_prints_version(self, capsys):
        assert main(["version"]) == 0
        assert __version__ in capsys.readouterr().out


class TestSignCommand:
    """Tests for the sign subcommand."""

    def test_prints_header(self, capsys):
        with patch.dict(os.environ, ENV, clear=True):
            assert main(["sign", "get", "/v2/path", "keyword=a&limit=1"]) == 0
        out = capsys.readouterr().out.strip()
        assert out.startswith("CEA algorithm=HmacSHA256, access-key=ak-1234, signed-date=")
        assert "sk-5678" not in out

    def test_missing_credentials(self, capsys):
        with patch.dict(os.environ, {}, clear=True):
            assert main(["sign", "GET", "/v2/path"]) == 1
        assert "API keys not configured" in capsys.readouterr().err

    def test_invalid_configuration(self, capsys):
        with patch.dict(os.environ, {**ENV, "PORT": "not-a-port"}, clear=True):
            assert main(["sign", "GET", "/v2/path"]) == 2
        assert "PORT" in capsys.readouterr().err


class TestServeCommand:
    """Tests for the serve subcommand."""

    @pytest.mark.parametrize("argv", [["serve", "--port", "9000", "--host", "127.0.0.1"], []])
    def test_runs_server(self, argv):
        with patch.dict(os.environ, ENV, clear=True), patch(
            "partners_gateway.server.run"
        ) as run, patch("partners_gateway.logging_config.configure_logging") as configure:
            assert main(argv) == 0

        configure.assert_called_once()
        config = run.call_args.args[0]
        if argv:
            assert config.port == 9000
            assert config.host == "127.0.0.1"
        else:
            assert config.port == 8787
        assert config.access_key == "ak-1234"

    def test_text_logs_flag(self):
        with patch.dict(os.environ, ENV, clear=True), patch("partners_gateway.server.run"), patch(
            "partners_gateway.logging_config.configure_logging"
        ) as configure:
            main(["serve", "--text-logs", "--log-level", "DEBUG"])
        configure.assert_called_once_with(level="DEBUG", json_output=False)
