"""
Tests for environment configuration and the command line entry point
"""

import json
import runpy
import sys

import pytest

from ionmboard import cli
from ionmboard.board import AssignmentBoard
from ionmboard.config import BoardConfig, load_config
from ionmboard.store.memory import MemoryStaffStore
from ionmboard.store.sqlite import SqliteStaffStore


class TestLoadConfig:

    def test_defaults(self, monkeypatch):
        for key in ("IONMBOARD_API_HOST", "IONMBOARD_API_PORT", "IONMBOARD_STORE",
                    "IONMBOARD_CLIENT_BASE", "IONMBOARD_CLIENT_HOST", "IONMBOARD_CLIENT_PORT"):
            monkeypatch.delenv(key, raising=False)
        cfg = load_config(create_dirs=False)
        assert cfg.api_port == BoardConfig.api_port
        assert cfg.store_kind == "sqlite"
        assert cfg.client_base_url == f"http://127.0.0.1:{BoardConfig.api_port}"

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("IONMBOARD_API_HOST", "http://board.local")
        monkeypatch.setenv("IONMBOARD_API_PORT", "9100")
        monkeypatch.setenv("IONMBOARD_STORE", "Memory")
        monkeypatch.setenv("IONMBOARD_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("IONMBOARD_POLL_MS", "5")
        monkeypatch.setenv("IONMBOARD_DEBUG", "yes")
        monkeypatch.delenv("IONMBOARD_CLIENT_HOST", raising=False)
        monkeypatch.delenv("IONMBOARD_CLIENT_PORT", raising=False)
        monkeypatch.delenv("IONMBOARD_CLIENT_BASE", raising=False)
        cfg = load_config(create_dirs=False)
        assert cfg.api_host == "board.local"
        assert cfg.api_port == 9100
        assert cfg.client_base_url == "http://board.local:9100"
        assert cfg.store_kind == "memory"
        assert cfg.db_path == tmp_path / "ionm_staff.db"
        assert cfg.poll_interval_ms == 50
        assert cfg.log_level == "DEBUG"

    def test_bad_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("IONMBOARD_API_PORT", "eighty")
        monkeypatch.setenv("IONMBOARD_REQUEST_TIMEOUT", "soon")
        monkeypatch.setenv("IONMBOARD_STORE", "postgres")
        cfg = load_config(create_dirs=False)
        assert cfg.api_port == BoardConfig.api_port
        assert cfg.request_timeout == BoardConfig.request_timeout
        assert cfg.store_kind == "sqlite"


class TestCli:

    @pytest.fixture
    def seed(self, tmp_path, sample_staff):
        path = tmp_path / "seed.json"
        path.write_text(json.dumps({"items": [r.to_dict() for r in sample_staff]}), encoding="utf-8")
        return path

    def test_open_memory_store(self, seed):
        store = cli.open_store("memory", seed=seed)
        assert isinstance(store, MemoryStaffStore)
        assert len(store.fetch_all()) == 5

    def test_open_sqlite_store_seeds_once(self, seed, tmp_path):
        db = tmp_path / "cli.db"
        cli.open_store("sqlite", db_path=db, seed=seed).close()
        store = cli.open_store("sqlite", db_path=db, seed=seed)
        assert isinstance(store, SqliteStaffStore)
        assert len(store.fetch_all()) == 5
        store.close()

    def test_format_board(self, memory_store):
        board = AssignmentBoard(memory_store)
        board.start()
        text = cli.format_board(board)
        assert "    5  Bob  [201]" in text
        assert "Roster (2)" in text
        assert "       Alice" in text

    def test_parser(self):
        args = cli.build_parser().parse_args(["reset", "--url", "http://x:1", "--yes"])
        assert args.yes is True
        assert args.url == "http://x:1"
        args = cli.build_parser().parse_args(["serve", "--store", "memory", "--port", "9000"])
        assert (args.store, args.port) == ("memory", 9000)

    def test_unreachable_server_reports_error(self, capsys):
        assert cli.main(["show", "--url", "http://127.0.0.1:9"]) == 2
        assert "error:" in capsys.readouterr().err

    def test_module_entry_point(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["ionmboard", "--help"])
        with pytest.raises(SystemExit) as exc:
            runpy.run_module("ionmboard", run_name="__main__")
        assert exc.value.code == 0
        assert "register" in capsys.readouterr().out
