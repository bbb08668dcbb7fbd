"""Unit tests for the JSON config layer."""

import json

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from autophagy.config import DEFAULT_CONFIG, load_config, reset_config, save_config


class TestConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path / "none.json") == DEFAULT_CONFIG

    def test_partial_file_is_merged_over_defaults(self, tmp_path):
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps({"role": "watch", "sync": {"bind_port": 47801}}))

        cfg = load_config(path)
        assert cfg["role"] == "watch"
        assert cfg["sync"]["bind_port"] == 47801
        assert cfg["sync"]["peer_host"] == DEFAULT_CONFIG["sync"]["peer_host"]
        assert cfg["local_db_name"] == DEFAULT_CONFIG["local_db_name"]

    def test_corrupt_file_gives_defaults(self, tmp_path):
        path = tmp_path / "cfg.json"
        path.write_text("{not json")
        assert load_config(path) == DEFAULT_CONFIG

    def test_unreadable_path_gives_defaults(self, tmp_path):
        # a directory exists but cannot be opened as a file
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_returned_config_is_a_copy(self, tmp_path):
        cfg = load_config(tmp_path / "none.json")
        cfg["sync"]["bind_port"] = 1
        assert DEFAULT_CONFIG["sync"]["bind_port"] == 47800

    def test_save_and_reset(self, tmp_path):
        path = tmp_path / "sub" / "cfg.json"
        cfg = load_config(path)
        cfg["role"] = "watch"
        save_config(cfg, path)
        assert load_config(path)["role"] == "watch"

        assert reset_config(path) == DEFAULT_CONFIG
        assert load_config(path)["role"] == "phone"
