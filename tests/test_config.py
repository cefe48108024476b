"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import pytest

from clubhouse.config import load_config


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_required_keys_and_defaults(self, tmp_path):
        path = _write(tmp_path, (
            'club_name: "Riverside Red Cross Club"\n'
            'club_motto: "Humanity"\n'
            "dashboard_port: 8000\n"
        ))
        cfg = load_config(path)
        assert cfg.club_name == "Riverside Red Cross Club"
        assert cfg.dashboard_port == 8000
        assert cfg.default_page_size == 10
        assert cfg.max_page_size == 100
        assert cfg.comment_max_length == 500

    def test_tuning_overrides(self, tmp_path):
        path = _write(tmp_path, (
            "club_name: A\nclub_motto: B\ndashboard_port: '9000'\n"
            "default_page_size: 25\nmax_page_size: 50\ncomment_max_length: 200\n"
        ))
        cfg = load_config(path)
        assert cfg.dashboard_port == 9000
        assert (cfg.default_page_size, cfg.max_page_size, cfg.comment_max_length) == (25, 50, 200)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        path = _write(tmp_path, "club_name: A\ndashboard_port: 8000\n")
        with pytest.raises(KeyError, match="club_motto"):
            load_config(path)

    def test_empty_file_is_missing_keys(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, ""))
