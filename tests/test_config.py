"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from kicad_viewer.config import KiCadViewerConfig, LogLevel, TransportType


class TestConfig:
    def test_defaults(self, monkeypatch):
        for name in ("KICAD_VIEWER_TRANSPORT", "KICAD_VIEWER_SCHEMATIC_HIT_TOLERANCE"):
            monkeypatch.delenv(name, raising=False)
        config = KiCadViewerConfig()
        assert config.transport == TransportType.STDIO
        assert config.schematic_hit_tolerance == 2.0
        assert config.board_hit_tolerance == 0.5
        assert config.details_on_reselect is True
        assert config.descend_on_reselect is True
        assert config.gitlab_base_url == "https://gitlab.com"

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("KICAD_VIEWER_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("KICAD_VIEWER_BOARD_HIT_TOLERANCE", "0.25")
        monkeypatch.setenv("KICAD_VIEWER_DESCEND_ON_RESELECT", "false")
        config = KiCadViewerConfig()
        assert config.log_level == LogLevel.DEBUG
        assert config.board_hit_tolerance == 0.25
        assert config.descend_on_reselect is False

    def test_base_url_trailing_slash(self):
        config = KiCadViewerConfig(gitlab_base_url="https://git.example.com/")
        assert config.gitlab_base_url == "https://git.example.com"

    @pytest.mark.parametrize("field,value", [
        ("schematic_hit_tolerance", 0),
        ("board_hit_tolerance", -1),
        ("viewport_width", 0),
        ("fit_margin", -0.5),
        ("gitlab_base_url", "gitlab.com"),
    ])
    def test_invalid(self, field: str, value):
        with pytest.raises(ValueError):
            KiCadViewerConfig(**{field: value})

    def test_log_file(self, tmp_path: Path):
        log_file = tmp_path / "logs" / "viewer.log"
        config = KiCadViewerConfig(log_file=log_file)
        assert config.get_log_file_path() == log_file
        assert log_file.parent.is_dir()
