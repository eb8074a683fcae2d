"""Tests for configuration models."""

import json

import pytest
from pydantic import ValidationError

from screentest.models.config import (
    ScreentestConfig,
    ViewportConfig,
    default_concurrency,
    parse_key_value_pairs,
)


class TestViewportConfig:
    """Tests for ViewportConfig model."""

    def test_default_values(self):
        config = ViewportConfig()
        assert (config.width, config.height) == (1280, 720)

    @pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (-5, 10)])
    def test_rejects_non_positive(self, width, height):
        with pytest.raises(ValidationError):
            ViewportConfig(width=width, height=height)

    def test_is_frozen(self):
        config = ViewportConfig()
        with pytest.raises(ValidationError):
            config.width = 10


class TestParseKeyValuePairs:
    def test_parses_pairs(self):
        assert parse_key_value_pairs("A:1, B : two") == {"A": "1", "B": "two"}

    def test_value_may_contain_colons(self):
        assert parse_key_value_pairs("BASE:http://localhost:8080") == {
            "BASE": "http://localhost:8080",
        }

    def test_empty_text(self):
        assert parse_key_value_pairs("") == {}
        assert parse_key_value_pairs("   ") == {}

    @pytest.mark.parametrize("text", ["novalue", ":x", "A:1,broken"])
    def test_rejects_malformed_pair(self, text):
        with pytest.raises(ValueError, match="want NAME:VALUE"):
            parse_key_value_pairs(text, "variable")


class TestScreentestConfig:
    """Tests for ScreentestConfig model."""

    def test_default_values(self):
        config = ScreentestConfig()
        assert config.update is False
        assert config.run_filter is None
        assert config.vars == {}
        assert config.headers == {}
        assert config.headless is True
        assert config.max_concurrency == default_concurrency()
        assert config.tolerance == 0.0
        assert config.pixel_threshold == 0
        assert config.report_formats == ["json"]

    def test_default_concurrency_is_half_the_cpus(self, monkeypatch):
        monkeypatch.setattr("os.cpu_count", lambda: 8)
        assert default_concurrency() == 4
        monkeypatch.setattr("os.cpu_count", lambda: None)
        assert default_concurrency() == 1

    @pytest.mark.parametrize("field,value", [
        ("max_concurrency", 0),
        ("tolerance", -0.1),
        ("tolerance", 1.5),
        ("pixel_threshold", 256),
        ("action_timeout_seconds", 0),
        ("test_timeout_seconds", -1),
        ("run_filter", "("),
    ])
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            ScreentestConfig(**{field: value})

    def test_empty_run_filter_becomes_none(self):
        assert ScreentestConfig(run_filter="").run_filter is None

    def test_matches_without_filter(self):
        assert ScreentestConfig().matches("anything:at all")

    def test_matches_is_a_search(self):
        config = ScreentestConfig(run_filter="home")
        assert config.matches("site:homepage")
        assert not config.matches("site:about")

    def test_matches_anchored(self):
        config = ScreentestConfig(run_filter=r"^site:a$")
        assert config.matches("site:a")
        assert not config.matches("site:ab")

    def test_output_location_default(self):
        assert ScreentestConfig().output_location.endswith("screentest")
        assert ScreentestConfig(output_url="/tmp/out").output_location == "/tmp/out"

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "screentest.json"
        config = ScreentestConfig(
            test_url="http://localhost:6060",
            want_url="testdata/golden",
            vars={"BASE": "http://localhost:6060"},
            viewport=ViewportConfig(width=800, height=600),
            max_concurrency=3,
        )
        config.save(path)

        data = json.loads(path.read_text())
        assert data["test_url"] == "http://localhost:6060"
        loaded = ScreentestConfig.load(path)
        assert loaded == config

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            ScreentestConfig.load(tmp_path / "missing.json")
