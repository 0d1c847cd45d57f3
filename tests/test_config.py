"""
Tests for engine configuration loading.
"""

import pytest
import yaml

from uvacheck.engine.config import (
    EngineConfig, find_config_file, get_default_config, load_config, save_config,
)
from uvacheck.engine.types import MatchMode


class TestEngineConfig:
    """Test suite for EngineConfig defaults and validation."""

    def test_defaults(self):
        config = get_default_config()

        assert config.mode is MatchMode.SYMBOL
        assert config.jobs == 0
        assert "**/bin/**" in config.exclude
        assert config.max_findings_per_file == 0
        assert config.max_total_findings == 0

    def test_invalid_mode(self):
        with pytest.raises(ValueError):
            EngineConfig(match_mode="fuzzy")

    def test_negative_jobs(self):
        with pytest.raises(ValueError):
            EngineConfig(jobs=-1)

    def test_exclude_not_shared(self):
        first, second = EngineConfig(), EngineConfig()
        first.exclude.append("**/Generated/**")
        assert "**/Generated/**" not in second.exclude


class TestLoadConfig:
    """Test suite for load_config and save_config."""

    def test_load_yaml(self, tmp_path):
        path = tmp_path / ".uvacheck.yml"
        path.write_text("match_mode: syntactic\njobs: 2\nexclude:\n  - '**/Migrations/**'\n")

        config = load_config(str(path))

        assert config.mode is MatchMode.SYNTACTIC
        assert config.jobs == 2
        assert config.exclude == ["**/Migrations/**"]

    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_config(str(tmp_path / "absent.yml")) == EngineConfig()
        assert load_config(None) == EngineConfig()

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "uvacheck.yml"
        path.write_text("")
        assert load_config(str(path)) == EngineConfig()

    def test_unknown_keys_ignored(self, tmp_path, caplog):
        path = tmp_path / "uvacheck.yml"
        path.write_text("jobs: 3\nseverity: error\n")

        config = load_config(str(path))

        assert config.jobs == 3
        assert "severity" in caplog.text

    @pytest.mark.parametrize("content", [
        "match_mode: fuzzy\n",
        "jobs: -4\n",
        "- just\n- a list\n",
        "match_mode: [unclosed\n",
    ])
    def test_invalid_file_falls_back_to_defaults(self, tmp_path, caplog, content):
        path = tmp_path / "uvacheck.yml"
        path.write_text(content)

        assert load_config(str(path)) == EngineConfig()
        assert "using defaults" in caplog.text

    def test_save_then_load(self, tmp_path):
        config = EngineConfig(match_mode="syntactic", max_total_findings=50)
        path = tmp_path / "nested" / "uvacheck.yml"

        save_config(config, str(path))

        assert yaml.safe_load(path.read_text())["match_mode"] == "syntactic"
        assert load_config(str(path)) == config


class TestFindConfigFile:
    """Test suite for find_config_file."""

    def test_walks_up(self, tmp_path):
        config_path = tmp_path / ".uvacheck.yaml"
        config_path.write_text("jobs: 1\n")
        nested = tmp_path / "src" / "App"
        nested.mkdir(parents=True)

        assert find_config_file(str(nested)) == str(config_path)

    def test_starts_from_file_directory(self, tmp_path):
        config_path = tmp_path / "uvacheck.yml"
        config_path.write_text("jobs: 1\n")
        source = tmp_path / "Program.cs"
        source.write_text("class Program { }")

        assert find_config_file(str(source)) == str(config_path)

    def test_prefers_dotfile(self, tmp_path):
        (tmp_path / "uvacheck.yml").write_text("jobs: 1\n")
        (tmp_path / ".uvacheck.yml").write_text("jobs: 2\n")

        assert find_config_file(str(tmp_path)) == str(tmp_path / ".uvacheck.yml")
