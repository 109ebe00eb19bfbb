"""Tests for agentpm.lib.config module."""

import json

import pytest

from agentpm.lib.config import (
    Config,
    ConfigError,
    ConfigInvalidError,
    ConfigNotFoundError,
    config_exists,
    load_config,
    save_config,
    switch_back,
    switch_epic,
)


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigNotFoundError):
            load_config(tmp_path / ".agentpm.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / ".agentpm.json"
        path.write_text("not valid json {{{")
        with pytest.raises(ConfigInvalidError) as exc:
            load_config(path)
        assert "invalid JSON" in str(exc.value)

    def test_schema_violation(self, tmp_path):
        path = tmp_path / ".agentpm.json"
        path.write_text(json.dumps({"current_epic": 5}))
        with pytest.raises(ConfigInvalidError) as exc:
            load_config(path)
        assert "[config]" in str(exc.value)

    def test_missing_current_epic(self, tmp_path):
        path = tmp_path / ".agentpm.json"
        path.write_text(json.dumps({"project_name": "demo"}))
        with pytest.raises(ConfigInvalidError):
            load_config(path)

    def test_empty_current_epic(self, tmp_path):
        path = tmp_path / ".agentpm.json"
        path.write_text(json.dumps({"current_epic": ""}))
        with pytest.raises(ConfigInvalidError):
            load_config(path)

    def test_default_assignee_filled(self, tmp_path):
        path = tmp_path / ".agentpm.json"
        path.write_text(json.dumps({"current_epic": "epic-8.xml"}))
        config = load_config(path)
        assert config.default_assignee == "agent"
        assert config.project_name == ""


class TestEpicFilePath:
    def test_relative_is_anchored(self):
        assert Config(current_epic="epic.xml").epic_file_path() == "./epic.xml"

    def test_absolute_unchanged(self):
        assert Config(current_epic="/work/epic.xml").epic_file_path() == "/work/epic.xml"


class TestSaveConfig:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "sub" / ".agentpm.json"
        save_config(Config(current_epic="epic.xml", project_name="demo"), path)
        assert config_exists(path)
        loaded = load_config(path)
        assert loaded.current_epic == "epic.xml"
        assert loaded.project_name == "demo"
        assert loaded.default_assignee == "agent"

    def test_invalid_config_not_written(self, tmp_path):
        path = tmp_path / ".agentpm.json"
        with pytest.raises(ConfigInvalidError):
            save_config(Config(current_epic=""), path)
        assert not path.exists()

    def test_sequential_saves_are_atomic(self, tmp_path):
        """Overwriting the same path leaves no .tmp and keeps the last write."""
        path = tmp_path / ".agentpm.json"
        for name in ("one.xml", "two.xml", "three.xml"):
            save_config(Config(current_epic=name, default_assignee="agent"), path)

        assert not (tmp_path / ".agentpm.json.tmp").exists()
        assert [p.name for p in tmp_path.iterdir()] == [".agentpm.json"]
        expected = json.dumps({"current_epic": "three.xml", "default_assignee": "agent"}, indent=2) + "\n"
        assert path.read_bytes() == expected.encode("utf-8")


class TestSwitch:
    @pytest.fixture
    def config_path(self, tmp_path):
        """Config pointing at a.xml."""
        path = tmp_path / ".agentpm.json"
        save_config(Config(current_epic="a.xml"), path)
        return path

    def test_switch_records_previous(self, config_path):
        config = switch_epic("b.xml", config_path)
        assert config.current_epic == "b.xml"
        assert config.previous_epic == "a.xml"
        assert load_config(config_path).previous_epic == "a.xml"

    def test_switch_back_swaps(self, config_path):
        switch_epic("b.xml", config_path)
        config = switch_back(config_path)
        assert config.current_epic == "a.xml"
        assert config.previous_epic == "b.xml"

    def test_switch_back_without_previous(self, config_path):
        with pytest.raises(ConfigError):
            switch_back(config_path)

    def test_switch_to_missing_epic(self, config_path):
        with pytest.raises(ConfigError):
            switch_epic("b.xml", config_path, exists=lambda p: False)
        assert load_config(config_path).current_epic == "a.xml"

    def test_switch_to_same_epic_keeps_previous(self, config_path):
        switch_epic("b.xml", config_path)
        config = switch_epic("b.xml", config_path)
        assert config.previous_epic == "a.xml"
