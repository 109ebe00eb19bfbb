"""Tests for the epic storage backends."""

from unittest.mock import patch

import pytest

from agentpm.epic.status import PhaseStatus
from agentpm.epic.xmlcodec import EpicParseError, EpicStructureError
from agentpm.storage.base import EpicNotFoundError, EpicSaveError
from agentpm.storage.file import FileStorage
from agentpm.storage.memory import MemoryStorage

from conftest import EPIC_PATH


class TestFileStorage:
    def test_save_then_load(self, tmp_path, epic):
        path = str(tmp_path / "nested" / "epic.xml")
        storage = FileStorage()
        storage.save_epic(epic, path)
        assert storage.epic_exists(path)
        assert storage.load_epic(path) == epic

    def test_missing_file(self, tmp_path):
        with pytest.raises(EpicNotFoundError) as exc:
            FileStorage().load_epic(str(tmp_path / "nope.xml"))
        assert exc.value.path.endswith("nope.xml")

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "bad.xml"
        path.write_text("<epic")
        with pytest.raises(EpicParseError) as exc:
            FileStorage().load_epic(str(path))
        assert exc.value.source == str(path)

    def test_wrong_root(self, tmp_path):
        path = tmp_path / "other.xml"
        path.write_text("<project/>")
        with pytest.raises(EpicStructureError):
            FileStorage().load_epic(str(path))

    def test_save_leaves_no_tmp(self, epic_file, epic):
        epic.phases[0].status = PhaseStatus.WIP
        FileStorage().save_epic(epic, str(epic_file))
        assert not (epic_file.parent / "epic.xml.tmp").exists()
        assert FileStorage().load_epic(str(epic_file)).phases[0].status == PhaseStatus.WIP

    def test_failed_rename_keeps_nothing_behind(self, tmp_path, epic):
        """Renaming over a directory fails; the temp file is cleaned up."""
        target = tmp_path / "epic.xml"
        target.mkdir()
        with pytest.raises(EpicSaveError) as exc:
            FileStorage().save_epic(epic, str(target))
        assert exc.value.path == str(target)
        assert not (tmp_path / "epic.xml.tmp").exists()
        assert target.is_dir()

    def test_failed_replace_keeps_original(self, epic_file, epic):
        before = epic_file.read_bytes()
        epic.name = "Renamed"
        with patch("agentpm.lib.atomic.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(EpicSaveError, match="disk full"):
                FileStorage().save_epic(epic, str(epic_file))
        assert epic_file.read_bytes() == before
        assert not (epic_file.parent / "epic.xml.tmp").exists()

    def test_save_none(self, tmp_path):
        with pytest.raises(EpicSaveError):
            FileStorage().save_epic(None, str(tmp_path / "epic.xml"))


class TestMemoryStorage:
    def test_store_and_load(self, memory_storage, epic):
        assert memory_storage.epic_exists(EPIC_PATH)
        assert memory_storage.load_epic(EPIC_PATH) == epic
        assert memory_storage.save_count == 0

    def test_loaded_copies_are_independent(self, memory_storage):
        loaded = memory_storage.load_epic(EPIC_PATH)
        loaded.phases[0].status = PhaseStatus.WIP
        assert memory_storage.load_epic(EPIC_PATH).phases[0].status == PhaseStatus.PENDING

    def test_save_counts(self, memory_storage, epic):
        memory_storage.save_epic(epic, "other.xml")
        assert memory_storage.save_count == 1
        assert memory_storage.paths() == ["epic.xml", "other.xml"]

    def test_missing(self):
        with pytest.raises(EpicNotFoundError):
            MemoryStorage().load_epic("nope.xml")
