"""End-to-end tests for the agentpm command line."""

import json

import pytest

from agentpm.cli import build_parser, main
from agentpm.epic.model import Task, Test
from agentpm.epic.status import EpicStatus, TaskStatus, TestStatus
from agentpm.storage.file import FileStorage

from conftest import build_epic

TIME = "2025-08-16T15:30:00Z"


@pytest.fixture
def run(tmp_path, epic_file):
    """Invoke main() against the sample epic with a config in tmp_path."""
    config = tmp_path / ".agentpm.json"

    def _run(*argv):
        return main(["--config", str(config), "--file", str(epic_file), *argv])
    return _run


def _load(path):
    return FileStorage().load_epic(str(path))


class TestParser:
    def test_global_options(self):
        args = build_parser().parse_args(["--format", "json", "--time", TIME, "pass-test", "A", "B"])
        assert args.format == "json"
        assert args.ids == ["A", "B"]

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_log_defaults(self):
        args = build_parser().parse_args(["log", "did a thing"])
        assert args.type == "implementation"


class TestInit:
    def test_creates_config_and_epic(self, tmp_path, capsys):
        config = tmp_path / ".agentpm.json"
        epic_path = tmp_path / "new.xml"
        code = main(["--config", str(config), "init", "--epic", str(epic_path), "--id", "E9", "--name", "New"])
        assert code == 0
        assert config.exists()
        assert epic_path.exists()
        assert "Created new epic file" in capsys.readouterr().out

        assert main(["--config", str(config), "status"]) == 0
        assert "Epic: New (E9)" in capsys.readouterr().out

    def test_refuses_existing_config(self, tmp_path, capsys):
        config = tmp_path / ".agentpm.json"
        config.write_text('{"current_epic": "a.xml"}')
        assert main(["--config", str(config), "init", "--epic", "b.xml"]) == 2
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "ERROR: " in captured.err and "already exists (use --force to overwrite)" in captured.err

    def test_refusal_as_json(self, tmp_path, capsys):
        config = tmp_path / ".agentpm.json"
        config.write_text('{"current_epic": "a.xml"}')
        assert main(["--config", str(config), "--format", "json", "init", "--epic", "b.xml"]) == 2
        data = json.loads(capsys.readouterr().err)
        assert data["type"] == "ConfigError"
        assert "already exists" in data["message"]

    def test_switch_needs_target(self, run, capsys):
        assert run("--format", "json", "switch") == 2
        data = json.loads(capsys.readouterr().err)
        assert data == {"type": "ConfigError", "message": "Specify an epic file or use --back"}

    def test_missing_config_is_usage_error(self, tmp_path, capsys):
        assert main(["--config", str(tmp_path / "absent.json"), "status"]) == 2
        assert "configuration file not found" in capsys.readouterr().err


class TestLifecycleCommands:
    def test_start_epic(self, run, epic_file, capsys):
        assert run("--time", TIME, "start-epic") == 0
        assert "Epic E1 started" in capsys.readouterr().out
        epic = _load(epic_file)
        assert epic.status == EpicStatus.WIP
        assert epic.events[0].type == "epic_started"
        assert epic.events[0].id == "epic_started_1755358200"

    def test_json_output(self, run, capsys):
        assert run("--format", "json", "status") == 0
        data = json.loads(capsys.readouterr().out)
        assert data["id"] == "E1"
        assert data["status"] == "pending"
        assert data["total_phases"] == 2

    def test_refusal_prints_hint(self, run, epic_file, capsys):
        assert run("start-phase", "P1") == 0
        capsys.readouterr()
        assert run("start-phase", "P2") == 1
        err = capsys.readouterr().err
        assert "ERROR: Cannot start phase: another phase is already active" in err
        assert "Try: agentpm done-phase P1" in err
        assert _load(epic_file).phases[1].status.value == "pending"

    def test_refusal_as_json(self, run, capsys):
        run("start-phase", "P1")
        capsys.readouterr()
        assert run("--format", "json", "start-phase", "P2") == 1
        data = json.loads(capsys.readouterr().err)
        assert data["type"] == "phase_constraint"
        assert data["active_id"] == "P1"
        assert data["hint"]["command"] == "agentpm done-phase P1"

    def test_invalid_time(self, run, capsys):
        assert run("--time", "yesterday", "start-epic") == 2
        assert "ERROR: invalid time format" in capsys.readouterr().err

    def test_cancel_task(self, run, epic_file):
        assert run("cancel-task", "T1b", "Not needed") == 0
        task = _load(epic_file).find_task("T1b")
        assert task.status == TaskStatus.CANCELLED
        assert task.cancellation_reason == "Not needed"

    def test_start_next(self, run, epic_file, capsys):
        assert run("start-next") == 0
        assert "Started Phase P1 and Task T1a" in capsys.readouterr().out
        assert _load(epic_file).find_task("T1a").status == TaskStatus.WIP

    def test_log(self, run, epic_file):
        assert run("--time", TIME, "log", "Chose SQLite", "--type", "decision") == 0
        event = _load(epic_file).events[-1]
        assert (event.type, event.data) == ("decision", "Chose SQLite")

    def test_log_rejects_unknown_type(self, run):
        assert run("log", "x", "--type", "gossip") == 1

    def test_log_with_files(self, run, epic_file, capsys):
        assert run("log", "Split codec", "--files", "agentpm/epic/xmlcodec.py:modified,tests/test_codec.py:added") == 0
        data = "Split codec [files: agentpm/epic/xmlcodec.py:modified, tests/test_codec.py:added]"
        assert f"Logged implementation: {data}" in capsys.readouterr().out
        assert _load(epic_file).events[-1].data == data

    def test_log_rejects_bad_files(self, run, epic_file, capsys):
        before = epic_file.read_bytes()
        assert run("log", "x", "--files", "notes.md:touched") == 2
        assert "invalid file action 'touched'" in capsys.readouterr().err
        assert epic_file.read_bytes() == before


class TestShowCommand:
    def test_task(self, run, capsys):
        assert run("show", "task", "T1a") == 0
        out = capsys.readouterr().out
        assert out.startswith("Task: Init repo (T1a)\nStatus: pending\n")
        assert "Parent phase: P1 - Setup [pending]" in out
        assert "Tests (1):\n  TS1: Repo exists [pending]" in out
        assert "Events" not in out

    def test_test_full(self, run, capsys):
        run("start-next")
        capsys.readouterr()
        assert run("show", "test", "TS1", "--full") == 0
        out = capsys.readouterr().out
        assert "Description: Repository is initialized" in out
        assert "Parent task: T1a - Init repo [wip]" in out
        assert "Progress: 0/2 tasks done (0%), 0/2 tests passed (0%)" in out
        assert "Events (0):" in out

    def test_phase_as_json(self, run, capsys):
        assert run("--format", "json", "show", "phase", "P2", "--full") == 0
        data = json.loads(capsys.readouterr().out)
        assert data["id"] == "P2"
        assert data["full"] is True
        assert [c["id"] for c in data["children"]] == ["T2a", "TS3"]
        assert [s["id"] for s in data["siblings"]] == ["P1"]
        assert data["progress"]["total_tests"] == 1

    def test_epic_as_xml(self, run, capsys):
        assert run("--format", "xml", "show", "epic") == 0
        out = capsys.readouterr().out
        assert "<epic_context>" in out
        assert "<id>E1</id>" in out

    def test_missing_id_is_usage_error(self, run, capsys):
        assert run("show", "task") == 2
        assert "ERROR: task requires an ID" in capsys.readouterr().err

    def test_unknown_id(self, run, capsys):
        assert run("show", "test", "TS9") == 1
        assert "test TS9 not found" in capsys.readouterr().err


class TestTestCommands:
    @pytest.fixture
    def two_tests(self, tmp_path):
        """Sample epic where T1a has two tests, both started."""
        epic = build_epic()
        epic.tests.append(Test("TS1b", "T1a", "P1", "Readme exists"))
        path = tmp_path / "two.xml"
        FileStorage().save_epic(epic, str(path))
        config = str(tmp_path / ".agentpm.json")
        for argv in (["start-phase", "P1"], ["start-task", "T1a"], ["start-test", "TS1"], ["start-test", "TS1b"]):
            assert main(["--config", config, "--file", str(path), *argv]) == 0
        return config, path

    def test_pass_several(self, two_tests, capsys):
        config, path = two_tests
        capsys.readouterr()
        assert main(["--config", config, "--file", str(path), "pass-test", "TS1", "TS1b"]) == 0
        assert "2 tests passed: TS1, TS1b" in capsys.readouterr().out
        epic = _load(path)
        assert all(epic.find_test(i).test_status == TestStatus.DONE for i in ("TS1", "TS1b"))

    def test_batch_is_all_or_nothing(self, two_tests):
        config, path = two_tests
        assert main(["--config", config, "--file", str(path), "pass-test", "TS1", "TS2"]) == 1
        assert _load(path).find_test("TS1").test_status == TestStatus.WIP

    def test_fail_with_reason(self, two_tests):
        config, path = two_tests
        assert main(["--config", config, "--file", str(path), "fail-test", "TS1", "-r", "no .git"]) == 0
        test = _load(path).find_test("TS1")
        assert test.failure_note == "no .git"


class TestValidateCommand:
    def test_valid(self, run, capsys):
        assert run("validate") == 0
        assert "Epic structure is valid" in capsys.readouterr().out

    def test_invalid(self, tmp_path, capsys):
        epic = build_epic()
        epic.tasks.append(Task("T9", "P9", "Orphan"))
        path = tmp_path / "bad.xml"
        FileStorage().save_epic(epic, str(path))
        assert main(["--config", str(tmp_path / ".agentpm.json"), "--file", str(path), "validate"]) == 1
        assert "Task T9 references non-existent phase: P9" in capsys.readouterr().out
