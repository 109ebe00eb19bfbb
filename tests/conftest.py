"""Shared fixtures: a small two-phase epic and storage backends."""

from datetime import datetime, timezone

import pytest

from agentpm.epic.model import CurrentState, Epic, Metadata, Phase, Task, Test
from agentpm.epic.status import EpicStatus
from agentpm.storage.file import FileStorage
from agentpm.storage.memory import MemoryStorage

CREATED = datetime(2025, 8, 16, 10, 0, 0, tzinfo=timezone.utc)
NOW = datetime(2025, 8, 16, 15, 30, 0, tzinfo=timezone.utc)

EPIC_PATH = "epic.xml"


def build_epic() -> Epic:
    return Epic(
        id="E1",
        name="Sample Epic",
        status=EpicStatus.PENDING,
        created_at=CREATED,
        assignee="agent",
        description="Build the sample",
        metadata=Metadata(created=CREATED, assignee="agent"),
        current_state=CurrentState(next_action="Start next phase"),
        phases=[
            Phase("P1", "Setup"),
            Phase("P2", "Build"),
        ],
        tasks=[
            Task("T1a", "P1", "Init repo"),
            Task("T1b", "P1", "Configure CI"),
            Task("T2a", "P2", "Write code"),
        ],
        tests=[
            Test("TS1", "T1a", "P1", "Repo exists", "Repository is initialized"),
            Test("TS2", "T1b", "P1", "CI green"),
            Test("TS3", "T2a", "P2", "Code compiles"),
        ],
    )


@pytest.fixture
def epic():
    """Fresh pending epic: P1 (T1a, T1b) and P2 (T2a), one test per task."""
    return build_epic()


@pytest.fixture
def memory_storage(epic):
    """MemoryStorage seeded with the sample epic under EPIC_PATH."""
    storage = MemoryStorage()
    storage.store_epic(EPIC_PATH, epic)
    return storage


@pytest.fixture
def epic_file(tmp_path, epic):
    """The sample epic saved as XML in tmp_path."""
    path = tmp_path / "epic.xml"
    FileStorage().save_epic(epic, str(path))
    return path
