"""In-memory epic storage for tests."""

import copy

from agentpm.epic.model import Epic
from agentpm.storage.base import EpicNotFoundError, EpicSaveError


class MemoryStorage:
    """EpicStorage backed by a dict keyed by logical path.

    Epics are deep-copied in and out so callers never share state with the
    store, matching what a file round trip gives.
    """

    def __init__(self):
        self._epics: dict[str, Epic] = {}
        self.save_count = 0

    def store_epic(self, path: str, epic: Epic) -> None:
        """Seed an epic without counting it as a save."""
        self._epics[path] = copy.deepcopy(epic)

    def load_epic(self, path: str) -> Epic:
        if path not in self._epics:
            raise EpicNotFoundError(path)
        return copy.deepcopy(self._epics[path])

    def save_epic(self, epic: Epic, path: str) -> None:
        if epic is None:
            raise EpicSaveError("cannot save empty epic", path)
        self._epics[path] = copy.deepcopy(epic)
        self.save_count += 1

    def epic_exists(self, path: str) -> bool:
        return path in self._epics

    def paths(self) -> list[str]:
        return sorted(self._epics)
