"""Abstract epic storage protocol."""

from typing import Protocol

from agentpm.epic.model import Epic


class StorageError(Exception):
    """Base class for storage failures."""

    def __init__(self, message: str, path: str = ""):
        self.path = path
        super().__init__(message)


class EpicNotFoundError(StorageError):
    """No epic exists at the requested path."""

    def __init__(self, path: str):
        super().__init__(f"epic file not found: {path}", path)


class EpicSaveError(StorageError):
    """Writing the epic failed; the previous file content is untouched."""


class EpicStorage(Protocol):
    """Interface that any epic storage backend must implement.

    Load errors from the codec (EpicParseError, EpicStructureError) propagate
    unchanged, with the path recorded on the exception.
    """

    def load_epic(self, path: str) -> Epic: ...

    def save_epic(self, epic: Epic, path: str) -> None: ...

    def epic_exists(self, path: str) -> bool: ...
