"""File-backed epic storage with atomic replace on save."""

import logging
from pathlib import Path

from agentpm.epic.model import Epic
from agentpm.epic.xmlcodec import parse_epic, serialize_epic
from agentpm.lib.atomic import atomic_write_bytes
from agentpm.storage.base import EpicNotFoundError, EpicSaveError

logger = logging.getLogger(__name__)


class FileStorage:
    """EpicStorage backed by XML files on disk."""

    def load_epic(self, path: str) -> Epic:
        """Read and parse the epic at path.

        Raises:
            EpicNotFoundError: If the file does not exist
            EpicParseError / EpicStructureError: If the document is invalid
        """
        file_path = Path(path)
        if not file_path.is_file():
            raise EpicNotFoundError(str(path))

        data = file_path.read_bytes()
        epic = parse_epic(data, source=str(path))
        logger.debug(f"Loaded epic {epic.id} from {path}")
        return epic

    def save_epic(self, epic: Epic, path: str) -> None:
        """Serialize and atomically replace the file at path.

        Raises:
            EpicSaveError: If the write or rename fails
        """
        if epic is None:
            raise EpicSaveError("cannot save empty epic", str(path))

        data = serialize_epic(epic)
        try:
            atomic_write_bytes(Path(path), data)
        except OSError as e:
            raise EpicSaveError(f"failed to save epic to {path}: {e}", str(path)) from e
        logger.debug(f"Saved epic {epic.id} to {path}")

    def epic_exists(self, path: str) -> bool:
        return Path(path).is_file()
