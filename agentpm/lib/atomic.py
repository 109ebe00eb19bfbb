"""
Atomic file replacement.

Content is written to a sibling `<name>.tmp`, flushed to disk, then renamed
over the target. A reader sees either the old or the new file, never a
truncated one.
"""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def tmp_path_for(path: Path) -> Path:
    """Sibling temp file used while replacing `path`."""
    return path.with_name(path.name + ".tmp")


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write bytes to path via temp file + rename.

    Creates parent directories as needed. On failure the temp file is
    removed and the original OSError propagates.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = tmp_path_for(path)

    try:
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as e:
        logger.warning(f"Atomic write to {path} failed: {e}")
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        raise


def atomic_write_text(path: Path, text: str, encoding: str = "utf-8") -> None:
    """Text variant of atomic_write_bytes."""
    atomic_write_bytes(path, text.encode(encoding))
