"""Local staging for uploaded broadcast media."""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class MediaStorage(Protocol):
    """Interface for persisting uploaded media files."""

    def save(self, original_filename: str | None, content: bytes) -> Path:
        """Store the file and return where it was written."""

    def discard(self, path: Path) -> None:
        """Remove a staged file that was never sent."""


@dataclass
class LocalMediaStorage(MediaStorage):
    """Writes uploads to a directory under a timestamped name."""

    directory: Path

    def save(self, original_filename: str | None, content: bytes) -> Path:
        """Store an upload as ``<epoch-ms><ext>`` and return its path."""
        self.directory.mkdir(parents=True, exist_ok=True)
        suffix = Path(original_filename or "").suffix
        path = self.directory / f"{time.time_ns() // 1_000_000}{suffix}"
        path.write_bytes(content)
        return path

    def discard(self, path: Path) -> None:
        """Delete ``path``; failures are logged since the upload is unused."""
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning(
                "Failed to remove staged media",
                extra={"path": str(path)},
                exc_info=True,
            )
