import json
import os
import tempfile
from pathlib import Path
from typing import Any, List

from chore_anchors.logging_config import get_logger

logger = get_logger(__name__)


class AnchorFileStore:
    """The sync server's anchor set, kept as one JSON array on disk."""

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> List[Any]:
        """Return the stored array; a missing or unreadable file counts as empty."""
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Error loading anchors from %s: %s", self.path, e)
            return []
        if not isinstance(data, list):
            logger.error("Anchor file %s does not hold an array", self.path)
            return []
        return data

    def save(self, anchors: List[Any]) -> None:
        """Replace the stored array atomically. Raises OSError on failure."""
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(anchors, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.info("Saved %d anchors to %s", len(anchors), self.path)
