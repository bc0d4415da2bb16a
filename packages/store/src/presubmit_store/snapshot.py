"""SnapshotFile: the open CLs seen by the previous poll round.

Data format: one JSON object mapping each ref to the serialised change,
rewritten wholesale after every query. A missing file is a first run and
reads as empty; a file that exists but cannot be parsed is an error, since
treating it as empty would re-dispatch every open CL.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from presubmit_core.errors import SnapshotError

logger = logging.getLogger(__name__)

__all__ = ["SnapshotError", "SnapshotFile"]


class SnapshotFile:
    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def load(self) -> dict[str, dict]:
        try:
            text = self.path.read_text()
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise SnapshotError(f"Could not read {self.path}: {e}") from e
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise SnapshotError(f"Could not parse {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise SnapshotError(f"{self.path} must contain a JSON object")
        return data

    def save(self, refs: dict[str, dict]) -> None:
        """Replace the snapshot atomically so a crash never leaves half a file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(refs, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug("Wrote %d ref(s) to %s", len(refs), self.path)
