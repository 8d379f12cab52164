"""JSON file settings adapter.

Implements the core SettingsBackend on a single file next to config.json.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional


class JsonFileSettingsBackend:
    """Store the settings document in one UTF-8 file."""

    def __init__(self, path: "str | os.PathLike[str]") -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> Optional[str]:
        try:
            return self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write(self, text: str) -> None:
        """Replace the file atomically so readers never see a partial document."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
