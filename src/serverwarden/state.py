"""Persistence of the installed configuration.

The state file holds ``path``, ``version`` and ``memoryAllocation``. A
missing file, unreadable JSON, or any missing field means the
installation has not been configured yet and first-run setup must run.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from serverwarden.logging import get_logger

log = get_logger("serverwarden.state")

_REQUIRED_KEYS = ("path", "version", "memoryAllocation")


@dataclass
class InstalledState:
    """What is installed where, and how much memory it gets."""

    path: str
    version: str = ""
    memory_allocation: int = 1

    @property
    def install_path(self) -> Path:
        return Path(self.path)

    def artifact_path(self, filename: str) -> Path:
        return self.install_path / filename

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "version": self.version,
            "memoryAllocation": str(self.memory_allocation),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstalledState | None:
        if any(data.get(key) is None for key in _REQUIRED_KEYS):
            return None
        try:
            memory = int(str(data["memoryAllocation"]).strip())
        except ValueError:
            return None
        if memory < 1:
            return None
        return cls(path=str(data["path"]), version=str(data["version"]), memory_allocation=memory)


class StateStore:
    """Reads and atomically rewrites the JSON state file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> InstalledState | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            log.warning("state_load_failed", path=str(self._path))
            return None
        if not isinstance(data, dict):
            return None
        state = InstalledState.from_dict(data)
        if state is not None:
            log.info("state_loaded", path=str(self._path), version=state.version)
        return state

    def save(self, state: InstalledState) -> bool:
        """Write *state*; returns False (after logging) if the write failed."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError:
            log.exception("state_save_failed", path=str(self._path))
            return False
        log.info("state_saved", path=str(self._path), version=state.version)
        return True
