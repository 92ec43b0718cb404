import json
import logging
import os
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

SLICES = ("user", "branch", "sound")


class SessionStore:
    """
    Session slices (user, selected branch, sound) kept as small JSON
    files in the app data directory, one file per slice.

    The engine reads these; the dashboard writes them.
    """

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        os.makedirs(self.data_dir, exist_ok=True)

    def _path(self, name: str) -> str:
        if name not in SLICES:
            raise KeyError(f"unknown session slice: {name}")
        return os.path.join(self.data_dir, f"session_{name}.json")

    def save(self, name: str, data: Any) -> None:
        with open(self._path(name), "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)

    def load(self, name: str, default: Any = None) -> Any:
        path = self._path(name)
        if not os.path.exists(path):
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("[SessionStore] could not read %s: %s", name, exc)
            return default

    def clear(self, name: str) -> None:
        path = self._path(name)
        if os.path.exists(path):
            os.remove(path)

    # -------- convenience accessors --------

    def user(self) -> Optional[Dict[str, Any]]:
        data = self.load("user")
        return data if isinstance(data, dict) else None

    def branch_id(self) -> Optional[str]:
        data = self.load("branch")
        if isinstance(data, dict):
            data = data.get("id")
        return str(data) if data not in (None, "") else None

    def sound_enabled(self, default: bool = True) -> bool:
        data = self.load("sound")
        return data if isinstance(data, bool) else default

    def logout(self) -> None:
        for name in ("user", "branch"):
            self.clear(name)
