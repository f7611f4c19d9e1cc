import json
import logging
import os

LOGGER = logging.getLogger(__name__)


class TrackingFile:
    """Record of localization files that have been fully processed.

    Stored as ``{"completed": [...]}`` with paths relative to the
    translation root, using forward slashes.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._completed: list[str] = []
        self._index: set[str] = set()

    def __len__(self) -> int:
        return len(self._completed)

    def __contains__(self, rel_path: str) -> bool:
        return self.is_done(rel_path)

    def load(self) -> "TrackingFile":
        self._completed = []
        self._index = set()
        if not os.path.exists(self.path):
            return self
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable tracking file %s: %s", self.path, exc)
            return self
        entries = data.get("completed", []) if isinstance(data, dict) else data
        if not isinstance(entries, list):
            LOGGER.warning("Ignoring malformed tracking file %s", self.path)
            return self
        for entry in entries:
            if isinstance(entry, str) and entry not in self._index:
                self._completed.append(entry)
                self._index.add(entry)
        LOGGER.info("Loaded tracking file %s: %d completed", self.path, len(self._completed))
        return self

    def save(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"completed": self._completed}, f, ensure_ascii=False, indent=2)
            f.write("\n")
        os.replace(tmp_path, self.path)

    def is_done(self, rel_path: str) -> bool:
        return rel_path in self._index

    def mark_done(self, rel_path: str) -> None:
        if rel_path in self._index:
            return
        self._completed.append(rel_path)
        self._index.add(rel_path)
        self.save()

    def reset(self) -> None:
        self._completed = []
        self._index = set()
        if os.path.exists(self.path):
            os.remove(self.path)
