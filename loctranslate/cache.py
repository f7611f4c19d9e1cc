import logging
import sqlite3

LOGGER = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS translations (
    backend TEXT NOT NULL,
    endpoint TEXT NOT NULL,
    source TEXT NOT NULL,
    translation TEXT NOT NULL,
    PRIMARY KEY (backend, endpoint, source)
)
"""


class TranslationCache:
    """SQLite store of finished translations.

    Rows are keyed by backend name, the endpoint that produced them (server
    URL or model id) and the protected source text, so answers from one
    server or model are never served as another's.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._conn = sqlite3.connect(path)
        self._conn.execute(SCHEMA)
        self._conn.commit()
        LOGGER.info("Translation cache: %s (%d entries)", path, len(self))

    def __len__(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM translations").fetchone()[0]

    def get(self, backend: str, endpoints: list[str], source: str) -> str | None:
        """Return the first cached translation, trying endpoints in order."""
        for endpoint in endpoints:
            row = self._conn.execute(
                "SELECT translation FROM translations"
                " WHERE backend = ? AND endpoint = ? AND source = ?",
                (backend, endpoint, source),
            ).fetchone()
            if row:
                return row[0]
        return None

    def put(self, backend: str, endpoint: str, source: str, translation: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO translations VALUES (?, ?, ?, ?)",
                (backend, endpoint, source, translation),
            )

    def close(self) -> None:
        self._conn.close()
