"""
Fortune storage.

The pipeline talks to storage through two calls only: fetch the baseline once
before generating, insert the accepted batch once at the end. Anything with
those two methods works as a store; SQLiteFortuneStore is the bundled one.
"""

import os
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Protocol

from loguru import logger

from ..core.errors import PersistenceError
from ..core.models import AcceptedItem, BaselineItem, SourceType

DEFAULT_DB_PATH = os.path.join("data", "fortunes.db")


class FortuneStore(Protocol):
    def fetch_baseline(self, source_types: Optional[Iterable[SourceType]] = None) -> List[BaselineItem]: ...

    def insert_accepted(self, items: List[AcceptedItem]) -> int: ...


class SQLiteFortuneStore:
    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or os.environ.get("FORTUNEGEN_DB_PATH") or DEFAULT_DB_PATH
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def init_db(self) -> None:
        folder = os.path.dirname(self.db_path)
        try:
            if folder:
                os.makedirs(folder, exist_ok=True)
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS fortunes (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        content TEXT NOT NULL,
                        source_type TEXT NOT NULL,
                        author TEXT,
                        reference TEXT,
                        theme TEXT,
                        translation TEXT,
                        is_approved INTEGER NOT NULL DEFAULT 0,
                        is_used INTEGER NOT NULL DEFAULT 0,
                        is_archived INTEGER NOT NULL DEFAULT 0,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_fortunes_source_type ON fortunes (source_type)")
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Could not initialise fortune store at {self.db_path}: {e}") from e

    def fetch_baseline(self, source_types: Optional[Iterable[SourceType]] = None) -> List[BaselineItem]:
        """All stored items, archived ones included, oldest first."""
        sql = "SELECT content, source_type, author, reference, is_archived FROM fortunes"
        params: list = []
        types = [SourceType(t).value for t in source_types] if source_types else []
        if types:
            sql += f" WHERE source_type IN ({', '.join('?' for _ in types)})"
            params = types
        sql += " ORDER BY id"

        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read baseline: {e}") from e

        baseline = []
        for content, source_type, author, reference, is_archived in rows:
            try:
                st = SourceType(source_type)
            except ValueError:
                # legacy rows still count for text uniqueness
                st = None
            baseline.append(
                BaselineItem(
                    content=content,
                    source_type=st,
                    author=author,
                    reference=reference,
                    is_archived=bool(is_archived),
                )
            )
        return baseline

    def insert_accepted(self, items: List[AcceptedItem]) -> int:
        if not items:
            return 0
        now = datetime.now(timezone.utc).isoformat()
        rows = [
            (
                item.content,
                item.source_type.value,
                item.author,
                item.reference,
                item.theme.value if item.theme else None,
                item.translation,
                int(item.is_approved),
                int(item.is_used),
                int(item.is_archived),
                now,
            )
            for item in items
        ]
        try:
            with closing(self._connect()) as conn, conn:
                conn.executemany(
                    "INSERT INTO fortunes (content, source_type, author, reference, theme, translation, "
                    "is_approved, is_used, is_archived, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to insert {len(rows)} items: {e}") from e
        logger.info(f"Stored {len(rows)} new items in {self.db_path}")
        return len(rows)

    def archive(self, ids: Iterable[int]) -> int:
        ids = [int(i) for i in ids]
        if not ids:
            return 0
        try:
            with closing(self._connect()) as conn, conn:
                cur = conn.execute(
                    f"UPDATE fortunes SET is_archived = 1 WHERE id IN ({', '.join('?' for _ in ids)})",
                    ids,
                )
                return cur.rowcount
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to archive items: {e}") from e

    def count(self, include_archived: bool = True) -> int:
        sql = "SELECT COUNT(*) FROM fortunes"
        if not include_archived:
            sql += " WHERE is_archived = 0"
        try:
            with closing(self._connect()) as conn:
                return conn.execute(sql).fetchone()[0]
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to count items: {e}") from e
