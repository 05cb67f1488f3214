"""Persistence for generated artifacts, file hashes and controller history.

Architecture:
- **SQLite** holds artifacts (current and base text), per-path content
  hashes and small key/value sync state such as the last synced revision.
- A **JSON** file holds the adaptive threshold history so it can be
  inspected and replayed by hand.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .config import ARTIFACT_DB, HISTORY_FILE, ensure_base_dirs
from .models import Artifact, SymbolSnapshot
from .threshold import AdaptiveThreshold, ThresholdConfig

logger = logging.getLogger(__name__)


class SQLiteArtifactStore:
    """:class:`~wikidelta.interfaces.ArtifactStore` backed by a SQLite file.

    Scheduler workers call into the store from several threads, so one
    connection is shared with ``check_same_thread=False`` and every statement
    runs under a lock.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        if db_path is None:
            ensure_base_dirs()
            db_path = ARTIFACT_DB
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "SQLiteArtifactStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("""
                CREATE TABLE IF NOT EXISTS artifacts (
                    artifact_id  TEXT PRIMARY KEY,
                    title        TEXT NOT NULL,
                    content      TEXT NOT NULL,
                    base_content TEXT NOT NULL DEFAULT '',
                    source_files TEXT NOT NULL DEFAULT '[]',
                    updated_at   TEXT NOT NULL
                )
            """)
            cur.execute("""
                CREATE TABLE IF NOT EXISTS file_hashes (
                    path TEXT PRIMARY KEY,
                    hash TEXT NOT NULL
                )
            """)
            cur.execute("""
                CREATE TABLE IF NOT EXISTS sync_state (
                    key   TEXT PRIMARY KEY,
                    value TEXT
                )
            """)
            self.conn.commit()

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------

    def load(self, artifact_id: str) -> Optional[Artifact]:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM artifacts WHERE artifact_id = ?", (artifact_id,)
            ).fetchone()
        if row is None:
            return None
        try:
            source_files = json.loads(row["source_files"])
        except json.JSONDecodeError:
            logger.warning("Corrupt source file list for artifact %s", artifact_id)
            source_files = []
        return Artifact(
            artifact_id=row["artifact_id"],
            title=row["title"],
            content=row["content"],
            base_content=row["base_content"],
            source_files=source_files,
            updated_at=row["updated_at"],
        )

    def save(self, artifact: Artifact) -> None:
        updated_at = artifact.updated_at or datetime.now().isoformat()
        with self._lock:
            self.conn.execute(
                """
                INSERT OR REPLACE INTO artifacts
                    (artifact_id, title, content, base_content, source_files, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    artifact.artifact_id,
                    artifact.title,
                    artifact.content,
                    artifact.base_content,
                    json.dumps(artifact.source_files),
                    updated_at,
                ),
            )
            self.conn.commit()

    def list(self) -> List[str]:
        with self._lock:
            rows = self.conn.execute("SELECT artifact_id FROM artifacts ORDER BY artifact_id").fetchall()
        return [row["artifact_id"] for row in rows]

    def delete(self, artifact_id: str) -> bool:
        with self._lock:
            cur = self.conn.execute("DELETE FROM artifacts WHERE artifact_id = ?", (artifact_id,))
            self.conn.commit()
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # File hashes / sync state
    # ------------------------------------------------------------------

    def get_file_hashes(self) -> Dict[str, str]:
        with self._lock:
            rows = self.conn.execute("SELECT path, hash FROM file_hashes").fetchall()
        return {row["path"]: row["hash"] for row in rows}

    def set_file_hash(self, path: str, digest: Optional[str]) -> None:
        """Store *digest* for *path*; ``None`` forgets the path."""
        with self._lock:
            if digest is None:
                self.conn.execute("DELETE FROM file_hashes WHERE path = ?", (path,))
            else:
                self.conn.execute(
                    "INSERT OR REPLACE INTO file_hashes (path, hash) VALUES (?, ?)",
                    (path, digest),
                )
            self.conn.commit()

    def get_state(self, key: str) -> Optional[str]:
        with self._lock:
            row = self.conn.execute("SELECT value FROM sync_state WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_state(self, key: str, value: Optional[str]) -> None:
        with self._lock:
            self.conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                (key, value),
            )
            self.conn.commit()

    def save_symbols(self, snapshots: Dict[str, SymbolSnapshot]) -> None:
        """Persist the symbol map of the last successful sync."""
        self.set_state("symbols", json.dumps([asdict(s) for s in snapshots.values()]))

    def load_symbols(self) -> Dict[str, SymbolSnapshot]:
        raw = self.get_state("symbols")
        if not raw:
            return {}
        try:
            rows = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Stored symbol snapshot is corrupt, starting from scratch")
            return {}
        snapshots: Dict[str, SymbolSnapshot] = {}
        for row in rows:
            try:
                snapshot = SymbolSnapshot(**row)
            except TypeError:
                logger.warning("Skipping malformed stored symbol: %r", row)
                continue
            snapshots[snapshot.id] = snapshot
        return snapshots


# ===================================================================
# Threshold history
# ===================================================================

def load_threshold(path: Optional[Path] = None, config: Optional[ThresholdConfig] = None) -> AdaptiveThreshold:
    """Rebuild an :class:`AdaptiveThreshold` from its JSON history file.

    A missing or unreadable file yields a controller with empty history.
    An explicit *config* overrides the one stored alongside the history.
    """
    path = path or HISTORY_FILE
    if not path.exists():
        return AdaptiveThreshold(config)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable threshold history %s: %s", path, exc)
        return AdaptiveThreshold(config)

    controller = AdaptiveThreshold.from_dict(payload)
    if config is not None:
        controller = AdaptiveThreshold.from_history(controller.history, config)
    return controller


def save_threshold(controller: AdaptiveThreshold, path: Optional[Path] = None) -> None:
    path = path or HISTORY_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(controller.to_dict(), indent=2), encoding="utf-8")
