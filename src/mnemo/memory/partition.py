"""Per-project storage partitions.

Each project lives in its own directory under the data lake::

    <data_lake>/
    ├── memory-general/
    │   └── bridge.db          # SQLite: memories, encrypted_memories, blind_indexes
    └── memory-<project>/
        └── bridge.db

Partitions are created lazily on first reference. Every operation opens a
short-lived connection via ``connect()``; writes are serialized per partition
with ``write()``.
"""

from __future__ import annotations

import contextlib
import logging
import os
import re
import sqlite3
import threading
from pathlib import Path
from typing import Iterator

from mnemo.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

PARTITION_PREFIX = "memory-"
DB_FILENAME = "bridge.db"
BUSY_TIMEOUT_MS = 5000

IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_-]+$")

SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL DEFAULT 'default',
    content TEXT NOT NULL,
    content_type TEXT NOT NULL DEFAULT 'insight',
    metadata TEXT,
    importance INTEGER NOT NULL DEFAULT 5,
    project TEXT NOT NULL DEFAULT 'general',
    compressed INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_agent ON memories(agent_id);
CREATE INDEX IF NOT EXISTS idx_created ON memories(created_at);
CREATE INDEX IF NOT EXISTS idx_content_type ON memories(content_type);

CREATE TABLE IF NOT EXISTS encrypted_memories (
    id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL DEFAULT 'default',
    ciphertext TEXT NOT NULL,
    iv TEXT NOT NULL,
    content_type TEXT NOT NULL DEFAULT 'insight',
    metadata TEXT,
    importance INTEGER NOT NULL DEFAULT 5,
    project TEXT NOT NULL DEFAULT 'general',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_enc_created ON encrypted_memories(created_at);

CREATE TABLE IF NOT EXISTS blind_indexes (
    memory_id TEXT NOT NULL REFERENCES encrypted_memories(id) ON DELETE CASCADE,
    token TEXT NOT NULL,
    PRIMARY KEY (memory_id, token)
);
CREATE INDEX IF NOT EXISTS idx_blind_token ON blind_indexes(token);
"""


def validate_identifier(value, field: str, max_length: int = 64) -> str:
    """Check an agent/project identifier against the allow-listed pattern."""
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field} must be a non-empty string")
    if len(value) > max_length or not IDENTIFIER_RE.fullmatch(value):
        raise ValidationError(
            f"Invalid {field}: use 1-{max_length} alphanumeric chars, underscores, hyphens"
        )
    return value


def partition_name(project: str, max_length: int = 64) -> str:
    """Validated, lower-cased partition name for a project."""
    return validate_identifier(project, "project", max_length).lower()


class PartitionManager:
    """Locate, create and open project partitions inside the data lake."""

    def __init__(self, root: Path, max_identifier_length: int = 64) -> None:
        self.root = Path(root)
        self.max_identifier_length = max_identifier_length
        self._initialized: set[str] = set()
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    # ── Layout ───────────────────────────────────────────────

    def partition_dir(self, project: str) -> Path:
        return self.root / f"{PARTITION_PREFIX}{partition_name(project, self.max_identifier_length)}"

    def db_path(self, project: str) -> Path:
        return self.partition_dir(project) / DB_FILENAME

    def list_projects(self) -> list[str]:
        """Names of every partition present in the data lake, sorted.

        Directories whose suffix is not already a valid lower-cased project
        name were not created by mnemo and are skipped.
        """
        if not self.root.is_dir():
            return []
        names = []
        for p in self.root.iterdir():
            if not p.is_dir() or not p.name.startswith(PARTITION_PREFIX):
                continue
            name = p.name[len(PARTITION_PREFIX):]
            if self._is_partition_name(name):
                names.append(name)
            else:
                logger.debug("Skipping foreign directory in data lake: %s", p.name)
        return sorted(names)

    def _is_partition_name(self, name: str) -> bool:
        return (
            0 < len(name) <= self.max_identifier_length
            and IDENTIFIER_RE.fullmatch(name) is not None
            and name == name.lower()
        )

    def exists(self, project: str) -> bool:
        return self.db_path(project).exists()

    # ── Creation ─────────────────────────────────────────────

    def ensure(self, project: str) -> Path:
        """Create the partition directory and schema if absent. Idempotent.

        Concurrent first-writers are safe: ``mkdir(exist_ok=True)`` and
        ``CREATE ... IF NOT EXISTS`` both tolerate losing the race.
        """
        name = partition_name(project, self.max_identifier_length)
        db_path = self.db_path(name)
        if name in self._initialized and db_path.exists():
            return db_path

        directory = db_path.parent
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            created = not directory.exists()
            directory.mkdir(mode=0o700, exist_ok=True)
            os.chmod(directory, 0o700)
        except OSError as e:
            raise StorageError(f"Cannot create partition '{name}': {e}") from e
        if created:
            logger.info("Created new project memory: %s", name)

        conn = self._open(db_path)
        try:
            conn.executescript(SCHEMA)
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot initialize partition '{name}': {e}") from e
        finally:
            conn.close()

        self._initialized.add(name)
        return db_path

    def _open(self, db_path: Path) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(db_path, timeout=BUSY_TIMEOUT_MS / 1000)
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open partition database {db_path}: {e}") from e
        return conn

    # ── Scoped access ────────────────────────────────────────

    def lock(self, project: str) -> threading.Lock:
        """Per-partition write lock."""
        name = partition_name(project, self.max_identifier_length)
        with self._registry_lock:
            if name not in self._locks:
                self._locks[name] = threading.Lock()
            return self._locks[name]

    @contextlib.contextmanager
    def connect(self, project: str) -> Iterator[sqlite3.Connection]:
        """Short-lived connection: commit on success, rollback on error, always close."""
        conn = self._open(self.ensure(project))
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Partition '{project}' operation failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextlib.contextmanager
    def write(self, project: str) -> Iterator[sqlite3.Connection]:
        """Like ``connect`` but holding the partition's single-writer lock."""
        with self.lock(project):
            with self.connect(project) as conn:
                yield conn
