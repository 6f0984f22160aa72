"""Encrypted memories with blind-index lookup.

Records live in the same partition as plaintext memories, in the
``encrypted_memories`` table, with one ``blind_indexes`` row per keyword.
Stored metadata never carries plaintext keywords.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid

from mnemo.crypto.blind_index import decrypt, encrypt_with_index, query_index
from mnemo.crypto.keys import KeyManager
from mnemo.errors import ValidationError
from mnemo.memory.store import (
    DEFAULT_AGENT,
    DEFAULT_PROJECT,
    DEFAULT_QUERY_DAYS,
    DEFAULT_QUERY_LIMIT,
    DEFAULT_TYPE,
    MemoryStore,
    bounded,
    build_filters,
    parse_metadata,
)
from mnemo.models import Memory, SearchResult, StoreResult

logger = logging.getLogger(__name__)


class EncryptedMemoryStore:
    """Store and search encrypted memories. Shares validation with ``MemoryStore``."""

    def __init__(self, plain: MemoryStore, keys: KeyManager) -> None:
        self._plain = plain
        self.partitions = plain.partitions
        self.limits = plain.limits
        self.keys = keys

    def store(
        self,
        content: str,
        project: str = DEFAULT_PROJECT,
        agent_id: str = DEFAULT_AGENT,
        content_type: str = DEFAULT_TYPE,
        importance: int | None = None,
        metadata: dict | None = None,
        source: str | None = None,
    ) -> StoreResult:
        content, project, agent, ctype, importance = self._plain.normalize_write(
            content, project, agent_id, content_type, importance
        )
        meta = self._plain.normalize_metadata(metadata, source)
        key = self.keys.get_or_create_key()
        payload = encrypt_with_index(content, key, self.limits.max_keywords)

        memory_id = str(uuid.uuid4())
        now = self._plain.now()
        with self.partitions.write(project) as conn:
            conn.execute(
                """
                INSERT INTO encrypted_memories
                    (id, agent_id, ciphertext, iv, content_type, metadata, importance, project,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    memory_id,
                    agent,
                    payload.ciphertext,
                    payload.iv,
                    ctype,
                    json.dumps(meta.to_dict(), ensure_ascii=False),
                    importance,
                    project,
                    now,
                    now,
                ),
            )
            conn.executemany(
                "INSERT OR IGNORE INTO blind_indexes (memory_id, token) VALUES (?, ?)",
                [(memory_id, token) for token in payload.blind_indexes],
            )
        logger.debug(
            "Stored encrypted memory %s in %s (%d blind indexes)",
            memory_id,
            project,
            len(payload.blind_indexes),
        )
        return StoreResult(
            id=memory_id,
            project=project,
            agent_id=agent,
            content=content,
            content_type=ctype,
            importance=importance,
            created_at=now,
            encrypted=True,
        )

    def query(
        self,
        query: str,
        project: str = DEFAULT_PROJECT,
        agent_id: str | None = None,
        content_type: str | None = None,
        min_importance: int = 0,
        limit: int = DEFAULT_QUERY_LIMIT,
        days: int = DEFAULT_QUERY_DAYS,
    ) -> list[SearchResult]:
        """Exact blind-index match on the whole query, ordered by importance then recency."""
        if not isinstance(query, str):
            raise ValidationError("Query must be a string")
        limit = bounded(limit, DEFAULT_QUERY_LIMIT, self.limits.max_query_results, "limit")
        days = bounded(days, DEFAULT_QUERY_DAYS, self.limits.max_timeline_days, "days")
        project = self._plain.resolve_project(project)
        where, params = build_filters(
            self._plain.cutoff(days),
            self._plain.resolve_agent(agent_id),
            self._plain.resolve_type(content_type),
            self._plain.resolve_min_importance(min_importance),
            prefix="e.",
        )
        key = self.keys.get_or_create_key()
        token = query_index(query, key)

        with self.partitions.connect(project) as conn:
            rows = conn.execute(
                f"""
                SELECT e.* FROM encrypted_memories e
                JOIN blind_indexes b ON b.memory_id = e.id
                WHERE b.token = ? AND {where}
                ORDER BY e.importance DESC, e.created_at DESC
                LIMIT ?
                """,
                [token, *params, limit],
            ).fetchall()
        return [SearchResult(memory=self._row_to_memory(row, project, key)) for row in rows]

    def _row_to_memory(self, row: sqlite3.Row, project: str, key: bytes) -> Memory:
        return Memory(
            id=row["id"],
            agent_id=row["agent_id"],
            project=row["project"] or project,
            content=decrypt(row["ciphertext"], row["iv"], key),
            content_type=row["content_type"],
            importance=max(1, min(10, int(row["importance"]))),
            metadata=parse_metadata(row["metadata"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted_at=row["deleted_at"],
            encrypted=True,
        )
