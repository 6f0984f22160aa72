"""Plaintext memory store: validation, persistence, ranked query, timeline.

All records live in per-project SQLite partitions managed by
``PartitionManager``. Each public method opens its own short-lived
connection; writes go through the partition's single-writer lock.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from mnemo.config import LimitsConfig
from mnemo.errors import NotFoundError, ValidationError
from mnemo.memory import ranking
from mnemo.memory.keywords import extract_keywords
from mnemo.memory.partition import PartitionManager, partition_name, validate_identifier
from mnemo.memory.timeline import group_by_day
from mnemo.models import ContentType, Memory, MemoryMetadata, SearchResult, StoreResult

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEFAULT_PROJECT = "general"
DEFAULT_AGENT = "default"
DEFAULT_TYPE = ContentType.INSIGHT.value
DEFAULT_QUERY_LIMIT = 5
DEFAULT_QUERY_DAYS = 30
DEFAULT_TIMELINE_DAYS = 7
DEFAULT_QUERY_ALL_LIMIT = 10
DEFAULT_PER_PROJECT_LIMIT = 3

LONG_CONTENT_THRESHOLD = 200
TYPE_IMPORTANCE_BONUS = {
    ContentType.SECURITY.value: 3,
    ContentType.INSIGHT.value: 2,
    ContentType.GOAL.value: 2,
    ContentType.MILESTONE.value: 1,
    ContentType.ERROR.value: 1,
    ContentType.DECISION.value: 1,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Fixed-width ISO-8601 UTC string; lexical order equals time order."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


# ── Validation helpers ───────────────────────────────────────


def validate_content(content, max_length: int) -> str:
    if not isinstance(content, str):
        raise ValidationError("Content must be a string")
    if not content.strip():
        raise ValidationError("Content cannot be empty")
    if len(content) > max_length:
        raise ValidationError(f"Content too long (max {max_length} chars)")
    return content


def validate_content_type(content_type) -> str:
    if content_type is None:
        return DEFAULT_TYPE
    value = content_type.value if isinstance(content_type, ContentType) else content_type
    if value not in ContentType.values():
        raise ValidationError(f"Invalid type. Use: {', '.join(ContentType.values())}")
    return value


def as_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{field} must be an integer")


def validate_importance(importance) -> int | None:
    """Explicit importance must be an integer in [1, 10]; ``None`` means omitted."""
    if importance is None:
        return None
    value = as_int(importance, "Importance")
    if not 1 <= value <= 10:
        raise ValidationError("Importance must be a number 1-10")
    return value


def default_importance(content: str, content_type: str) -> int:
    """Heuristic importance: longer text and higher-stakes types score higher."""
    score = 5
    if len(content) > LONG_CONTENT_THRESHOLD:
        score += 1
    score += TYPE_IMPORTANCE_BONUS.get(content_type, 0)
    return max(1, min(10, score))


def bounded(value, default: int, maximum: int, field: str) -> int:
    """Coerce a limit/window parameter; values below 1 fall back to ``default``."""
    if value is None:
        return default
    number = as_int(value, field)
    if number < 1:
        return default
    return min(number, maximum)


def parse_metadata(raw: str | None) -> MemoryMetadata:
    if not raw:
        return MemoryMetadata()
    try:
        return MemoryMetadata.from_dict(json.loads(raw))
    except (ValueError, TypeError, AttributeError) as e:
        logger.warning("Unreadable metadata ignored: %s", e)
        return MemoryMetadata()


def build_filters(
    cutoff: str,
    agent_id: str | None = None,
    content_type: str | None = None,
    min_importance: int = 0,
    prefix: str = "",
) -> tuple[str, list[Any]]:
    """WHERE clause shared by plaintext and encrypted reads."""
    clauses = [f"{prefix}deleted_at IS NULL", f"{prefix}created_at > ?"]
    params: list[Any] = [cutoff]
    if min_importance:
        clauses.append(f"{prefix}importance >= ?")
        params.append(min_importance)
    if agent_id:
        clauses.append(f"{prefix}agent_id = ?")
        params.append(agent_id)
    if content_type:
        clauses.append(f"{prefix}content_type = ?")
        params.append(content_type)
    return " AND ".join(clauses), params


class MemoryStore:
    """Read/write access to plaintext memories across project partitions."""

    def __init__(
        self,
        partitions: PartitionManager,
        limits: LimitsConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.partitions = partitions
        self.limits = limits or LimitsConfig()
        self._clock = clock

    def now(self) -> str:
        return format_timestamp(self._clock())

    def cutoff(self, days: int) -> str:
        return format_timestamp(self._clock() - timedelta(days=days))

    # ── Input normalization ──────────────────────────────────

    def resolve_project(self, project) -> str:
        return partition_name(project or DEFAULT_PROJECT, self.limits.max_identifier_length)

    def resolve_agent(self, agent_id, default: str | None = None) -> str | None:
        if agent_id is None or agent_id == "":
            return default
        return validate_identifier(agent_id, "agentId", self.limits.max_identifier_length)

    def resolve_type(self, content_type) -> str | None:
        if content_type is None or content_type == "":
            return None
        return validate_content_type(content_type)

    def resolve_min_importance(self, value) -> int:
        if value is None or value == "":
            return 0
        return max(0, as_int(value, "minImportance"))

    def normalize_write(
        self,
        content,
        project,
        agent_id,
        content_type,
        importance,
    ) -> tuple[str, str, str, str, int]:
        """Validate a write request and resolve defaults."""
        content = validate_content(content, self.limits.max_content_length)
        project = self.resolve_project(project)
        agent = self.resolve_agent(agent_id, DEFAULT_AGENT)
        ctype = validate_content_type(content_type)
        explicit = validate_importance(importance)
        resolved = explicit if explicit is not None else default_importance(content, ctype)
        return content, project, agent, ctype, resolved

    def normalize_metadata(self, metadata, source: str | None = None) -> MemoryMetadata:
        """Caller metadata with system-managed fields reset."""
        if metadata is not None and not isinstance(metadata, (dict, MemoryMetadata)):
            raise ValidationError("Metadata must be a mapping")
        if isinstance(metadata, dict):
            if not isinstance(metadata.get("keywords") or [], list):
                raise ValidationError("Metadata keywords must be a list")
            if not isinstance(metadata.get("extra") or {}, dict):
                raise ValidationError("Metadata extra must be a mapping")
        if isinstance(metadata, MemoryMetadata):
            meta = MemoryMetadata.from_dict({**metadata.to_dict(), "extra": dict(metadata.extra)})
        else:
            meta = MemoryMetadata.from_dict(metadata)
        meta.keywords = []
        meta.compressed = False
        meta.original_length = None
        meta.compressed_at = None
        if source:
            meta.source = str(source)
        return meta

    # ── Store ────────────────────────────────────────────────

    def store(
        self,
        content: str,
        project: str = DEFAULT_PROJECT,
        agent_id: str = DEFAULT_AGENT,
        content_type: str | ContentType = DEFAULT_TYPE,
        importance: int | None = None,
        metadata: dict | MemoryMetadata | None = None,
        source: str | None = None,
    ) -> StoreResult:
        """Validate and persist a memory into its project's partition."""
        content, project, agent, ctype, importance = self.normalize_write(
            content, project, agent_id, content_type, importance
        )
        meta = self.normalize_metadata(metadata, source)
        meta.keywords = extract_keywords(content, self.limits.max_keywords)

        memory_id = str(uuid.uuid4())
        now = self.now()
        with self.partitions.write(project) as conn:
            conn.execute(
                """
                INSERT INTO memories
                    (id, agent_id, content, content_type, metadata, importance, project,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    memory_id,
                    agent,
                    content,
                    ctype,
                    json.dumps(meta.to_dict(), ensure_ascii=False),
                    importance,
                    project,
                    now,
                    now,
                ),
            )
        logger.debug("Stored memory %s in %s (importance=%d)", memory_id, project, importance)
        return StoreResult(
            id=memory_id,
            project=project,
            agent_id=agent,
            content=content,
            content_type=ctype,
            importance=importance,
            created_at=now,
            keywords=list(meta.keywords),
        )

    def get(self, memory_id: str, project: str = DEFAULT_PROJECT) -> Memory:
        """Fetch one live record by id."""
        if not isinstance(memory_id, str) or not memory_id:
            raise ValidationError("Memory id must be a non-empty string")
        project = self.resolve_project(project)
        with self.partitions.connect(project) as conn:
            row = conn.execute(
                "SELECT * FROM memories WHERE id = ? AND deleted_at IS NULL", (memory_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Memory {memory_id} not found in project '{project}'")
        return self._row_to_memory(row, project)

    # ── Query ────────────────────────────────────────────────

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
        """Ranked keyword search within one project."""
        if not isinstance(query, str):
            raise ValidationError("Query must be a string")
        limit = bounded(limit, DEFAULT_QUERY_LIMIT, self.limits.max_query_results, "limit")
        days = bounded(days, DEFAULT_QUERY_DAYS, self.limits.max_timeline_days, "days")
        keywords = extract_keywords(query, self.limits.max_keywords)
        return self._query_partition(
            self.resolve_project(project),
            keywords,
            self.resolve_agent(agent_id),
            self.resolve_type(content_type),
            self.resolve_min_importance(min_importance),
            limit,
            days,
        )

    def query_all(
        self,
        query: str,
        agent_id: str | None = None,
        content_type: str | None = None,
        min_importance: int = 0,
        limit: int = DEFAULT_QUERY_ALL_LIMIT,
        per_project_limit: int = DEFAULT_PER_PROJECT_LIMIT,
        days: int = DEFAULT_QUERY_DAYS,
    ) -> list[SearchResult]:
        """Search every known partition; merged results are ordered by importance."""
        if not isinstance(query, str):
            raise ValidationError("Query must be a string")
        limit = bounded(limit, DEFAULT_QUERY_ALL_LIMIT, self.limits.max_query_results, "limit")
        per_project_limit = bounded(
            per_project_limit,
            DEFAULT_PER_PROJECT_LIMIT,
            self.limits.max_query_results,
            "perProjectLimit",
        )
        days = bounded(days, DEFAULT_QUERY_DAYS, self.limits.max_timeline_days, "days")
        keywords = extract_keywords(query, self.limits.max_keywords)
        agent = self.resolve_agent(agent_id)
        ctype = self.resolve_type(content_type)
        floor = self.resolve_min_importance(min_importance)

        per_project = [
            self._query_partition(project, keywords, agent, ctype, floor, per_project_limit, days)
            for project in self.partitions.list_projects()
        ]
        return ranking.merge_partitions(per_project, limit)

    def _query_partition(
        self,
        project: str,
        keywords: list[str],
        agent_id: str | None,
        content_type: str | None,
        min_importance: int,
        limit: int,
        days: int,
    ) -> list[SearchResult]:
        candidates = self._fetch(project, agent_id, content_type, min_importance, days)
        return ranking.rank(candidates, keywords, limit)

    # ── Timeline ─────────────────────────────────────────────

    def timeline(
        self,
        project: str = DEFAULT_PROJECT,
        agent_id: str | None = None,
        days: int = DEFAULT_TIMELINE_DAYS,
    ) -> dict[str, list[Memory]]:
        """Live records in the window grouped by UTC creation date, newest first."""
        days = bounded(days, DEFAULT_TIMELINE_DAYS, self.limits.max_timeline_days, "days")
        project = self.resolve_project(project)
        memories = self._fetch(project, self.resolve_agent(agent_id), None, 0, days)
        return group_by_day(memories)

    # ── Internal ─────────────────────────────────────────────

    def _fetch(
        self,
        project: str,
        agent_id: str | None,
        content_type: str | None,
        min_importance: int,
        days: int,
    ) -> list[Memory]:
        where, params = build_filters(self.cutoff(days), agent_id, content_type, min_importance)
        with self.partitions.connect(project) as conn:
            rows = conn.execute(
                f"SELECT * FROM memories WHERE {where} ORDER BY created_at DESC", params
            ).fetchall()
        return [self._row_to_memory(row, project) for row in rows]

    def _row_to_memory(self, row: sqlite3.Row, project: str) -> Memory:
        return Memory(
            id=row["id"],
            agent_id=row["agent_id"],
            project=row["project"] or project,
            content=row["content"],
            content_type=row["content_type"],
            importance=max(1, min(10, int(row["importance"]))),
            metadata=parse_metadata(row["metadata"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted_at=row["deleted_at"],
        )
