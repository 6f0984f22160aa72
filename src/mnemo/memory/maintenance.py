"""Maintenance sweeper: purge low-value aged memories, compress long old ones.

A full pass runs cleanup then compression over every partition in the data
lake. Failures are isolated per project: they are logged and reported, and
the sweep continues with the next project.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterable

from mnemo.config import MaintenanceConfig
from mnemo.errors import ValidationError
from mnemo.memory.partition import PartitionManager, partition_name
from mnemo.memory.store import Clock, as_int, format_timestamp, parse_metadata, utc_now

logger = logging.getLogger(__name__)

ELLIPSIS = "..."


def threshold(value, default: int, field: str, minimum: int = 1, maximum: int | None = None) -> int:
    """Resolve a sweep parameter; out-of-range values are rejected, never clamped."""
    if value is None:
        return default
    number = as_int(value, field)
    if number < minimum or (maximum is not None and number > maximum):
        upper = f"-{maximum}" if maximum is not None else " or more"
        raise ValidationError(f"{field} must be {minimum}{upper}")
    return number


@dataclass
class MaintenanceReport:
    """Aggregated result of a maintenance pass."""

    removed: int = 0
    compressed: int = 0
    projects: dict[str, dict[str, int]] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "removed": self.removed,
            "compressed": self.compressed,
            "projects": self.projects,
            "failures": self.failures,
        }


class MaintenanceSweeper:
    """Cleanup and compression over project partitions."""

    def __init__(
        self,
        partitions: PartitionManager,
        config: MaintenanceConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.partitions = partitions
        self.config = config or MaintenanceConfig()
        self._clock = clock

    def _cutoff(self, days: int) -> str:
        return format_timestamp(self._clock() - timedelta(days=days))

    # ── Cleanup ──────────────────────────────────────────────

    def cleanup(
        self,
        project: str,
        days: int | None = None,
        max_importance: int | None = None,
    ) -> int:
        """Hard-delete records older than ``days`` with importance <= ``max_importance``."""
        days = threshold(days, self.config.cleanup_days, "days")
        ceiling = threshold(max_importance, self.config.cleanup_max_importance, "maxImportance", maximum=10)
        cutoff = self._cutoff(days)
        name = partition_name(project)

        with self.partitions.write(name) as conn:
            removed = conn.execute(
                "DELETE FROM memories WHERE created_at < ? AND importance <= ?",
                (cutoff, ceiling),
            ).rowcount
            conn.execute(
                """
                DELETE FROM blind_indexes WHERE memory_id IN (
                    SELECT id FROM encrypted_memories WHERE created_at < ? AND importance <= ?
                )
                """,
                (cutoff, ceiling),
            )
            removed += conn.execute(
                "DELETE FROM encrypted_memories WHERE created_at < ? AND importance <= ?",
                (cutoff, ceiling),
            ).rowcount

        if removed:
            logger.info("Cleanup %s: removed %d memories older than %d days", name, removed, days)
        return removed

    # ── Compression ──────────────────────────────────────────

    def compress(
        self,
        project: str,
        days: int | None = None,
        max_length: int | None = None,
        batch_size: int | None = None,
    ) -> int:
        """Truncate long, old, not-yet-compressed records. Returns count compressed."""
        days = threshold(days, self.config.compress_days, "days")
        max_length = threshold(max_length, self.config.compress_length, "maxLength")
        batch_size = threshold(batch_size, self.config.compress_batch, "batchSize")
        cutoff = self._cutoff(days)
        now = format_timestamp(self._clock())
        name = partition_name(project)

        compressed = 0
        with self.partitions.write(name) as conn:
            rows = conn.execute(
                """
                SELECT id, content, metadata FROM memories
                WHERE deleted_at IS NULL
                  AND compressed = 0
                  AND created_at < ?
                  AND length(content) > ?
                ORDER BY created_at ASC
                LIMIT ?
                """,
                (cutoff, max_length + len(ELLIPSIS), batch_size),
            ).fetchall()
            for row in rows:
                meta = parse_metadata(row["metadata"])
                meta.compressed = True
                meta.original_length = len(row["content"])
                meta.compressed_at = now
                conn.execute(
                    """
                    UPDATE memories
                    SET content = ?, metadata = ?, compressed = 1, updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        row["content"][:max_length] + ELLIPSIS,
                        json.dumps(meta.to_dict(), ensure_ascii=False),
                        now,
                        row["id"],
                    ),
                )
                compressed += 1

        if compressed:
            logger.info("Compress %s: truncated %d memories", name, compressed)
        return compressed

    # ── Full pass ────────────────────────────────────────────

    def run(self, projects: Iterable[str] | None = None) -> MaintenanceReport:
        """Cleanup then compress every project; per-project failures are isolated."""
        report = MaintenanceReport()
        targets = list(projects) if projects is not None else self.partitions.list_projects()
        for project in targets:
            try:
                removed = self.cleanup(project)
                compressed = self.compress(project)
            except Exception as e:
                logger.error("Maintenance failed for project %s: %s", project, e)
                report.failures[project] = str(e)
                continue
            report.removed += removed
            report.compressed += compressed
            report.projects[project] = {"removed": removed, "compressed": compressed}

        logger.info(
            "Maintenance complete: %d projects, %d removed, %d compressed, %d failed",
            len(report.projects),
            report.removed,
            report.compressed,
            len(report.failures),
        )
        return report
