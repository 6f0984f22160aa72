"""Mnemo facade — the single entry point for every core operation.

Responsibilities:
1. Wire partitions, plaintext store, encrypted store and sweeper together
2. Expose the operation set used by the HTTP API, the CLI and the scheduler
3. Keep encrypted-path failures (missing/corrupt key) away from the plaintext path
"""

from __future__ import annotations

import logging
from typing import Iterable

from mnemo import __version__
from mnemo.config import MnemoConfig
from mnemo.crypto.keys import KeyManager
from mnemo.crypto.store import EncryptedMemoryStore
from mnemo.memory.maintenance import MaintenanceReport, MaintenanceSweeper
from mnemo.memory.partition import PartitionManager
from mnemo.memory.store import Clock, MemoryStore, format_timestamp, utc_now
from mnemo.models import Memory, SearchResult, StoreResult

logger = logging.getLogger(__name__)


class Mnemo:
    """Core operations over the data lake."""

    def __init__(self, config: MnemoConfig, clock: Clock = utc_now) -> None:
        self.config = config
        self._clock = clock
        self.partitions = PartitionManager(
            config.data_lake, max_identifier_length=config.limits.max_identifier_length
        )
        self.memory = MemoryStore(self.partitions, config.limits, clock=clock)
        self.keys = KeyManager(config.encryption.key_path, enabled=config.encryption.enabled)
        self.encrypted = EncryptedMemoryStore(self.memory, self.keys)
        self.sweeper = MaintenanceSweeper(self.partitions, config.maintenance, clock=clock)

    # ── Plaintext ────────────────────────────────────────────

    def store(self, content: str, **options) -> StoreResult:
        return self.memory.store(content, **options)

    def get(self, memory_id: str, project: str = "general") -> Memory:
        return self.memory.get(memory_id, project)

    def query(self, query: str, **options) -> list[SearchResult]:
        return self.memory.query(query, **options)

    def query_all(self, query: str, **options) -> list[SearchResult]:
        return self.memory.query_all(query, **options)

    def timeline(self, **options) -> dict[str, list[Memory]]:
        return self.memory.timeline(**options)

    def list_projects(self) -> list[str]:
        return self.partitions.list_projects()

    # ── Maintenance ──────────────────────────────────────────

    def cleanup(self, project: str, days: int | None = None, max_importance: int | None = None) -> int:
        return self.sweeper.cleanup(project, days=days, max_importance=max_importance)

    def compress(self, project: str, days: int | None = None, max_length: int | None = None) -> int:
        return self.sweeper.compress(project, days=days, max_length=max_length)

    def maintenance(self, projects: Iterable[str] | None = None) -> MaintenanceReport:
        return self.sweeper.run(projects)

    # ── Encrypted ────────────────────────────────────────────

    def encrypt_store(self, content: str, **options) -> StoreResult:
        return self.encrypted.store(content, **options)

    def encrypt_query(self, query: str, **options) -> list[SearchResult]:
        return self.encrypted.query(query, **options)

    def key_status(self) -> dict:
        return self.keys.status()

    def enable_encryption(self) -> dict:
        self.keys.enable()
        return self.keys.status()

    # ── Status ───────────────────────────────────────────────

    def health(self) -> dict:
        projects = self.list_projects()
        return {
            "status": "ok",
            "timestamp": format_timestamp(self._clock()),
            "version": __version__,
            "data_lake": str(self.config.data_lake),
            "projects": projects,
            "total_projects": len(projects),
            "encryption": self.keys.enabled,
        }
