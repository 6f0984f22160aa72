"""Shared fixtures: an isolated data lake and a controllable clock."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from mnemo.config import EncryptionConfig, MnemoConfig
from mnemo.core import Mnemo

START = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock whose time only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta) -> None:
        self.current += timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config(tmp_path: Path) -> MnemoConfig:
    return MnemoConfig(
        data_lake=tmp_path / "data-lake",
        encryption=EncryptionConfig(key_path=tmp_path / "keys" / "mnemo.key"),
        pid_file=tmp_path / "mnemo.pid",
    )


@pytest.fixture
def mnemo(config: MnemoConfig, clock: FakeClock) -> Mnemo:
    return Mnemo(config, clock=clock)


def store_aged(mnemo: Mnemo, clock: FakeClock, days_ago: float, content: str, **options):
    """Store ``content`` as if it had been written ``days_ago`` days earlier."""
    now = clock.current
    clock.current = now - timedelta(days=days_ago)
    try:
        return mnemo.store(content, **options)
    finally:
        clock.current = now


def soft_delete(mnemo: Mnemo, project: str, memory_id: str, when: str = "2026-10-19T00:00:00") -> None:
    with mnemo.partitions.write(project) as conn:
        conn.execute("UPDATE memories SET deleted_at = ? WHERE id = ?", (when, memory_id))
