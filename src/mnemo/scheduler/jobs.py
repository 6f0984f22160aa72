"""Scheduler for periodic tasks using pure asyncio.

Jobs:
- Maintenance: once per day at the configured hour, cleanup + compress every
  project partition (also available on demand via ``run_now``)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mnemo.config import MnemoConfig
    from mnemo.core import Mnemo
    from mnemo.memory.maintenance import MaintenanceReport

logger = logging.getLogger(__name__)


def _parse_cron_hour(cron_expr: str) -> int:
    """Extract hour from simple cron expression like '0 3 * * *'."""
    parts = cron_expr.split()
    if len(parts) >= 2:
        try:
            hour = int(parts[1])
            if 0 <= hour <= 23:
                return hour
        except ValueError:
            pass
    return 3  # default: 3 AM


@dataclass
class ScheduleState:
    """Process-scoped scheduler state, created at startup and injected."""

    last_run_date: str | None = None
    last_report: MaintenanceReport | None = None
    runs: int = 0


class Scheduler:
    """Simple asyncio-based scheduler for the daily maintenance sweep."""

    def __init__(self, mnemo: Mnemo, config: MnemoConfig, state: ScheduleState | None = None) -> None:
        self._mnemo = mnemo
        self._config = config
        self.state = state or ScheduleState()
        self._maintenance_hour = _parse_cron_hour(config.scheduler.maintenance_cron)
        self._check_interval = config.scheduler.check_interval
        self._lock = asyncio.Lock()

    async def start(self, shutdown_event: asyncio.Event) -> None:
        """Run scheduled jobs until shutdown_event is set."""
        logger.info(
            "Scheduler started (check=%ds, maintenance@%02d:00)",
            self._check_interval,
            self._maintenance_hour,
        )

        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    shutdown_event.wait(),
                    timeout=self._check_interval,
                )
                break  # shutdown requested
            except asyncio.TimeoutError:
                pass  # interval elapsed — run jobs

            try:
                await self.tick(datetime.now())
            except Exception as e:
                logger.error("Scheduled maintenance failed: %s", e)

        logger.info("Scheduler stopped.")

    async def tick(self, now: datetime) -> bool:
        """Run maintenance if it is due at ``now``. Returns whether it ran."""
        today = now.strftime("%Y-%m-%d")
        if now.hour != self._maintenance_hour or self.state.last_run_date == today:
            return False
        await self.run_now()
        self.state.last_run_date = today
        return True

    async def run_now(self) -> MaintenanceReport:
        """Run a full maintenance pass off the event loop."""
        async with self._lock:
            report = await asyncio.to_thread(self._mnemo.maintenance)
        self.state.last_report = report
        self.state.runs += 1
        return report
