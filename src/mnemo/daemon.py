"""Daemon process — always-on mode for production.

Usage: python -m mnemo serve

Manages:
- HTTP API (aiohttp)
- Scheduler (daily maintenance sweep)
- PID file (prevent duplicate instances)
- Graceful shutdown (SIGTERM/SIGINT)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from mnemo.config import MnemoConfig, load_config
from mnemo.core import Mnemo
from mnemo.scheduler.jobs import ScheduleState, Scheduler
from mnemo.server.app import create_app, start_server
from mnemo.server.ratelimit import RateLimiter

logger = logging.getLogger(__name__)


class MnemoDaemon:
    """Always-on daemon process."""

    def __init__(self, config: MnemoConfig | None = None) -> None:
        self.config = config or load_config()
        self._shutdown_event = asyncio.Event()

    # ── PID file management ──────────────────────────────────

    def _write_pid(self) -> None:
        self.config.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self.config.pid_file.write_text(str(os.getpid()))
        logger.info("PID file written: %s (pid=%d)", self.config.pid_file, os.getpid())

    def _remove_pid(self) -> None:
        if self.config.pid_file.exists():
            self.config.pid_file.unlink()

    def _check_existing(self) -> None:
        if not self.config.pid_file.exists():
            return
        try:
            pid = int(self.config.pid_file.read_text().strip())
            os.kill(pid, 0)  # Check if process exists
            print(f"mnemo daemon already running (pid={pid}). Exiting.", file=sys.stderr)
            sys.exit(1)
        except (ProcessLookupError, ValueError):
            # Stale PID file — remove it
            self._remove_pid()

    # ── Signal handling ──────────────────────────────────────

    def _setup_signals(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self._shutdown_event.set()

    # ── Main run loop ────────────────────────────────────────

    async def run(self) -> None:
        self._check_existing()
        self._write_pid()
        self._setup_signals()

        mnemo = Mnemo(self.config)
        limiter = RateLimiter(self.config.server.rate_limit, self.config.server.rate_window)
        scheduler = Scheduler(mnemo, self.config, ScheduleState())
        app = create_app(mnemo, limiter)

        logger.info("mnemo daemon starting (data lake=%s)", self.config.data_lake)
        runner = await start_server(app, self.config.server.host, self.config.server.port)

        try:
            await scheduler.start(self._shutdown_event)
        except asyncio.CancelledError:
            pass
        finally:
            await runner.cleanup()
            self._remove_pid()
            logger.info("mnemo daemon stopped.")
