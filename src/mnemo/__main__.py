"""Entry point: python -m mnemo <command>

- serve:                 Daemon mode (HTTP API + daily maintenance)
- store "content":       Store a memory   [--project= --type= --importance= --agent= --source=]
- query "search":        Search memories  [--project= --all --limit= --days= --encrypted]
- timeline [days]:       Show timeline    [--project= --agent=]
- maintain:              Cleanup + compress [--project=]
- projects:              List project partitions
- key-status:            Show encryption key status
- enable-encryption:     Generate the key (if needed) and enable encryption
"""

from __future__ import annotations

import asyncio
import logging
import re
import sys

from mnemo.config import load_config
from mnemo.errors import MnemoError

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b-\x0c\x0e-\x1f\x7f]")

USAGE = """\
Usage: python -m mnemo <command> [options]

Commands:
  serve                   Daemon mode (HTTP API + daily maintenance)
  store "content"         Store a new memory
  query "search"          Search memories (--all searches every project)
  timeline [days]         Show memory timeline (default: 7 days)
  maintain                Run cleanup + compression now
  projects                List project partitions
  key-status              Show encryption key status
  enable-encryption       Generate the encryption key and enable encryption

Examples:
  python -m mnemo store "User prefers dark mode" --type=preference --importance=8
  python -m mnemo query "dark mode" --project=general
  python -m mnemo timeline 30
"""


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def sanitize_input(value: str) -> str:
    """Strip terminal escape sequences and control characters."""
    return _CONTROL_RE.sub("", _ANSI_RE.sub("", value))


def parse_flags(args: list[str]) -> tuple[list[str], dict[str, str | bool]]:
    """Split ``--key=value`` / ``--flag`` options from positional arguments."""
    positional: list[str] = []
    flags: dict[str, str | bool] = {}
    for arg in args:
        if arg.startswith("--"):
            key, sep, value = arg[2:].partition("=")
            flags[key.replace("-", "_")] = sanitize_input(value) if sep else True
        else:
            positional.append(sanitize_input(arg))
    return positional, flags


def _run_serve() -> None:
    """Daemon mode — HTTP API + scheduler."""
    config = load_config()
    _setup_logging(config.log_level)

    from mnemo.daemon import MnemoDaemon

    daemon = MnemoDaemon(config)
    try:
        asyncio.run(daemon.run())
    except KeyboardInterrupt:
        pass


def _print_results(results) -> None:
    if not results:
        print("No memories found.")
        return
    print(f"\nFound {len(results)} memories:\n")
    for i, result in enumerate(results, 1):
        m = result.memory
        content = m.content[:100] + ("..." if len(m.content) > 100 else "")
        print(f"{i}. [{m.content_type}] {m.created_date} ({m.project})")
        print(f"   {content}")
        line = f"   Importance: {m.importance}/10"
        if result.relevance is not None:
            line += f" | Relevance: {round(result.relevance * 100)}%"
        print(line)
        print()


def _run_command(cmd: str, args: list[str]) -> int:
    config = load_config()
    _setup_logging(config.log_level)

    from mnemo.core import Mnemo

    mnemo = Mnemo(config)
    positional, flags = parse_flags(args)
    project = str(flags.get("project", "general"))

    if cmd == "store":
        if not positional:
            print('Usage: python -m mnemo store "content" [--type=insight] [--importance=5]')
            return 1
        store = mnemo.encrypt_store if flags.get("encrypted") else mnemo.store
        result = store(
            positional[0],
            project=project,
            agent_id=flags.get("agent", "default"),
            content_type=flags.get("type", "insight"),
            importance=flags.get("importance"),
            source=flags.get("source", "cli"),
        )
        print(f"Memory stored: {result.id} (importance {result.importance})")
    elif cmd == "query":
        if not positional:
            print('Usage: python -m mnemo query "search terms" [--project=] [--all]')
            return 1
        options = {"limit": flags.get("limit", 10), "days": flags.get("days")}
        if flags.get("all"):
            results = mnemo.query_all(positional[0], **options)
        elif flags.get("encrypted"):
            results = mnemo.encrypt_query(positional[0], project=project, **options)
        else:
            results = mnemo.query(positional[0], project=project, **options)
        _print_results(results)
    elif cmd == "timeline":
        days = positional[0] if positional else 7
        grouped = mnemo.timeline(project=project, agent_id=flags.get("agent"), days=days)
        if not grouped:
            print("No memories in this timeframe.")
            return 0
        print(f"\nMemory timeline (last {days} days):\n")
        for date, memories in grouped.items():
            print(f"{date} ({len(memories)} memories)")
            for m in memories[:3]:
                print(f"  • [{m.content_type}] {m.content[:60]}...")
            if len(memories) > 3:
                print(f"  ... and {len(memories) - 3} more")
            print()
    elif cmd == "maintain":
        report = mnemo.maintenance([project] if "project" in flags else None)
        print(
            f"Maintenance: {report.removed} removed, {report.compressed} compressed, "
            f"{len(report.failures)} failed"
        )
        return 1 if report.failures else 0
    elif cmd == "projects":
        for name in mnemo.list_projects():
            print(name)
    elif cmd == "key-status":
        for key, value in mnemo.key_status().items():
            print(f"{key}: {value}")
    elif cmd == "enable-encryption":
        status = mnemo.enable_encryption()
        print(f"Encryption enabled (key: {status['key_path']})")
    return 0


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "help"

    if cmd == "serve":
        _run_serve()
    elif cmd in ("store", "query", "timeline", "maintain", "projects", "key-status", "enable-encryption"):
        try:
            sys.exit(_run_command(cmd, sys.argv[2:]))
        except MnemoError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        print(USAGE)
        sys.exit(0 if cmd in ("help", "--help", "-h") else 1)


if __name__ == "__main__":
    main()
