"""Entry point: python -m vaultmem <command> [args]

- remember / recall / inbox / promote / commit / commitments / done /
  retention / backfill:  run one command against the vault and print the reply
- serve:                 Daemon mode (scheduled retention + inbox pruning)
"""

from __future__ import annotations

import asyncio
import logging
import sys

from vaultmem.config import load_config

COMMANDS = ("remember", "recall", "inbox", "promote", "commit", "commitments", "done", "retention", "backfill")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _run_serve() -> None:
    """Daemon mode — scheduler only."""
    config = load_config()
    _setup_logging(config.log_level)

    from vaultmem.daemon import VaultDaemon

    daemon = VaultDaemon(config)
    try:
        asyncio.run(daemon.run())
    except KeyboardInterrupt:
        pass


def _run_command(name: str, args: list[str]) -> int:
    config = load_config()
    _setup_logging(config.log_level)

    from vaultmem.tools.commands import get_commands

    commands = get_commands(config)
    if name not in commands:
        _usage()
        return 1
    print(commands[name](" ".join(args)))
    return 0


def _usage() -> None:
    print("Usage: python -m vaultmem <command> [args]")
    print(f"  commands: {', '.join(COMMANDS)}")
    print("  serve    — Daemon mode with scheduled maintenance")


def main() -> None:
    if len(sys.argv) < 2:
        _usage()
        sys.exit(1)

    cmd = sys.argv[1]
    if cmd == "serve":
        _run_serve()
    else:
        sys.exit(_run_command(cmd, sys.argv[2:]))


if __name__ == "__main__":
    main()
