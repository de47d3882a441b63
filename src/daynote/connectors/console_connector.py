# src/daynote/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except OSError:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def handle_line(state: AppState, line: str, emit=None) -> str:
    """Run one console line through the command registry and return the reply text."""
    try:
        with state.lock:
            reply = command_registry.handle(state, line, emit=emit)
    except Exception:
        logger.exception("Command handler crashed.")
        return "Internal error while handling a command."

    if reply is None:
        return "Commands start with '/'. Use /help to list them, /exit to quit."
    return reply


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (user=%s).", state.user.username)
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    if state.planner.needs_plan_reminder():
        _print_ts("[PLAN] No plan for today yet. Add one with /plan add <task>.")

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (e.g., replace-mode import)
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = input(">>> ").strip()
            _rewrite_prev_line(f"[{_ts_local()}] >>> {user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        print(f"[{_ts_local()}] {handle_line(state, user_input, emit=emit)}\n")

    logger.info("Console connector finished.")
