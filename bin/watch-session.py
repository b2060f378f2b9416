"""Follow a live session and log every new SessionView version.

Usage:
    uv run python bin/watch-session.py <session_code>
    uv run python bin/watch-session.py <session_code> --role mobile --player-id p1 --player-name Ada
    uv run python bin/watch-session.py <session_code> --diagnose

Connection settings come from TRIVIA_* environment variables (see
trivia.settings.SyncSettings). Stop with Ctrl-C.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import sys
from pathlib import Path

# Add client to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "client"))

import structlog

from shared.logging import setup_logging
from trivia.diagnostics import DiagnosticStatus, run_diagnostics
from trivia.messaging.types import ClientRole
from trivia.session.game_session import GameSession
from trivia.settings import SyncSettings
from trivia.state.models import SessionView

logger = structlog.get_logger()


def _log_view(view: SessionView) -> None:
    question = view.current_question
    logger.info(
        "session view",
        version=view.version,
        phase=view.phase,
        players=[p.display_name or p.player_id for p in view.players],
        answered=view.answered_count,
        question_id=question.id if question else None,
        prompt=question.prompt_text if question else None,
        question_index=view.question_index,
        total_questions=view.total_questions,
    )


async def watch(args: argparse.Namespace, settings: SyncSettings) -> None:
    session = GameSession(
        args.session_code,
        settings,
        role=ClientRole(args.role),
        player_id=args.player_id,
        player_name=args.player_name,
    )
    session.subscribe(_log_view)
    async with session:
        while not session.view.is_terminal:
            await asyncio.sleep(1.0)
        logger.info("session ended, stopping")


async def diagnose(args: argparse.Namespace, settings: SyncSettings) -> int:
    results = await run_diagnostics(settings, args.session_code)
    for result in results:
        print(f"[{result.status.value.upper():4}] {result.test}: {result.message}")
    return 1 if any(r.status is DiagnosticStatus.FAIL for r in results) else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Watch a trivia session")
    parser.add_argument("session_code")
    parser.add_argument("--role", choices=[r.value for r in ClientRole], default=ClientRole.HOST.value)
    parser.add_argument("--player-id")
    parser.add_argument("--player-name")
    parser.add_argument("--diagnose", action="store_true", help="run connectivity checks and exit")
    args = parser.parse_args()

    if args.role == ClientRole.PLAYER and not args.player_id:
        parser.error("--player-id is required for the mobile role")

    settings = SyncSettings()
    log_file = setup_logging(log_dir=settings.log_dir)
    if log_file:
        print(f"Logging to {log_file}")

    if args.diagnose:
        sys.exit(asyncio.run(diagnose(args, settings)))

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(watch(args, settings))


if __name__ == "__main__":
    main()
