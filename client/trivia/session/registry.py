"""Process-wide map of session code to its single GameSession."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from trivia.session.game_session import GameSession

if TYPE_CHECKING:
    from trivia.settings import SyncSettings

logger = structlog.get_logger()

SessionFactory = Callable[..., GameSession]


class SessionRegistry:
    """
    Hand every caller the same GameSession for a session code.

    Sessions are reference counted: acquire() starts one on first use, and
    the release() that drops the count to zero closes it.
    """

    def __init__(self, settings: SyncSettings | None = None, *, factory: SessionFactory | None = None) -> None:
        self._settings = settings
        self._factory = factory or GameSession
        self._sessions: dict[str, GameSession] = {}
        self._refcounts: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_code: object) -> bool:
        return session_code in self._sessions

    def get(self, session_code: str) -> GameSession | None:
        return self._sessions.get(session_code)

    def refcount(self, session_code: str) -> int:
        return self._refcounts.get(session_code, 0)

    def acquire(self, session_code: str, **session_kwargs: Any) -> GameSession:
        """Return the running session for a code, starting one if needed.

        ``session_kwargs`` (role, player identity, connector) only apply when
        the session is created; later callers share whatever was created first.
        """
        session = self._sessions.get(session_code)
        if session is None:
            session = self._factory(session_code, self._settings, **session_kwargs)
            self._sessions[session_code] = session
            self._refcounts[session_code] = 0
            session.start()
            logger.info("session registered", session_code=session_code)
        self._refcounts[session_code] += 1
        return session

    async def release(self, session_code: str) -> None:
        count = self._refcounts.get(session_code)
        if count is None:
            logger.warning("release for unknown session", session_code=session_code)
            return
        if count > 1:
            self._refcounts[session_code] = count - 1
            return
        session = self._sessions.pop(session_code)
        del self._refcounts[session_code]
        await session.close()
        logger.info("session unregistered", session_code=session_code)

    async def close_all(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        self._refcounts.clear()
        for session in sessions:
            await session.close()
