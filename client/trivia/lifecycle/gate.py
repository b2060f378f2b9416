"""Local precondition checks for lifecycle transitions the host drives."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ConfigDict

from trivia.state.models import SessionPhase, SessionView

if TYPE_CHECKING:
    from trivia.commands.dispatcher import CommandDispatcher

logger = structlog.get_logger()

DEFAULT_START_GRACE_SECONDS = 1.5


class StartDecision(BaseModel):
    """Result of asking whether a round may start now."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str | None = None
    warning: str | None = None


class LifecycleGate:
    """
    Decide whether the host may start the round.

    Starting needs a waiting session with at least one player, and a push
    roster that has caught up with the player count the status endpoint
    reports. If the roster stays behind for longer than the grace period
    after the reported count last went up, starting is allowed anyway with a
    warning, so an over-reporting endpoint cannot block the host forever.
    """

    def __init__(self, dispatcher: CommandDispatcher, *, grace_seconds: float = DEFAULT_START_GRACE_SECONDS) -> None:
        self._dispatcher = dispatcher
        self._grace_seconds = grace_seconds
        self._view: SessionView | None = None
        self._known_count = 0
        self._count_raised_at: float | None = None

    def observe(self, view: SessionView) -> None:
        """Track the latest view; records when the authoritative count goes up."""
        if view.authoritative_player_count > self._known_count:
            self._count_raised_at = time.monotonic()
        self._known_count = view.authoritative_player_count
        self._view = view

    def evaluate(self, view: SessionView | None = None) -> StartDecision:
        if view is not None:
            self.observe(view)
        view = self._view
        if view is None:
            return StartDecision(allowed=False, reason="session state not known yet")

        if view.phase is not SessionPhase.WAITING:
            return StartDecision(allowed=False, reason=f"session is {view.phase}, not waiting")
        present = len(view.players)
        if present == 0:
            return StartDecision(allowed=False, reason="no players have joined yet")

        expected = view.authoritative_player_count
        if present >= expected:
            return StartDecision(allowed=True)

        elapsed = time.monotonic() - self._count_raised_at if self._count_raised_at is not None else 0.0
        if elapsed >= self._grace_seconds:
            return StartDecision(
                allowed=True,
                warning=f"only {present} of {expected} reported players are connected",
            )
        return StartDecision(
            allowed=False,
            reason=f"waiting for {expected - present} more player(s) to finish joining",
        )

    @property
    def can_start(self) -> bool:
        return self.evaluate().allowed

    async def request_start(self) -> StartDecision:
        """
        Start the round if the preconditions hold.

        A failed precondition is returned as the decision and nothing is sent.
        NotConnectedError from the dispatcher propagates unchanged.
        """
        decision = self.evaluate()
        if not decision.allowed:
            logger.info("start refused", reason=decision.reason)
            return decision
        if decision.warning:
            logger.warning("starting before roster caught up", warning=decision.warning)
        await self._dispatcher.start_round()
        return decision
