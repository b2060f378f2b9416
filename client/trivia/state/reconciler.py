"""
Single writer of the session view.

Push events and pull snapshots both go through here. Each entry point reads
the current view, computes a candidate with the merge helpers and replaces
the view only when the candidate differs. There are no awaits between read
and replace, so updates from the receive loop and the poller never interleave.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import Any

import structlog

from trivia.messaging.types import (
    ErrorEvent,
    GameEndedEvent,
    GamePausedEvent,
    GameResumedEvent,
    GameStartedEvent,
    GameStatusUpdateEvent,
    InitialStateEvent,
    PlayerAnsweredEvent,
    PlayerJoinedEvent,
    PlayerLeftEvent,
    QuestionStartedEvent,
    RosterUpdateEvent,
    ServerEvent,
    SessionStatsEvent,
    StateBroadcastEvent,
)
from trivia.state.merge import merge_question, merge_roster, remove_player, reset_answered
from trivia.state.models import Player, SessionPhase, SessionView
from trivia.state.normalize import (
    PlayerPatch,
    QuestionPatch,
    SnapshotPatch,
    extract_question,
    extract_roster,
    normalize_player,
    normalize_snapshot,
)

logger = structlog.get_logger()

SessionViewCallback = Callable[[SessionView], None]

_PHASE_RANK = {
    SessionPhase.WAITING: 0,
    SessionPhase.ACTIVE: 1,
    SessionPhase.PAUSED: 1,
    SessionPhase.ENDED: 2,
}

# Events that may still change a view whose phase is ended.
_STATS_EVENTS = (SessionStatsEvent, GameStatusUpdateEvent)


class StateReconciler:
    """
    Merge push events and pull snapshots into one versioned SessionView.

    Subscribers are called once for every accepted version, in the order they
    subscribed. A candidate equal to the current view is not a new version.
    """

    def __init__(self, session_code: str, *, trust_empty_roster_when_active: bool = False) -> None:
        self._view = SessionView(session_code=session_code)
        self._trust_empty_roster_when_active = trust_empty_roster_when_active
        self._subscribers: list[SessionViewCallback] = []

    @property
    def view(self) -> SessionView:
        return self._view

    def subscribe(self, callback: SessionViewCallback) -> Callable[[], None]:
        """Register a callback for new versions. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def clear_subscribers(self) -> None:
        self._subscribers.clear()

    def apply_event(self, event: ServerEvent) -> SessionView:
        """Apply one push event and return the (possibly unchanged) view."""
        view = self._view
        if view.is_terminal and not isinstance(event, _STATS_EVENTS):
            logger.debug("ignoring event after session ended", event_type=event.type)
            return view
        return self._commit(self._reduce_event(view, event), source=event.type)

    def apply_snapshot(self, raw: Mapping[str, Any]) -> SessionView:
        """Apply one authoritative status response and return the (possibly unchanged) view."""
        patch = normalize_snapshot(raw)
        view = self._view
        if view.is_terminal:
            candidate = view if patch.stats is None else view.model_copy(update={"stats": patch.stats})
        else:
            candidate = self._reduce_snapshot(view, patch)
        return self._commit(candidate, source="snapshot")

    def _commit(self, candidate: SessionView, *, source: str) -> SessionView:
        if candidate == self._view:
            return self._view
        self._view = candidate.model_copy(update={"version": self._view.version + 1})
        logger.debug(
            "session view updated",
            source=source,
            version=self._view.version,
            phase=self._view.phase,
            players=len(self._view.players),
        )
        for callback in list(self._subscribers):
            try:
                callback(self._view)
            except Exception:
                logger.exception("session view subscriber failed", version=self._view.version)
        return self._view

    # -----------------------------------------------------------------------
    # Push events
    # -----------------------------------------------------------------------

    def _reduce_event(self, view: SessionView, event: ServerEvent) -> SessionView:  # noqa: PLR0911
        data = event.data
        if isinstance(event, QuestionStartedEvent):
            question = extract_question(data, require_prompt=False)
            view = _advance_phase(view, SessionPhase.ACTIVE)
            return _apply_question(view, question) if question is not None else view
        if isinstance(event, PlayerAnsweredEvent):
            return _apply_answer(view, event)
        if isinstance(event, PlayerJoinedEvent):
            nested = data.get("player")
            patch = normalize_player(nested if isinstance(nested, Mapping) else data)
            if patch is None:
                return view
            return view.model_copy(update={"players": merge_roster(view.players, (patch,))})
        if isinstance(event, PlayerLeftEvent):
            player_id = event.player_id
            if player_id is None:
                return view
            return view.model_copy(update={"players": remove_player(view.players, player_id)})
        if isinstance(event, RosterUpdateEvent):
            roster = extract_roster(data)
            if roster is None:
                return view
            players = self._replace_roster(view, roster, source=event.type)
            return view if players is None else view.model_copy(update={"players": players})
        if isinstance(event, StateBroadcastEvent):
            return _apply_broadcast(view, data)
        if isinstance(event, InitialStateEvent):
            return _apply_initial_state(view, data)
        if isinstance(event, GameStartedEvent):
            return _apply_game_started(view, data)
        if isinstance(event, GamePausedEvent):
            if view.phase is not SessionPhase.ACTIVE:
                return view
            return view.model_copy(update={"phase": SessionPhase.PAUSED})
        if isinstance(event, GameResumedEvent):
            if view.phase is not SessionPhase.PAUSED:
                return view
            return view.model_copy(update={"phase": SessionPhase.ACTIVE})
        if isinstance(event, GameEndedEvent):
            return view.model_copy(update={"phase": SessionPhase.ENDED})
        if isinstance(event, SessionStatsEvent):
            return view.model_copy(update={"stats": dict(data)})
        if isinstance(event, GameStatusUpdateEvent):
            return view.model_copy(update={"stats": {**(view.stats or {}), **data}})
        if isinstance(event, ErrorEvent):
            return view.model_copy(update={"last_error": event.message})
        # pong, connection_established and unknown types carry no session state
        return view

    # -----------------------------------------------------------------------
    # Pull snapshots
    # -----------------------------------------------------------------------

    def _reduce_snapshot(self, view: SessionView, patch: SnapshotPatch) -> SessionView:
        view = _apply_snapshot_phase(view, patch)
        if patch.question is not None:
            view = _apply_question(view, patch.question)

        updates: dict[str, object] = {}
        count_trusted = True
        if patch.roster is not None:
            players = self._replace_roster(view, patch.roster, source="snapshot", accept_score=True)
            if players is None:
                count_trusted = False
            else:
                updates["players"] = players
        if patch.player_count is not None and (count_trusted or patch.player_count > 0):
            updates["authoritative_player_count"] = patch.player_count
        if patch.question_index is not None:
            updates["question_index"] = patch.question_index
        if patch.total_questions is not None:
            updates["total_questions"] = patch.total_questions
        if patch.stats is not None:
            updates["stats"] = patch.stats
        return view.model_copy(update=updates) if updates else view

    def _replace_roster(
        self,
        view: SessionView,
        roster: tuple[PlayerPatch, ...],
        *,
        source: str,
        accept_score: bool = False,
    ) -> tuple[Player, ...] | None:
        """Apply a full authoritative roster. Returns None when the roster is distrusted."""
        if roster:
            return merge_roster(view.players, roster, replace=True, accept_score=accept_score)
        if not self._trust_empty_roster_when_active:
            if view.players:
                logger.warning(
                    "ignoring empty authoritative roster",
                    source=source,
                    known_players=len(view.players),
                )
            return None
        return ()


def _advance_phase(view: SessionView, phase: SessionPhase) -> SessionView:
    """Move to ``phase`` only if it is further along than the current phase."""
    if _PHASE_RANK[phase] <= _PHASE_RANK[view.phase]:
        return view
    return view.model_copy(update={"phase": phase})


def _apply_question(view: SessionView, patch: QuestionPatch) -> SessionView:
    current = view.current_question
    question = merge_question(current, patch)
    updates: dict[str, object] = {}
    if question is not current:
        updates["current_question"] = question
    if current is None or current.id != question.id:
        updates["players"] = reset_answered(view.players)
    if patch.question_index is not None:
        updates["question_index"] = patch.question_index
    return view.model_copy(update=updates) if updates else view


def _apply_answer(view: SessionView, event: PlayerAnsweredEvent) -> SessionView:
    current = view.current_question
    question_id = event.data.get("question_id")
    if question_id is not None and current is not None and str(question_id) != current.id:
        logger.debug("ignoring answer for a question that is no longer live", question_id=question_id)
        return view
    patch = normalize_player(event.data)
    if patch is None:
        return view
    # the answer event carries no answered flag of its own
    patch = replace(patch, has_answered=True)
    return view.model_copy(update={"players": merge_roster(view.players, (patch,))})


def _apply_broadcast(view: SessionView, data: Mapping[str, Any]) -> SessionView:
    """qa_update / broadcast_state: any subset of question, players, activity and stats."""
    if data.get("is_active") is True:
        view = _advance_phase(view, SessionPhase.ACTIVE)
    question = extract_question(data)
    if question is not None:
        view = _apply_question(view, question)
    roster = extract_roster(data)
    if roster:
        view = view.model_copy(update={"players": merge_roster(view.players, roster)})
    stats = data.get("connection_stats")
    if isinstance(stats, Mapping):
        view = view.model_copy(update={"stats": dict(stats)})
    return view


def _apply_initial_state(view: SessionView, data: Mapping[str, Any]) -> SessionView:
    game_state = data.get("game_state")
    if isinstance(game_state, Mapping) and game_state.get("is_active"):
        view = _advance_phase(view, SessionPhase.ACTIVE)
    question = extract_question(data.get("current_question"), require_prompt=False)
    if question is not None:
        view = _apply_question(view, question)
    roster = extract_roster(data)
    if roster:
        view = view.model_copy(update={"players": merge_roster(view.players, roster)})
    stats = data.get("connection_stats")
    if isinstance(stats, Mapping):
        view = view.model_copy(update={"stats": dict(stats)})
    return view


def _apply_game_started(view: SessionView, data: Mapping[str, Any]) -> SessionView:
    was_waiting = view.phase is SessionPhase.WAITING
    if view.phase is SessionPhase.PAUSED:
        view = view.model_copy(update={"phase": SessionPhase.ACTIVE})
    view = _advance_phase(view, SessionPhase.ACTIVE)

    roster = extract_roster(data)
    if roster:
        view = view.model_copy(update={"players": merge_roster(view.players, roster)})
    if was_waiting:
        view = view.model_copy(update={"players": reset_answered(view.players)})

    raw_question = data.get("currentQuestion") or data.get("current_question")
    question = extract_question(raw_question, require_prompt=False)
    if question is not None:
        view = _apply_question(view, question)
    return view


def _apply_snapshot_phase(view: SessionView, patch: SnapshotPatch) -> SessionView:
    incoming = patch.phase
    if incoming is None:
        if patch.paused is False and view.phase is SessionPhase.PAUSED:
            return view.model_copy(update={"phase": SessionPhase.ACTIVE})
        return view
    if incoming is SessionPhase.PAUSED and view.phase is SessionPhase.ACTIVE:
        return view.model_copy(update={"phase": SessionPhase.PAUSED})
    if incoming is SessionPhase.ACTIVE and view.phase is SessionPhase.PAUSED:
        # a started flag alone does not say the pause is over
        if patch.paused is False:
            return view.model_copy(update={"phase": SessionPhase.ACTIVE})
        return view
    return _advance_phase(view, incoming)
