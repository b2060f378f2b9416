"""
Normalization of raw, producer-specific payloads.

Different server paths describe the same question or player with different
key names and wrappers. These helpers recognize them structurally and return
patches in which a missing field is None, so the merge layer can tell
"absent" apart from "present". Nothing here touches session state.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from trivia.state.models import AnswerMode, Difficulty, SessionPhase

_QUESTION_ID_KEYS = ("question_id", "id")
_PROMPT_KEYS = ("question", "prompt", "prompt_text", "text")
_OPTION_KEYS = ("display_options", "options")
_CORRECT_INDEX_KEYS = ("correct_index", "correct_answer_index", "correctIndex")
_CORRECT_TEXT_KEYS = ("answer", "correct_answer")
_MODE_KEYS = ("answer_mode", "question_type", "type")
_QUESTION_WRAPPER_KEYS = ("current_question", "currentQuestion", "question")
_QUESTION_INDEX_KEYS = ("current_question_index", "question_index")

_PLAYER_ID_KEYS = ("player_id", "id")
_PLAYER_NAME_KEYS = ("player_name", "name", "display_name")
_PLAYER_PHOTO_KEYS = ("player_photo", "photo_url", "photo")
_ANSWERED_KEYS = ("answered_current", "has_answered", "player_answered", "answered")
_ROSTER_KEYS = ("players", "connected_players")
_PLAYER_COUNT_KEYS = ("player_count", "players_count", "total_players")

_MODE_ALIASES: dict[str, AnswerMode] = {
    "mcq": AnswerMode.MULTIPLE_CHOICE,
    "multiple_choice": AnswerMode.MULTIPLE_CHOICE,
    "multiplechoice": AnswerMode.MULTIPLE_CHOICE,
    "free": AnswerMode.FREE_TEXT,
    "free_text": AnswerMode.FREE_TEXT,
    "freetext": AnswerMode.FREE_TEXT,
}

_ENDED_GAME_STATES = frozenset({"finished", "ended", "completed", "complete"})
_ACTIVE_GAME_STATES = frozenset({"active", "in_progress", "started"})
_PAUSED_GAME_STATES = frozenset({"paused"})


@dataclass(frozen=True)
class QuestionPatch:
    """Question fields as carried by one payload. None means the field was absent."""

    id: str
    prompt_text: str | None = None
    display_options: tuple[str, ...] | None = None
    correct_answer_index: int | None = None
    correct_answer_text: str | None = None
    mode_hint: AnswerMode | None = None
    difficulty: Difficulty | None = None
    genre: str | None = None
    question_index: int | None = None


@dataclass(frozen=True)
class PlayerPatch:
    """Player fields as carried by one payload. None means the field was absent."""

    player_id: str
    display_name: str | None = None
    photo_url: str | None = None
    has_answered: bool | None = None
    score: int | None = None


@dataclass(frozen=True)
class SnapshotPatch:
    """Everything the status endpoint reported, normalized."""

    phase: SessionPhase | None
    paused: bool | None
    question: QuestionPatch | None
    roster: tuple[PlayerPatch, ...] | None
    player_count: int | None
    question_index: int | None
    total_questions: int | None
    stats: dict[str, Any] | None


def _first(data: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _clean_str(value: object) -> str | None:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def _as_int(value: object) -> int | None:
    # bool is an int subclass; a stray True must not become index 1
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_bool(value: object) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, str)):
        return str(value).strip().lower() in {"1", "true", "yes"}
    return None


def normalize_difficulty(value: object) -> Difficulty | None:
    """Map any casing of easy/medium/hard onto Difficulty."""
    text = _clean_str(value)
    if text is None:
        return None
    try:
        return Difficulty(text.capitalize())
    except ValueError:
        return None


def normalize_answer_mode(value: object) -> AnswerMode | None:
    text = _clean_str(value)
    if text is None:
        return None
    return _MODE_ALIASES.get(text.lower().replace("-", "_").replace(" ", "_"))


def _normalize_options(value: object) -> tuple[str, ...] | None:
    if not isinstance(value, (list, tuple)):
        return None
    options: list[str] = []
    for item in value:
        text = _clean_str(item.get("text") if isinstance(item, Mapping) else item)
        if text is not None:
            options.append(text)
    return tuple(options)


def _question_id(data: Mapping[str, Any]) -> str | None:
    return _clean_str(_first(data, _QUESTION_ID_KEYS))


def _prompt(data: Mapping[str, Any]) -> str | None:
    for key in _PROMPT_KEYS:
        text = _clean_str(data.get(key))
        if text is not None:
            return text
    return None


def _question_patch(data: Mapping[str, Any], question_id: str) -> QuestionPatch:
    return QuestionPatch(
        id=question_id,
        prompt_text=_prompt(data),
        display_options=_normalize_options(_first(data, _OPTION_KEYS)),
        correct_answer_index=_as_int(_first(data, _CORRECT_INDEX_KEYS)),
        correct_answer_text=_clean_str(_first(data, _CORRECT_TEXT_KEYS)),
        mode_hint=normalize_answer_mode(_first(data, _MODE_KEYS)),
        difficulty=normalize_difficulty(data.get("difficulty")),
        genre=_clean_str(data.get("genre")),
        question_index=_as_int(_first(data, _QUESTION_INDEX_KEYS)),
    )


def extract_question(raw: object, *, require_prompt: bool = True) -> QuestionPatch | None:
    """Find a question in a payload, looking through the known wrapper keys.

    A mapping counts as a question when it has an identifier and, unless
    require_prompt is False, a prompt. Payloads that are known to be a
    question (question_started and friends) pass require_prompt=False so a
    bare {"question_id": ...} update can still be merged.
    """
    if not isinstance(raw, Mapping):
        return None

    candidates: list[Mapping[str, Any]] = [raw]
    for key in _QUESTION_WRAPPER_KEYS:
        nested = raw.get(key)
        if isinstance(nested, Mapping):
            candidates.append(nested)

    for candidate in candidates:
        question_id = _question_id(candidate)
        if question_id is None:
            continue
        if require_prompt and _prompt(candidate) is None:
            continue
        patch = _question_patch(candidate, question_id)
        if patch.question_index is None and candidate is not raw:
            # wrappers often report the index next to the question rather than inside it
            index = _as_int(_first(raw, _QUESTION_INDEX_KEYS))
            if index is not None:
                patch = replace(patch, question_index=index)
        return patch
    return None


def normalize_player(raw: object) -> PlayerPatch | None:
    if not isinstance(raw, Mapping):
        return None
    player_id = _clean_str(_first(raw, _PLAYER_ID_KEYS))
    if player_id is None:
        return None
    answered = _first(raw, _ANSWERED_KEYS)
    return PlayerPatch(
        player_id=player_id,
        display_name=_clean_str(_first(raw, _PLAYER_NAME_KEYS)),
        photo_url=_clean_str(_first(raw, _PLAYER_PHOTO_KEYS)),
        has_answered=_as_bool(answered) if answered is not None else None,
        score=_as_int(raw.get("score")),
    )


def extract_roster(data: Mapping[str, Any]) -> tuple[PlayerPatch, ...] | None:
    """Return the player list carried by a payload, or None if it carries none.

    An explicitly empty list returns an empty tuple, which callers must tell
    apart from None.
    """
    for key in _ROSTER_KEYS:
        value = data.get(key)
        if isinstance(value, Mapping):
            value = list(value.values())
        if isinstance(value, list):
            patches = (normalize_player(item) for item in value)
            return tuple(p for p in patches if p is not None)
    return None


def _snapshot_phase(data: Mapping[str, Any]) -> SessionPhase | None:
    game_state = _clean_str(data.get("game_state"))
    state = game_state.lower() if game_state else None

    if data.get("ended_at") or state in _ENDED_GAME_STATES or _as_bool(data.get("is_complete")):
        return SessionPhase.ENDED
    if state in _PAUSED_GAME_STATES or _as_bool(data.get("is_paused")):
        return SessionPhase.PAUSED
    started = _as_bool(_first(data, ("isstarted", "is_started")))
    waiting = _as_bool(data.get("is_waiting_for_players"))
    if started or state in _ACTIVE_GAME_STATES or (_as_bool(data.get("is_active")) and waiting is False):
        return SessionPhase.ACTIVE
    return None


def _response_count_total(data: Mapping[str, Any]) -> int | None:
    # the status endpoint reports its player count as player_response_counts.total
    counts = data.get("player_response_counts")
    if not isinstance(counts, Mapping):
        return None
    return _as_int(counts.get("total"))


def normalize_snapshot(data: Mapping[str, Any]) -> SnapshotPatch:
    """Normalize a status-endpoint response."""
    roster = extract_roster(data)
    explicit_count = _as_int(_first(data, _PLAYER_COUNT_KEYS))
    if explicit_count is None:
        explicit_count = _response_count_total(data)
    player_count = explicit_count if explicit_count is not None else (len(roster) if roster is not None else None)
    paused = data.get("is_paused")
    stats = data.get("connection_stats")

    return SnapshotPatch(
        phase=_snapshot_phase(data),
        paused=_as_bool(paused) if paused is not None else None,
        question=extract_question(data.get("current_question"), require_prompt=False),
        roster=roster,
        player_count=player_count,
        question_index=_as_int(_first(data, _QUESTION_INDEX_KEYS)),
        total_questions=_as_int(data.get("total_questions")),
        stats=dict(stats) if isinstance(stats, Mapping) else None,
    )
