"""
Canonical session state exposed to the UI.

Every model is frozen. The reconciler replaces a SessionView with a new one
(via model_copy) on each accepted change and never mutates it in place.
"""

from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, model_validator


class SessionPhase(StrEnum):
    WAITING = "waiting"
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


class AnswerMode(StrEnum):
    MULTIPLE_CHOICE = "multiple_choice"
    FREE_TEXT = "free_text"


class Difficulty(StrEnum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    prompt_text: str = ""
    answer_mode: AnswerMode = AnswerMode.FREE_TEXT
    display_options: tuple[str, ...] = ()
    correct_answer_index: int | None = None
    correct_answer_text: str | None = None
    difficulty: Difficulty | None = None
    genre: str | None = None


class Player(BaseModel):
    model_config = ConfigDict(frozen=True)

    player_id: str
    display_name: str | None = None
    photo_url: str | None = None
    has_answered_current_question: bool = False
    score: int | None = None  # only ever set from the status endpoint


class SessionView(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_code: str
    phase: SessionPhase = SessionPhase.WAITING
    current_question: Question | None = None
    players: tuple[Player, ...] = ()
    authoritative_player_count: int = 0
    stats: dict[str, Any] | None = None
    version: int = 0

    question_index: int | None = None
    total_questions: int | None = None
    last_error: str | None = None

    @model_validator(mode="after")
    def _validate_unique_players(self) -> Self:
        ids = [p.player_id for p in self.players]
        if len(set(ids)) != len(ids):
            raise ValueError(f"duplicate player_id in roster: {ids}")
        return self

    def get_player(self, player_id: str) -> Player | None:
        for player in self.players:
            if player.player_id == player_id:
                return player
        return None

    @property
    def answered_count(self) -> int:
        return sum(1 for p in self.players if p.has_answered_current_question)

    @property
    def is_terminal(self) -> bool:
        return self.phase is SessionPhase.ENDED
