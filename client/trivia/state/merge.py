"""
Non-regressive merge of normalized patches into frozen state.

Every function returns a new model (or the same instance when nothing
changed) and never mutates its input. Sticky fields are only added or
replaced by non-empty data, so a partial update can never erase what an
earlier, richer payload already told us.
"""

from collections.abc import Iterable

from trivia.state.models import AnswerMode, Player, Question
from trivia.state.normalize import PlayerPatch, QuestionPatch


def _derive_correct_text(options: tuple[str, ...], index: int | None) -> str | None:
    if index is None or not (0 <= index < len(options)):
        return None
    return options[index]


def merge_question(current: Question | None, patch: QuestionPatch) -> Question:
    """
    Merge a question patch into the known question.

    When the patch names a different question id the known question is
    discarded and the patch starts a fresh one.

    Args:
        current: The question already in the session view, if any
        patch: Normalized fields from one payload

    Returns:
        The merged question. Returns ``current`` itself when the patch adds nothing.

    """
    base = current if current is not None and current.id == patch.id else Question(id=patch.id)

    updates: dict[str, object] = {}
    if patch.prompt_text:
        updates["prompt_text"] = patch.prompt_text
    if patch.display_options:
        updates["display_options"] = patch.display_options
    if patch.correct_answer_index is not None:
        updates["correct_answer_index"] = patch.correct_answer_index
    if patch.correct_answer_text:
        updates["correct_answer_text"] = patch.correct_answer_text
    if patch.difficulty is not None:
        updates["difficulty"] = patch.difficulty
    if patch.genre:
        updates["genre"] = patch.genre

    options = updates.get("display_options", base.display_options)
    index = updates.get("correct_answer_index", base.correct_answer_index)
    if base.correct_answer_text is None and "correct_answer_text" not in updates:
        derived = _derive_correct_text(options, index)
        if derived is not None:
            updates["correct_answer_text"] = derived

    if patch.mode_hint is not None:
        updates["answer_mode"] = patch.mode_hint
    elif options:
        updates["answer_mode"] = AnswerMode.MULTIPLE_CHOICE

    updates = {k: v for k, v in updates.items() if getattr(base, k) != v}
    if not updates:
        return base
    return base.model_copy(update=updates)


def merge_player(current: Player | None, patch: PlayerPatch, *, accept_score: bool = False) -> Player:
    """Upsert one player. Scores are only taken when accept_score is set."""
    base = current if current is not None else Player(player_id=patch.player_id)

    updates: dict[str, object] = {}
    if patch.display_name:
        updates["display_name"] = patch.display_name
    if patch.photo_url:
        updates["photo_url"] = patch.photo_url
    if patch.has_answered is not None:
        updates["has_answered_current_question"] = patch.has_answered
    if accept_score and patch.score is not None:
        updates["score"] = patch.score

    updates = {k: v for k, v in updates.items() if getattr(base, k) != v}
    if not updates:
        return base
    return base.model_copy(update=updates)


def merge_roster(
    players: tuple[Player, ...],
    patches: Iterable[PlayerPatch],
    *,
    replace: bool = False,
    accept_score: bool = False,
) -> tuple[Player, ...]:
    """
    Upsert a list of players into the roster.

    Known players keep their position; new players are appended in the order
    they arrive. Duplicate ids inside ``patches`` are folded into one entry.

    Args:
        players: Current roster
        patches: Incoming players
        replace: Drop known players missing from ``patches``. Callers must not
            pass an empty authoritative list here unless they mean to clear
            the roster.
        accept_score: Take scores from the patches (authoritative snapshot only)

    Returns:
        The new roster. Returns ``players`` itself when nothing changed.

    """
    merged: dict[str, Player] = {p.player_id: p for p in players}
    seen: set[str] = set()
    for patch in patches:
        merged[patch.player_id] = merge_player(merged.get(patch.player_id), patch, accept_score=accept_score)
        seen.add(patch.player_id)

    if replace:
        merged = {pid: player for pid, player in merged.items() if pid in seen}

    result = tuple(merged.values())
    if result == players:
        return players
    return result


def remove_player(players: tuple[Player, ...], player_id: str) -> tuple[Player, ...]:
    if all(p.player_id != player_id for p in players):
        return players
    return tuple(p for p in players if p.player_id != player_id)


def reset_answered(players: tuple[Player, ...]) -> tuple[Player, ...]:
    """Clear every answered flag. Called when the live question changes."""
    if not any(p.has_answered_current_question for p in players):
        return players
    return tuple(p.model_copy(update={"has_answered_current_question": False}) for p in players)


def mark_answered(players: tuple[Player, ...], player_id: str) -> tuple[Player, ...]:
    """Flag one player as having answered, adding them if they are not known yet."""
    patch = PlayerPatch(player_id=player_id, has_answered=True)
    return merge_roster(players, (patch,))
