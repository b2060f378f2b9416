from trivia.state.merge import mark_answered, merge_question, merge_roster, remove_player, reset_answered
from trivia.state.models import AnswerMode, Difficulty, Player, Question
from trivia.state.normalize import PlayerPatch, QuestionPatch


def _players(*ids: str, answered: bool = False) -> tuple[Player, ...]:
    return tuple(Player(player_id=pid, has_answered_current_question=answered) for pid in ids)


class TestMergeQuestion:
    def test_new_question_from_patch(self):
        question = merge_question(None, QuestionPatch(id="q1", prompt_text="?", display_options=("A", "B")))
        assert question.id == "q1"
        assert question.answer_mode is AnswerMode.MULTIPLE_CHOICE

    def test_free_text_when_no_options(self):
        question = merge_question(None, QuestionPatch(id="q1", prompt_text="Name a river"))
        assert question.answer_mode is AnswerMode.FREE_TEXT

    def test_mode_hint_wins_over_options(self):
        patch = QuestionPatch(id="q1", display_options=("A",), mode_hint=AnswerMode.FREE_TEXT)
        assert merge_question(None, patch).answer_mode is AnswerMode.FREE_TEXT

    def test_sticky_fields_survive_partial_update(self):
        known = merge_question(
            None,
            QuestionPatch(
                id="q1",
                prompt_text="?",
                display_options=("A", "B", "C"),
                correct_answer_index=2,
                difficulty=Difficulty.HARD,
                genre="History",
            ),
        )
        merged = merge_question(known, QuestionPatch(id="q1", display_options=(), prompt_text=None))
        assert merged.display_options == ("A", "B", "C")
        assert merged.correct_answer_index == 2
        assert merged.correct_answer_text == "C"
        assert merged.difficulty is Difficulty.HARD
        assert merged.genre == "History"
        assert merged.prompt_text == "?"

    def test_unchanged_merge_returns_same_instance(self):
        known = merge_question(None, QuestionPatch(id="q1", prompt_text="?", display_options=("A",)))
        assert merge_question(known, QuestionPatch(id="q1")) is known

    def test_correct_text_derived_once_options_arrive(self):
        known = merge_question(None, QuestionPatch(id="q1", correct_answer_index=1))
        assert known.correct_answer_text is None
        merged = merge_question(known, QuestionPatch(id="q1", display_options=("A", "B")))
        assert merged.correct_answer_text == "B"

    def test_explicit_correct_text_not_overwritten_by_derivation(self):
        known = merge_question(None, QuestionPatch(id="q1", correct_answer_text="Bee"))
        merged = merge_question(known, QuestionPatch(id="q1", display_options=("A", "B"), correct_answer_index=1))
        assert merged.correct_answer_text == "Bee"

    def test_out_of_range_index_derives_nothing(self):
        merged = merge_question(None, QuestionPatch(id="q1", display_options=("A",), correct_answer_index=5))
        assert merged.correct_answer_text is None

    def test_new_id_starts_fresh(self):
        known = Question(id="q1", prompt_text="old", display_options=("A", "B"), correct_answer_index=0)
        merged = merge_question(known, QuestionPatch(id="q2", prompt_text="new"))
        assert merged.id == "q2"
        assert merged.display_options == ()
        assert merged.correct_answer_index is None


class TestMergeRoster:
    def test_upsert_is_idempotent(self):
        patch = PlayerPatch(player_id="p1", display_name="Ada")
        once = merge_roster((), (patch,))
        twice = merge_roster(once, (patch,))
        assert twice is once
        assert len(twice) == 1

    def test_name_is_sticky(self):
        roster = merge_roster((), (PlayerPatch(player_id="p1", display_name="Ada"),))
        roster = merge_roster(roster, (PlayerPatch(player_id="p1"),))
        assert roster[0].display_name == "Ada"

    def test_absent_players_kept_without_replace(self):
        roster = merge_roster(_players("p1", "p2"), (PlayerPatch(player_id="p3"),))
        assert [p.player_id for p in roster] == ["p1", "p2", "p3"]

    def test_replace_drops_absent_players_and_keeps_order(self):
        incoming = (PlayerPatch(player_id="p3"), PlayerPatch(player_id="p1"))
        roster = merge_roster(_players("p1", "p2", "p3"), incoming, replace=True)
        assert [p.player_id for p in roster] == ["p1", "p3"]

    def test_duplicate_ids_in_one_list_fold(self):
        roster = merge_roster((), (PlayerPatch(player_id="p1"), PlayerPatch(player_id="p1", display_name="Ada")))
        assert len(roster) == 1
        assert roster[0].display_name == "Ada"

    def test_score_only_when_accepted(self):
        patch = PlayerPatch(player_id="p1", score=500)
        assert merge_roster((), (patch,))[0].score is None
        assert merge_roster((), (patch,), accept_score=True)[0].score == 500


class TestAnsweredFlags:
    def test_reset_clears_everyone(self):
        roster = reset_answered(_players("p1", "p2", answered=True))
        assert not any(p.has_answered_current_question for p in roster)

    def test_reset_without_flags_returns_same_tuple(self):
        roster = _players("p1")
        assert reset_answered(roster) is roster

    def test_mark_answered_known_player(self):
        roster = mark_answered(_players("p1", "p2"), "p2")
        assert [p.has_answered_current_question for p in roster] == [False, True]

    def test_mark_answered_adds_unknown_player(self):
        roster = mark_answered((), "p9")
        assert roster[0].player_id == "p9"
        assert roster[0].has_answered_current_question is True


class TestRemovePlayer:
    def test_removes(self):
        assert [p.player_id for p in remove_player(_players("p1", "p2"), "p1")] == ["p2"]

    def test_unknown_id_returns_same_tuple(self):
        roster = _players("p1")
        assert remove_player(roster, "p9") is roster
