import random
from concurrent.futures import ThreadPoolExecutor

import pytest

from riichi_club import repository
from riichi_club.quizzes import (
    AlreadyResponded,
    InvalidQuiz,
    ResponseRejected,
    apply_response,
    build_decision_quiz,
    build_discard_quiz,
    compute_quiz_id,
    has_responded,
    same_scenario,
    to_discard_out,
)
from riichi_club.quiz_generation import random_decision_scenario
from riichi_club.repository import InMemoryQuizStore, QuizConflict, QuizIdentifierMismatch, QuizNotFound
from riichi_club.schemas import DiscardQuizInput
from riichi_club.validators import ErrorKind

HAND = ["M5R", "M7", "M8", "P4", "P5", "P5", "P6", "P7", "P7", "P7", "P8", "S", "S", "r"]


def discard_input(**kwargs) -> DiscardQuizInput:
    payload = {"hand": HAND, "dora_indicator": "M4", "seat": "E", "round_wind": "E"}
    payload.update(kwargs)
    return DiscardQuizInput.model_validate(payload)


def test_build_assigns_canonical_id():
    quiz = build_discard_quiz(discard_input())
    assert quiz.id == compute_quiz_id(discard_input(hand=list(reversed(HAND))))
    assert quiz.responses == {}


def test_build_rejects_invalid_scenario():
    with pytest.raises(InvalidQuiz) as exc_info:
        build_discard_quiz(discard_input(hand=HAND[:13]))
    assert exc_info.value.issue.kind == ErrorKind.malformed_hand_size


def test_discard_out_includes_dora():
    assert to_discard_out(build_discard_quiz(discard_input(dora_indicator="S9"))).dora == "S1"


def test_apply_response_returns_updated_copy():
    quiz = build_discard_quiz(discard_input())
    updated = apply_response(quiz, "P7", "alice")

    assert quiz.responses == {}
    assert updated.responses["P7"].user_ids == ["alice"]
    assert updated.id == quiz.id
    assert updated.updated_at >= quiz.updated_at
    assert has_responded(updated, "alice")
    assert not has_responded(updated, "bob")


def test_apply_response_rejects_tile_outside_hand():
    quiz = build_discard_quiz(discard_input())
    with pytest.raises(ResponseRejected) as exc_info:
        apply_response(quiz, "M1", "alice")
    assert exc_info.value.issue.kind == ErrorKind.orphan_response_key


def test_user_answers_once():
    quiz = apply_response(build_discard_quiz(discard_input()), "P7", "alice")
    with pytest.raises(AlreadyResponded):
        apply_response(quiz, "r", "alice")


def test_insert_then_get():
    store = InMemoryQuizStore()
    quiz = build_discard_quiz(discard_input())

    stored, created = store.insert(quiz)
    assert created
    assert store.get(quiz.id) == stored
    assert store.get("0000000000000000") is None


def test_insert_identical_scenario_returns_existing():
    store = InMemoryQuizStore()
    first, _ = store.insert(build_discard_quiz(discard_input()))
    store.merge_response(first.id, "P7", "alice")

    again, created = store.insert(build_discard_quiz(discard_input(hand=sorted(HAND))))
    assert not created
    assert again.responses["P7"].user_ids == ["alice"]


def test_insert_rejects_mismatched_id():
    quiz = build_discard_quiz(discard_input()).model_copy(update={"id": "ffffffffffffffff"})
    with pytest.raises(QuizIdentifierMismatch):
        InMemoryQuizStore().insert(quiz)


def test_insert_conflict_on_colliding_id(monkeypatch):
    monkeypatch.setattr(repository, "compute_quiz_id", lambda quiz: "collision0000000")
    store = InMemoryQuizStore()
    first = build_discard_quiz(discard_input()).model_copy(update={"id": "collision0000000"})
    other = build_discard_quiz(discard_input(seat="S")).model_copy(update={"id": "collision0000000"})

    store.insert(first)
    with pytest.raises(QuizConflict):
        store.insert(other)


def test_get_returns_copy():
    store = InMemoryQuizStore()
    stored, _ = store.insert(build_discard_quiz(discard_input()))
    fetched = store.get(stored.id)
    fetched.hand.append("M1")
    assert len(store.get(stored.id).hand) == 14


def test_merge_unknown_quiz():
    with pytest.raises(QuizNotFound):
        InMemoryQuizStore().merge_response("missing", "P7", "alice")


def test_merge_keeps_id_and_scenario():
    store = InMemoryQuizStore()
    stored, _ = store.insert(build_discard_quiz(discard_input()))
    merged = store.merge_response(stored.id, "S", "alice")
    assert merged.id == stored.id == compute_quiz_id(merged)
    assert same_scenario(merged, stored)


def test_concurrent_responses_are_all_kept():
    store = InMemoryQuizStore()
    stored, _ = store.insert(build_discard_quiz(discard_input()))
    users = [f"user-{i}" for i in range(50)]
    tiles = ["P7", "S", "r", "M8"]

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda pair: store.merge_response(stored.id, tiles[pair[0] % 4], pair[1]), enumerate(users)))

    final = store.get(stored.id)
    recorded = [user for response in final.responses.values() for user in response.user_ids]
    assert sorted(recorded) == sorted(users)
    assert len(final.responses["P7"].user_ids) == 13


def decision_with_riichi(seed: int):
    scenario = random_decision_scenario(random.Random(seed))
    declared = scenario.model_copy(deep=True)
    declared.players[0].riichi_tile = 0
    return build_decision_quiz(scenario), build_decision_quiz(declared)


def test_riichi_declaration_is_part_of_the_scenario():
    plain, declared = decision_with_riichi(3)
    assert plain.id == declared.id
    assert not same_scenario(plain, declared)

    store = InMemoryQuizStore()
    store.insert(plain)
    with pytest.raises(QuizConflict):
        store.insert(declared)
    assert store.get(plain.id).players[0].riichi_tile is None


def test_viewpoint_player_is_part_of_the_scenario():
    plain, _ = decision_with_riichi(5)
    user = next(i for i, player in enumerate(plain.players) if player.is_user)
    moved = plain.model_copy(deep=True)
    moved.players[user].is_user = False
    moved.players[(user + 1) % 4].is_user = True
    assert not same_scenario(plain, moved)


def test_decision_scenario_ignores_player_and_dora_order():
    plain, _ = decision_with_riichi(7)
    shuffled = plain.model_copy(deep=True)
    shuffled.players.reverse()
    shuffled.dora_indicators.reverse()
    for player in shuffled.players:
        player.hand.reverse()
    assert same_scenario(plain, shuffled)
