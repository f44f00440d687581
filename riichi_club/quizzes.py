from __future__ import annotations

from datetime import datetime, timezone

from riichi_club.identity import generate_decision_id, generate_id
from riichi_club.schemas import (
    DecisionQuiz,
    DecisionQuizInput,
    DecisionQuizOut,
    DiscardQuiz,
    DiscardQuizInput,
    DiscardQuizOut,
    QuizResponse,
)
from riichi_club.tiles import dora_from_indicator
from riichi_club.validators import ValidationIssue, validate_decision_quiz, validate_discard_quiz, validate_response_keys

Quiz = DiscardQuiz | DecisionQuiz

_DISCARD_FIELDS = {"hand", "dora_indicator", "seat", "round_wind"}
_DECISION_FIELDS = {"players", "dora_indicators", "round_wind", "round_number", "remaining_tile_count"}
_SEAT_RANK = {"E": 0, "S": 1, "W": 2, "N": 3}


class InvalidQuiz(ValueError):
    def __init__(self, issue: ValidationIssue) -> None:
        super().__init__(issue.message)
        self.issue = issue


class ResponseRejected(ValueError):
    def __init__(self, issue: ValidationIssue) -> None:
        super().__init__(issue.message)
        self.issue = issue


class AlreadyResponded(ValueError):
    pass


def compute_quiz_id(quiz: DiscardQuizInput | DecisionQuizInput) -> str:
    if isinstance(quiz, DiscardQuizInput):
        return generate_id(quiz.hand, quiz.dora_indicator, quiz.seat, quiz.round_wind)
    return generate_decision_id(quiz.players, quiz.dora_indicators, quiz.round_wind, quiz.round_number)


def canonical_scenario(quiz: DiscardQuizInput | DecisionQuizInput) -> dict:
    """Scenario fields with hand, player, meld and dora order normalised away."""
    if isinstance(quiz, DiscardQuizInput):
        data = quiz.model_dump(mode="json", include=_DISCARD_FIELDS)
        data["hand"].sort()
        return data

    data = quiz.model_dump(mode="json", include=_DECISION_FIELDS)
    data["dora_indicators"].sort()
    for player in data["players"]:
        player["hand"].sort()
        player["melds"].sort(key=lambda meld: sorted(meld["tiles"]))
    # discard and meld tile order are kept: riichi_tile and stolen_tile_index point into them
    data["players"].sort(key=lambda player: _SEAT_RANK[player["seat"]])
    return data


def same_scenario(quiz: Quiz, other: Quiz) -> bool:
    """True when both documents describe the same table, ignoring tile order and responses."""
    return type(quiz) is type(other) and quiz.id == other.id and canonical_scenario(quiz) == canonical_scenario(other)


def build_discard_quiz(inp: DiscardQuizInput) -> DiscardQuiz:
    """Validate a scenario and return the quiz document with its canonical id."""
    issue = validate_discard_quiz(inp)
    if issue:
        raise InvalidQuiz(issue)
    return DiscardQuiz(id=compute_quiz_id(inp), **inp.model_dump())


def build_decision_quiz(inp: DecisionQuizInput) -> DecisionQuiz:
    issue = validate_decision_quiz(inp)
    if issue:
        raise InvalidQuiz(issue)
    return DecisionQuiz(id=compute_quiz_id(inp), **inp.model_dump())


def has_responded(quiz: Quiz, user_id: str) -> bool:
    return any(user_id in response.user_ids for response in quiz.responses.values())


def apply_response(quiz: Quiz, tile_id: str, user_id: str) -> Quiz:
    """Return a copy of ``quiz`` with ``user_id`` added to ``responses[tile_id]``.

    A user answers a quiz once; the chosen tile must be held by the
    responding hand (the user's hand on a decision quiz).
    """
    issue = validate_response_keys({tile_id: None}, quiz.response_hand())
    if issue:
        raise ResponseRejected(issue)
    if has_responded(quiz, user_id):
        raise AlreadyResponded(f"User {user_id} has already submitted a response for quiz {quiz.id}")

    responses = {tile: response.model_copy(deep=True) for tile, response in quiz.responses.items()}
    current = responses.get(tile_id, QuizResponse())
    responses[tile_id] = QuizResponse(user_ids=[*current.user_ids, user_id])
    return quiz.model_copy(update={"responses": responses, "updated_at": datetime.now(timezone.utc)})


def to_discard_out(quiz: DiscardQuiz) -> DiscardQuizOut:
    return DiscardQuizOut(**quiz.model_dump(), dora=dora_from_indicator(quiz.dora_indicator))


def to_decision_out(quiz: DecisionQuiz) -> DecisionQuizOut:
    return DecisionQuizOut(**quiz.model_dump(), doras=[dora_from_indicator(t) for t in quiz.dora_indicators])
