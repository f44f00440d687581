from __future__ import annotations

from threading import Lock
from typing import Generic, Protocol, TypeVar

import structlog

from riichi_club.quizzes import apply_response, compute_quiz_id, same_scenario
from riichi_club.schemas import DecisionQuiz, DiscardQuiz

logger = structlog.get_logger()

QuizT = TypeVar("QuizT", DiscardQuiz, DecisionQuiz)


class QuizStoreError(Exception):
    pass


class QuizNotFound(QuizStoreError):
    pass


class QuizConflict(QuizStoreError):
    """A different scenario is already stored under the same identifier."""


class QuizIdentifierMismatch(QuizStoreError):
    pass


class QuizStore(Protocol[QuizT]):
    def insert(self, quiz: QuizT) -> tuple[QuizT, bool]: ...

    def get(self, quiz_id: str) -> QuizT | None: ...

    def merge_response(self, quiz_id: str, tile_id: str, user_id: str) -> QuizT: ...


def check_identifier(quiz: DiscardQuiz | DecisionQuiz) -> None:
    expected = compute_quiz_id(quiz)
    if quiz.id != expected:
        raise QuizIdentifierMismatch(f"Quiz id {quiz.id} does not match its canonical id {expected}")


class InMemoryQuizStore(Generic[QuizT]):
    def __init__(self) -> None:
        self._items: dict[str, QuizT] = {}
        self._lock = Lock()

    def insert(self, quiz: QuizT) -> tuple[QuizT, bool]:
        check_identifier(quiz)
        with self._lock:
            existing = self._items.get(quiz.id)
            if existing is not None:
                if not same_scenario(existing, quiz):
                    logger.warning("quiz id collision with different scenario", quiz_id=quiz.id)
                    raise QuizConflict(f"Quiz {quiz.id} already exists with a different scenario")
                logger.debug("quiz already stored", quiz_id=quiz.id)
                return existing.model_copy(deep=True), False
            self._items[quiz.id] = quiz.model_copy(deep=True)
            logger.info("stored quiz", quiz_id=quiz.id, quiz_type=type(quiz).__name__)
            return quiz.model_copy(deep=True), True

    def get(self, quiz_id: str) -> QuizT | None:
        with self._lock:
            item = self._items.get(quiz_id)
            return item.model_copy(deep=True) if item else None

    def merge_response(self, quiz_id: str, tile_id: str, user_id: str) -> QuizT:
        with self._lock:
            quiz = self._items.get(quiz_id)
            if quiz is None:
                raise QuizNotFound(f"Quiz {quiz_id} not found")
            updated = apply_response(quiz, tile_id, user_id)
            self._items[quiz_id] = updated
            logger.info("merged quiz response", quiz_id=quiz_id, tile_id=tile_id)
            return updated.model_copy(deep=True)
