from __future__ import annotations

import random

import structlog
from fastapi import FastAPI, HTTPException, Response

from riichi_club.config import settings
from riichi_club.fu import compute_fu, fu_breakdown
from riichi_club.gcs_quiz_store import GCSQuizStore
from riichi_club.logging import setup_logging
from riichi_club.quiz_generation import random_decision_scenario, random_discard_scenario
from riichi_club.quizzes import (
    AlreadyResponded,
    InvalidQuiz,
    ResponseRejected,
    build_decision_quiz,
    build_discard_quiz,
    has_responded,
    to_decision_out,
    to_discard_out,
)
from riichi_club.repository import InMemoryQuizStore, QuizConflict, QuizIdentifierMismatch, QuizNotFound, QuizStore
from riichi_club.schemas import (
    DecisionQuiz,
    DecisionQuizInput,
    DecisionQuizOut,
    DiscardQuiz,
    DiscardQuizInput,
    DiscardQuizOut,
    ErrorBody,
    FuCalculationInput,
    FuResponse,
    ResponseSubmission,
    RoundValidationResponse,
    TileListResponse,
    TileOut,
    TournamentRound,
)
from riichi_club.tiles import all_tiles, resolve
from riichi_club.validators import (
    raise_for_issue,
    validate_meld_set,
    validate_pairing_structure,
    validate_tournament_players,
)

setup_logging(settings.log_level, settings.log_format)
logger = structlog.get_logger()

app = FastAPI(title="Riichi Club Core API", version="0.1.0")


def _make_store(model: type, collection: str) -> QuizStore:
    if settings.gcs_bucket_name:
        return GCSQuizStore(model, collection)
    return InMemoryQuizStore()


discard_store: QuizStore[DiscardQuiz] = _make_store(DiscardQuiz, "discard-quizzes")
decision_store: QuizStore[DecisionQuiz] = _make_store(DecisionQuiz, "decision-quizzes")


def _http_error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail=ErrorBody(code=code, message=message).model_dump())


def _insert(store: QuizStore, quiz, response: Response):
    try:
        stored, created = store.insert(quiz)
    except QuizConflict as exc:
        raise _http_error(409, "QuizConflict", str(exc)) from exc
    except QuizIdentifierMismatch as exc:
        raise _http_error(409, "QuizIdentifierMismatch", str(exc)) from exc
    response.status_code = 201 if created else 200
    return stored


def _merge(store: QuizStore, quiz_id: str, submission: ResponseSubmission):
    try:
        return store.merge_response(quiz_id, submission.tile_id, submission.user_id)
    except QuizNotFound as exc:
        raise _http_error(404, "QuizNotFound", str(exc)) from exc
    except ResponseRejected as exc:
        raise_for_issue(exc.issue)
    except AlreadyResponded as exc:
        raise _http_error(409, "AlreadyResponded", str(exc)) from exc


@app.get("/")
def root() -> dict[str, str]:
    return {
        "message": "Riichi Club Core API",
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/v1/tiles", response_model=TileListResponse)
def list_tiles() -> TileListResponse:
    return TileListResponse(tiles=[TileOut(**tile.model_dump()) for tile in all_tiles()])


@app.get("/api/v1/tiles/{tile_id}", response_model=TileOut)
def get_tile(tile_id: str) -> TileOut:
    tile = resolve(tile_id)
    if tile is None:
        raise _http_error(404, "InvalidTileReference", f"Unknown tile id: {tile_id}")
    return TileOut(**tile.model_dump())


@app.post("/api/v1/fu", response_model=FuResponse)
def calculate_fu(req: FuCalculationInput) -> FuResponse:
    issue = validate_meld_set(req.melds)
    return FuResponse(
        fu=compute_fu(req),
        breakdown=fu_breakdown(req),
        warnings=[issue.message] if issue else [],
    )


@app.post("/api/v1/discard-quizzes", response_model=DiscardQuizOut, status_code=201)
def create_discard_quiz(req: DiscardQuizInput, response: Response) -> DiscardQuizOut:
    try:
        quiz = build_discard_quiz(req)
    except InvalidQuiz as exc:
        raise_for_issue(exc.issue)
    return to_discard_out(_insert(discard_store, quiz, response))


@app.get("/api/v1/discard-quizzes/generate/random", response_model=DiscardQuizOut)
def random_discard_quiz(response: Response, user_id: str | None = None) -> DiscardQuizOut:
    rng = random.Random()
    for _ in range(settings.quiz_generation_max_attempts):
        quiz = build_discard_quiz(random_discard_scenario(rng))
        existing = discard_store.get(quiz.id)
        if existing is not None:
            if user_id and has_responded(existing, user_id):
                continue
            return to_discard_out(existing)
        return to_discard_out(_insert(discard_store, quiz, response))
    raise _http_error(503, "GenerationExhausted", "Unable to generate a new quiz. Please try again later.")


@app.get("/api/v1/discard-quizzes/{quiz_id}", response_model=DiscardQuizOut)
def get_discard_quiz(quiz_id: str) -> DiscardQuizOut:
    quiz = discard_store.get(quiz_id)
    if quiz is None:
        raise _http_error(404, "QuizNotFound", "Discard quiz not found")
    return to_discard_out(quiz)


@app.put("/api/v1/discard-quizzes/{quiz_id}/response", response_model=DiscardQuizOut)
def submit_discard_response(quiz_id: str, req: ResponseSubmission) -> DiscardQuizOut:
    return to_discard_out(_merge(discard_store, quiz_id, req))


@app.post("/api/v1/decision-quizzes", response_model=DecisionQuizOut, status_code=201)
def create_decision_quiz(req: DecisionQuizInput, response: Response) -> DecisionQuizOut:
    try:
        quiz = build_decision_quiz(req)
    except InvalidQuiz as exc:
        raise_for_issue(exc.issue)
    return to_decision_out(_insert(decision_store, quiz, response))


@app.get("/api/v1/decision-quizzes/generate/random", response_model=DecisionQuizOut)
def random_decision_quiz(response: Response, user_id: str | None = None) -> DecisionQuizOut:
    rng = random.Random()
    for _ in range(settings.quiz_generation_max_attempts):
        try:
            quiz = build_decision_quiz(random_decision_scenario(rng))
        except InvalidQuiz as exc:
            logger.warning("discarding generated decision quiz", reason=exc.issue.message)
            continue
        existing = decision_store.get(quiz.id)
        if existing is not None:
            if user_id and has_responded(existing, user_id):
                continue
            return to_decision_out(existing)
        return to_decision_out(_insert(decision_store, quiz, response))
    raise _http_error(503, "GenerationExhausted", "Unable to generate a new quiz. Please try again later.")


@app.get("/api/v1/decision-quizzes/{quiz_id}", response_model=DecisionQuizOut)
def get_decision_quiz(quiz_id: str) -> DecisionQuizOut:
    quiz = decision_store.get(quiz_id)
    if quiz is None:
        raise _http_error(404, "QuizNotFound", "Decision quiz not found")
    return to_decision_out(quiz)


@app.put("/api/v1/decision-quizzes/{quiz_id}/response", response_model=DecisionQuizOut)
def submit_decision_response(quiz_id: str, req: ResponseSubmission) -> DecisionQuizOut:
    return to_decision_out(_merge(decision_store, quiz_id, req))


@app.post("/api/v1/tournaments/rounds/validate", response_model=RoundValidationResponse)
def validate_round(req: TournamentRound) -> RoundValidationResponse:
    raise_for_issue(validate_tournament_players(req.players) or validate_pairing_structure(req))
    return RoundValidationResponse(status="ok", round_number=req.round_number, tables=len(req.pairings))
