import json

import pytest
from google.api_core.exceptions import NotFound, PreconditionFailed

from riichi_club.gcs_quiz_store import GCSQuizStore
from riichi_club.quizzes import AlreadyResponded, build_discard_quiz
from riichi_club.repository import QuizConflict, QuizNotFound, QuizStoreError
from riichi_club.schemas import DiscardQuiz, DiscardQuizInput

HAND = ["M5R", "M7", "M8", "P4", "P5", "P5", "P6", "P7", "P7", "P7", "P8", "S", "S", "r"]


class FakeBlob:
    def __init__(self, bucket: "FakeBucket", name: str) -> None:
        self.bucket = bucket
        self.name = name
        self.generation = None

    def reload(self) -> None:
        if self.name not in self.bucket.objects:
            raise NotFound(self.name)
        self.generation = self.bucket.objects[self.name][1]

    def download_as_text(self, if_generation_match=None) -> str:
        if self.name not in self.bucket.objects:
            raise NotFound(self.name)
        payload, generation = self.bucket.objects[self.name]
        if if_generation_match is not None and if_generation_match != generation:
            raise PreconditionFailed(self.name)
        return payload

    def upload_from_string(self, data, content_type=None, if_generation_match=None) -> None:
        if self.bucket.before_upload:
            hook, self.bucket.before_upload = self.bucket.before_upload, None
            hook()
        current = self.bucket.objects.get(self.name, (None, 0))[1]
        if if_generation_match is not None and if_generation_match != current:
            raise PreconditionFailed(self.name)
        self.bucket.objects[self.name] = (data, current + 1)
        self.bucket.uploads.append(self.name)


class FakeBucket:
    def __init__(self, name: str) -> None:
        self.name = name
        self.objects: dict[str, tuple[str, int]] = {}
        self.uploads: list[str] = []
        self.before_upload = None

    def blob(self, name: str) -> FakeBlob:
        return FakeBlob(self, name)


class FakeClient:
    def __init__(self) -> None:
        self.buckets: dict[str, FakeBucket] = {}

    def bucket(self, name: str) -> FakeBucket:
        return self.buckets.setdefault(name, FakeBucket(name))


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def store(client) -> GCSQuizStore:
    return GCSQuizStore(DiscardQuiz, "discard-quizzes", bucket_name="club", prefix="quizzes/", client=client)


def make_quiz(**kwargs) -> DiscardQuiz:
    payload = {"hand": HAND, "dora_indicator": "M4", "seat": "E", "round_wind": "E"}
    payload.update(kwargs)
    return build_discard_quiz(DiscardQuizInput.model_validate(payload))


def test_insert_writes_one_object_per_quiz(store, client):
    quiz = make_quiz()
    stored, created = store.insert(quiz)

    assert created
    name = f"quizzes/discard-quizzes/{quiz.id}.json"
    payload, generation = client.buckets["club"].objects[name]
    assert generation == 1
    assert json.loads(payload)["hand"] == HAND
    assert store.get(quiz.id) == stored


def test_insert_identical_scenario_keeps_existing(store, client):
    quiz = make_quiz()
    store.insert(quiz)
    store.merge_response(quiz.id, "P7", "alice")

    existing, created = store.insert(make_quiz(hand=list(reversed(HAND))))
    assert not created
    assert existing.responses["P7"].user_ids == ["alice"]


def test_insert_conflict(store, client):
    quiz = make_quiz()
    other = make_quiz(seat="S")
    bucket = client.bucket("club")
    bucket.objects[f"quizzes/discard-quizzes/{quiz.id}.json"] = (other.model_copy(update={"id": quiz.id}).model_dump_json(), 1)

    with pytest.raises(QuizConflict):
        store.insert(quiz)


def test_get_missing_returns_none(store):
    assert store.get("0123456789abcdef") is None


def test_merge_missing_quiz(store):
    with pytest.raises(QuizNotFound):
        store.merge_response("0123456789abcdef", "P7", "alice")


def test_merge_applies_response_rules(store):
    quiz = make_quiz()
    store.insert(quiz)
    store.merge_response(quiz.id, "P7", "alice")

    with pytest.raises(AlreadyResponded):
        store.merge_response(quiz.id, "S", "alice")


def test_merge_retries_after_concurrent_write(store, client):
    quiz = make_quiz()
    store.insert(quiz)
    bucket = client.bucket("club")

    def concurrent_writer():
        GCSQuizStore(DiscardQuiz, "discard-quizzes", bucket_name="club", prefix="quizzes", client=client).merge_response(
            quiz.id, "r", "bob"
        )

    bucket.before_upload = concurrent_writer
    merged = store.merge_response(quiz.id, "P7", "alice")

    assert merged.responses["P7"].user_ids == ["alice"]
    assert merged.responses["r"].user_ids == ["bob"]
    assert store.get(quiz.id) == merged


def test_merge_gives_up_after_max_retries(client, monkeypatch):
    store = GCSQuizStore(DiscardQuiz, "discard-quizzes", bucket_name="club", max_retries=2, client=client)
    quiz = make_quiz()
    store.insert(quiz)
    bucket = client.bucket("club")
    name = f"{store.prefix}/discard-quizzes/{quiz.id}.json"

    original_upload = FakeBlob.upload_from_string

    def always_stale(self, data, content_type=None, if_generation_match=None):
        payload, generation = bucket.objects[name]
        bucket.objects[name] = (payload, generation + 1)
        original_upload(self, data, content_type=content_type, if_generation_match=if_generation_match)

    monkeypatch.setattr(FakeBlob, "upload_from_string", always_stale)
    with pytest.raises(QuizStoreError):
        store.merge_response(quiz.id, "P7", "alice")


def test_missing_bucket_is_an_error(client):
    store = GCSQuizStore(DiscardQuiz, "discard-quizzes", bucket_name="club", client=client)
    store.bucket_name = None
    with pytest.raises(QuizStoreError):
        store.get("0123456789abcdef")
