from __future__ import annotations

import json
from typing import Generic

import structlog
from google.api_core.exceptions import NotFound, PreconditionFailed
from google.cloud import storage

from riichi_club.config import settings
from riichi_club.quizzes import apply_response, same_scenario
from riichi_club.repository import QuizConflict, QuizNotFound, QuizStoreError, QuizT, check_identifier

logger = structlog.get_logger()


class GCSQuizStore(Generic[QuizT]):
    """One JSON object per quiz, named ``<prefix>/<collection>/<id>.json``.

    Writes carry generation preconditions: inserts only succeed when the
    object does not exist yet and response merges only overwrite the
    generation they read, retrying when another writer got there first.
    """

    def __init__(
        self,
        model: type[QuizT],
        collection: str,
        bucket_name: str | None = None,
        prefix: str | None = None,
        max_retries: int | None = None,
        client: storage.Client | None = None,
    ) -> None:
        self.model = model
        self.collection = collection
        self.bucket_name = bucket_name or settings.gcs_bucket_name
        self.prefix = (prefix or settings.gcs_quiz_prefix).strip("/")
        self.max_retries = max_retries if max_retries is not None else settings.gcs_merge_max_retries
        self._client = client

    def _get_client(self) -> storage.Client:
        if self._client is None:
            self._client = storage.Client()
        return self._client

    def _blob(self, quiz_id: str) -> storage.Blob:
        if not self.bucket_name:
            raise QuizStoreError("GCS bucket is not configured")
        bucket = self._get_client().bucket(self.bucket_name)
        return bucket.blob(f"{self.prefix}/{self.collection}/{quiz_id}.json")

    def _serialize(self, quiz: QuizT) -> str:
        return json.dumps(quiz.model_dump(mode="json"), ensure_ascii=False)

    def insert(self, quiz: QuizT) -> tuple[QuizT, bool]:
        check_identifier(quiz)
        blob = self._blob(quiz.id)
        try:
            blob.upload_from_string(self._serialize(quiz), content_type="application/json", if_generation_match=0)
        except PreconditionFailed:
            existing = self.get(quiz.id)
            if existing is None or not same_scenario(existing, quiz):
                logger.warning("quiz id collision with different scenario", quiz_id=quiz.id)
                raise QuizConflict(f"Quiz {quiz.id} already exists with a different scenario") from None
            return existing, False
        logger.info("stored quiz", quiz_id=quiz.id, bucket=self.bucket_name, collection=self.collection)
        return quiz, True

    def get(self, quiz_id: str) -> QuizT | None:
        try:
            payload = self._blob(quiz_id).download_as_text()
        except NotFound:
            return None
        return self.model.model_validate_json(payload)

    def merge_response(self, quiz_id: str, tile_id: str, user_id: str) -> QuizT:
        for attempt in range(1, self.max_retries + 1):
            blob = self._blob(quiz_id)
            try:
                blob.reload()
                payload = blob.download_as_text(if_generation_match=blob.generation)
            except NotFound:
                raise QuizNotFound(f"Quiz {quiz_id} not found") from None
            except PreconditionFailed:
                continue

            updated = apply_response(self.model.model_validate_json(payload), tile_id, user_id)
            try:
                blob.upload_from_string(
                    self._serialize(updated),
                    content_type="application/json",
                    if_generation_match=blob.generation,
                )
            except PreconditionFailed:
                logger.info("concurrent quiz update, retrying merge", quiz_id=quiz_id, attempt=attempt)
                continue
            logger.info("merged quiz response", quiz_id=quiz_id, tile_id=tile_id)
            return updated
        raise QuizStoreError(f"Could not merge response into quiz {quiz_id} after {self.max_retries} attempts")
