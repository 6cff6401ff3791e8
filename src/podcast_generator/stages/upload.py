"""Upload stage: publish the audio and record its URL."""

from __future__ import annotations

import logging

from ..config_constants import BYTES_PER_MB
from ..exceptions import ProviderError
from ..models import FailureKind, StageKind
from ..providers.base import BlobStorage
from .base import (
    CostReport,
    JobMeta,
    Payload,
    StageFailure,
    StageResult,
    StageSuccess,
    failure_from_exception,
)

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "opus": "audio/opus",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "wav": "audio/wav",
}


class UploadExecutor:
    """Stage executor that stores ``payload["audio"]`` and sets ``audio_url``.

    The audio bytes are dropped from the payload once stored; only the URL
    travels on.
    """

    stage = StageKind.UPLOAD

    def __init__(self, storage: BlobStorage, cost_per_mb: float = 0.0) -> None:
        self.storage = storage
        self.cost_per_mb = cost_per_mb

    def _cost(self, size: int) -> float:
        return size / BYTES_PER_MB * self.cost_per_mb

    def estimate_cost(self, payload: Payload, job: JobMeta) -> float:
        return self._cost(len(payload.get("audio") or b""))

    def execute(self, payload: Payload, job: JobMeta) -> StageResult:
        audio = payload.get("audio")
        if not audio:
            return StageFailure(FailureKind.INPUT_VALIDATION, "No audio to upload")

        audio_format = payload.get("audio_format", "mp3")
        key = f"{job.job_id}/{payload.get('content_hash') or job.job_id}.{audio_format}"
        try:
            url = self.storage.store(
                key, audio, CONTENT_TYPES.get(audio_format, "application/octet-stream")
            )
        except ProviderError as exc:
            return failure_from_exception(exc, self.stage)

        cost = self._cost(len(audio))
        next_payload = {k: v for k, v in payload.items() if k != "audio"}
        next_payload["audio_url"] = url
        next_payload["audio_size"] = len(audio)
        logger.debug("Uploaded %d bytes for %s to %s", len(audio), job.job_id, url)
        return StageSuccess(next_payload, CostReport(amount=cost, details={"bytes": len(audio)}))
