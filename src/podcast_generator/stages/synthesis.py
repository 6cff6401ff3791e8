"""Generate-audio stage: speak the TTS-optimized summary."""

from __future__ import annotations

import hashlib
import json
import logging
import math
import re

from ..config_constants import TTS_MAX_INPUT_CHARS
from ..exceptions import ProviderError
from ..models import FailureKind, StageKind
from ..providers.base import SpeechSynthesizer
from .base import (
    CostReport,
    JobMeta,
    Payload,
    StageFailure,
    StageResult,
    StageSuccess,
    failure_from_exception,
)
from .summarization import strip_pause_markers

logger = logging.getLogger(__name__)

MIN_TTS_SPEED = 0.25
MAX_TTS_SPEED = 4.0


def estimate_audio_duration(text: str, speed: float, words_per_minute: int) -> int:
    """Spoken duration in seconds at ``words_per_minute`` adjusted for speed."""
    word_count = len(re.split(r"\s+", text))
    return math.ceil(word_count / words_per_minute / speed * 60)


def content_hash(text: str, voice: str, speed: float, audio_format: str, model: str) -> str:
    """Stable hash of a synthesis request, used as the stored file name."""
    hash_input = json.dumps(
        {"format": audio_format, "model": model, "speed": speed, "text": text, "voice": voice},
        sort_keys=True,
    )
    return hashlib.sha256(hash_input.encode("utf-8")).hexdigest()


class SynthesizeAudioExecutor:
    """Stage executor turning ``tts_text`` (or ``summary``) into audio bytes.

    Adds ``audio``, ``audio_format``, ``audio_size``, ``audio_duration``,
    ``voice`` and ``content_hash`` to the payload.
    """

    stage = StageKind.GENERATE_AUDIO

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        voice: str,
        speed: float = 1.0,
        audio_format: str = "mp3",
        cost_per_1k_chars: float = 0.015,
        words_per_minute: int = 150,
        model_name: str = "tts-1",
        max_input_chars: int = TTS_MAX_INPUT_CHARS,
    ) -> None:
        self.synthesizer = synthesizer
        self.voice = voice
        self.speed = speed
        self.audio_format = audio_format
        self.cost_per_1k_chars = cost_per_1k_chars
        self.words_per_minute = words_per_minute
        self.model_name = model_name
        self.max_input_chars = max_input_chars

    def _spoken_text(self, payload: Payload) -> str:
        return strip_pause_markers(payload.get("tts_text") or payload.get("summary") or "")

    def _cost(self, spoken: str) -> float:
        return len(spoken) / 1000 * self.cost_per_1k_chars

    def estimate_cost(self, payload: Payload, job: JobMeta) -> float:
        return self._cost(self._spoken_text(payload))

    def execute(self, payload: Payload, job: JobMeta) -> StageResult:
        text = payload.get("tts_text") or payload.get("summary") or ""
        spoken = strip_pause_markers(text)
        voice = job.options.voice or self.voice
        speed = job.options.speed or self.speed

        if not spoken:
            return StageFailure(FailureKind.INPUT_VALIDATION, "Text is required")
        if len(spoken) > self.max_input_chars:
            return StageFailure(
                FailureKind.INPUT_VALIDATION,
                f"Text too long ({len(spoken)} characters, max {self.max_input_chars})",
            )
        if speed < MIN_TTS_SPEED or speed > MAX_TTS_SPEED:
            return StageFailure(
                FailureKind.INPUT_VALIDATION,
                f"Speed must be between {MIN_TTS_SPEED} and {MAX_TTS_SPEED}",
            )

        try:
            audio = self.synthesizer.synthesize(text, voice, speed, self.audio_format)
        except ProviderError as exc:
            return failure_from_exception(exc, self.stage)
        if not audio:
            return StageFailure(FailureKind.TRANSIENT, "Speech synthesizer returned no audio")

        cost = self._cost(spoken)
        next_payload = dict(payload)
        next_payload.update(
            {
                "audio": audio,
                "audio_format": self.audio_format,
                "audio_size": len(audio),
                "audio_duration": estimate_audio_duration(spoken, speed, self.words_per_minute),
                "voice": voice,
                "content_hash": content_hash(
                    spoken, voice, speed, self.audio_format, self.model_name
                ),
            }
        )
        logger.debug(
            "Synthesized %d bytes of %s audio for %s (cost $%.6f)",
            len(audio),
            self.audio_format,
            job.job_id,
            cost,
        )
        return StageSuccess(
            next_payload,
            CostReport(amount=cost, details={"characters": len(spoken), "voice": voice}),
        )
