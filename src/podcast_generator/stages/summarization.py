"""Summarize stage.

Turns scraped article text into a spoken-word summary: validate, clean,
summarize with the language model, gate on quality, then derive the
TTS-ready text, key points and takeaways.
"""

from __future__ import annotations

import logging
import math
import re
import time
from typing import Any, Dict, List, Optional

from ..config_constants import (
    CHARS_PER_TOKEN,
    KEY_POINT_MIN_CHARS,
    MAX_CONTENT_LENGTH,
    MAX_KEY_POINTS,
    MAX_TAKEAWAYS,
    SUMMARY_WORD_TARGETS,
    VALID_SUMMARY_STYLES,
)
from ..exceptions import ProviderError, SummarizationError
from ..models import FailureKind, StageKind
from ..providers.base import LanguageModel, SummaryRequest
from .base import CostReport, JobMeta, Payload, StageResult, StageSuccess, failure_from_exception
from .quality import HeuristicQualityAssessor, QualityAssessor, QualityThresholds, split_sentences

logger = logging.getLogger(__name__)

TAKEAWAY_MARKERS = ("should", "will", "expect", "could", "important", "key")

SENTENCE_PAUSE = '<break time="0.5s"/>'
CLAUSE_PAUSE = '<break time="0.3s"/>'

_BOILERPLATE_PATTERNS = (
    re.compile(r"\[.*?\]"),
    re.compile(r"Advertisement|ADVERTISEMENT"),
    re.compile(r"Continue reading.*"),
    re.compile(r"Read more.*"),
)
_PAUSE_PUNCTUATION = re.compile(r"[.!?:;]")
_BREAK_TAG = re.compile(r"<break[^>]*/>")


def validate_content(content: Optional[str], source_name: Optional[str], max_length: int) -> None:
    """Reject input that can never be summarized.

    Raises:
        SummarizationError: With kind ``INPUT_VALIDATION``
    """
    if not content or not content.strip():
        raise SummarizationError("Content is required", FailureKind.INPUT_VALIDATION)
    if len(content) > max_length:
        raise SummarizationError(
            f"Content too long ({len(content)} characters, max {max_length})",
            FailureKind.INPUT_VALIDATION,
        )
    if not source_name or not source_name.strip():
        raise SummarizationError("Source is required", FailureKind.INPUT_VALIDATION)


def preprocess_content(content: str) -> str:
    """Normalize whitespace, drop article boilerplate and straighten quotes."""
    processed = re.sub(r"\s+", " ", content).strip()
    for pattern in _BOILERPLATE_PATTERNS:
        processed = pattern.sub("", processed)
    processed = re.sub("[“”]", '"', processed)
    processed = re.sub("[‘’]", "'", processed)
    return processed


def optimize_for_tts(summary: str, words_per_minute: int) -> Dict[str, Any]:
    """Insert pause markers and estimate spoken duration in seconds."""
    text = summary
    for punct in (". ", "? ", "! "):
        text = text.replace(punct, f"{punct}{SENTENCE_PAUSE} ")
    for punct in (": ", "; "):
        text = text.replace(punct, f"{punct}{CLAUSE_PAUSE} ")

    word_count = len(re.split(r"\s+", summary))
    return {
        "text": text,
        "estimated_duration": math.ceil(word_count / words_per_minute * 60),
        "pause_markers": [
            f"pause_{index}" for index, _ in enumerate(_PAUSE_PUNCTUATION.findall(summary))
        ],
    }


def strip_pause_markers(text: str) -> str:
    """Return the spoken text without break markers."""
    return re.sub(r"\s+", " ", _BREAK_TAG.sub(" ", text)).strip()


def extract_key_points(summary: str) -> List[str]:
    """Longest sentences above the length floor, at most five."""
    sentences = [s.strip() for s in split_sentences(summary)]
    long_sentences = [s for s in sentences if len(s) > KEY_POINT_MIN_CHARS]
    return sorted(long_sentences, key=len, reverse=True)[:MAX_KEY_POINTS]


def extract_takeaways(summary: str) -> List[str]:
    """Forward-looking or actionable sentences, at most three."""
    takeaways = []
    for sentence in split_sentences(summary):
        lower = sentence.lower()
        if any(marker in lower for marker in TAKEAWAY_MARKERS):
            takeaways.append(sentence.strip())
    return takeaways[:MAX_TAKEAWAYS]


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def calculate_cost(content: str, summary: str, cost_per_1k_tokens: float) -> float:
    """Cost of a summarization call from character-based token estimates."""
    total_tokens = estimate_tokens(content) + estimate_tokens(summary)
    return total_tokens / 1000 * cost_per_1k_tokens


class SummarizeExecutor:
    """Stage executor producing the spoken summary for an article.

    Reads ``payload["content"]`` and adds ``summary``, ``tts_text``,
    ``estimated_duration``, ``pause_markers``, ``summary_metadata`` and,
    when the job's options ask for them, ``key_points`` and ``takeaways``.
    """

    stage = StageKind.SUMMARIZE

    def __init__(
        self,
        model: LanguageModel,
        model_name: str,
        cost_per_1k_tokens: float,
        max_tokens: int = 2000,
        temperature: float = 0.3,
        max_content_length: int = MAX_CONTENT_LENGTH,
        words_per_minute: int = 150,
        assessor: Optional[QualityAssessor] = None,
        thresholds: Optional[QualityThresholds] = None,
    ) -> None:
        self.model = model
        self.model_name = model_name
        self.cost_per_1k_tokens = cost_per_1k_tokens
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_content_length = max_content_length
        self.words_per_minute = words_per_minute
        self.assessor = assessor or HeuristicQualityAssessor()
        self.thresholds = thresholds or QualityThresholds()

    def estimate_cost(self, payload: Payload, job: JobMeta) -> float:
        """Upper bound: full input plus a completion at the token limit.

        Content that fails validation projects to zero so the stage runs and
        reports the validation failure instead of a cost denial.
        """
        content = payload.get("content") or ""
        if not content.strip() or len(content) > self.max_content_length:
            return 0.0
        return (estimate_tokens(content) + self.max_tokens) / 1000 * self.cost_per_1k_tokens

    def execute(self, payload: Payload, job: JobMeta) -> StageResult:
        try:
            return self._summarize(payload, job)
        except ProviderError as exc:
            return failure_from_exception(exc, self.stage)

    def _summarize(self, payload: Payload, job: JobMeta) -> StageSuccess:
        start_time = time.monotonic()
        content = payload.get("content")
        validate_content(content, job.source_name, self.max_content_length)
        options = job.options
        if options.target_length not in SUMMARY_WORD_TARGETS:
            raise SummarizationError(
                f"Unknown target length: {options.target_length}", FailureKind.INPUT_VALIDATION
            )
        if options.summary_style not in VALID_SUMMARY_STYLES:
            raise SummarizationError(
                f"Unknown summary style: {options.summary_style}", FailureKind.INPUT_VALIDATION
            )

        request = SummaryRequest(
            content=preprocess_content(content),
            episode_title=job.episode_title,
            source_name=job.source_name,
            target_words=SUMMARY_WORD_TARGETS[options.target_length],
            style=options.summary_style,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        summary = (self.model.summarize(request) or "").strip()
        if not summary:
            raise SummarizationError(
                "Language model returned an empty summary", FailureKind.TRANSIENT
            )

        quality = self.assessor.assess(summary, content)
        failing = quality.failing(self.thresholds)
        if failing:
            logger.info(
                "Summary for %s rejected by quality gate (%s): %s",
                job.job_id,
                ", ".join(failing),
                quality.to_dict(),
            )
            raise SummarizationError(
                f"Summary does not meet quality thresholds ({', '.join(failing)})",
                FailureKind.QUALITY_GATE,
            )

        tts = optimize_for_tts(summary, self.words_per_minute)
        cost = calculate_cost(content, summary, self.cost_per_1k_tokens)

        next_payload = dict(payload)
        next_payload.update(
            {
                "summary": summary,
                "tts_text": tts["text"],
                "estimated_duration": tts["estimated_duration"],
                "pause_markers": tts["pause_markers"],
                "summary_metadata": {
                    "original_length": len(content),
                    "summary_length": len(summary),
                    "compression_ratio": len(summary) / len(content),
                    "processing_time": round(time.monotonic() - start_time, 3),
                    "cost": cost,
                    "model": self.model_name,
                    "quality": quality.to_dict(),
                },
            }
        )
        if options.include_key_points:
            next_payload["key_points"] = extract_key_points(summary)
        if options.include_takeaways:
            next_payload["takeaways"] = extract_takeaways(summary)

        logger.debug(
            "Summarized %s: %d -> %d characters, cost $%.6f",
            job.job_id,
            len(content),
            len(summary),
            cost,
        )
        return StageSuccess(
            next_payload,
            CostReport(
                amount=cost,
                details={
                    "model": self.model_name,
                    "input_tokens": estimate_tokens(content),
                    "output_tokens": estimate_tokens(summary),
                },
            ),
        )
