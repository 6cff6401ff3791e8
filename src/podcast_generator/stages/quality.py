"""Summary quality assessment.

The summarize stage rejects output that scores below the configured minimum
on any of three 0-1 heuristics. Assessors are pluggable through the
``QualityAssessor`` protocol so a model-based scorer can replace the
heuristic one without touching the scheduler.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Protocol, runtime_checkable

TRANSITION_WORDS = ("however", "meanwhile", "furthermore", "additionally", "now", "then", "next")
CONVERSATIONAL_MARKERS = ("now", "so", "well", "you know", "let's", "here's")

# Relevance compares at most this many distinct summary words
RELEVANCE_WORD_CAP = 50

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_NON_WORD = re.compile(r"\W+", re.ASCII)
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class QualityScores:
    coherence: float
    relevance: float
    readability: float

    @property
    def overall(self) -> float:
        return (self.coherence + self.relevance + self.readability) / 3

    def failing(self, thresholds: "QualityThresholds") -> List[str]:
        """Return the names of the scores below their minimum."""
        failed = []
        if self.coherence < thresholds.min_coherence:
            failed.append("coherence")
        if self.relevance < thresholds.min_relevance:
            failed.append("relevance")
        if self.readability < thresholds.min_readability:
            failed.append("readability")
        return failed

    def to_dict(self) -> Dict[str, float]:
        return {
            "coherence": round(self.coherence, 4),
            "relevance": round(self.relevance, 4),
            "readability": round(self.readability, 4),
        }


@dataclass(frozen=True)
class QualityThresholds:
    min_coherence: float = 0.7
    min_relevance: float = 0.7
    min_readability: float = 0.6


@runtime_checkable
class QualityAssessor(Protocol):
    """Protocol for summary quality scorers."""

    def assess(self, summary: str, source: str) -> QualityScores:
        """Score ``summary`` against the ``source`` it was generated from."""
        ...


def split_sentences(text: str) -> List[str]:
    """Split on runs of sentence-ending punctuation, dropping empty pieces."""
    return [s for s in _SENTENCE_SPLIT.split(text) if s.strip()]


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _has_any(text: str, needles) -> bool:
    lower = text.lower()
    return any(needle in lower for needle in needles)


def coherence_score(summary: str) -> float:
    """Sentence-length regularity (ideal 15 words) plus transition words."""
    sentences = split_sentences(summary)
    if not sentences:
        return 0.0
    avg_length = sum(len(s.split(" ")) for s in sentences) / len(sentences)
    length_score = _clamp((30 - abs(avg_length - 15)) / 30)
    transition_score = 0.8 if _has_any(summary, TRANSITION_WORDS) else 0.6
    return (length_score + transition_score) / 2


def relevance_score(summary: str, source: str) -> float:
    """Share of distinct summary words (longer than 3 chars) found in the source."""
    summary_words = {w for w in _NON_WORD.split(summary.lower()) if len(w) > 3}
    if not summary_words:
        return 0.0
    source_words = {w for w in _NON_WORD.split(source.lower()) if len(w) > 3}
    overlap = len(summary_words & source_words) / min(len(summary_words), RELEVANCE_WORD_CAP)
    return min(1.0, overlap)


def readability_score(summary: str) -> float:
    """Words per sentence (ideal 15) plus conversational markers."""
    sentences = split_sentences(summary)
    if not sentences:
        return 0.0
    words = _WHITESPACE.split(summary)
    avg_words = len(words) / len(sentences)
    length_score = _clamp((25 - abs(avg_words - 15)) / 25)
    conversational_score = 0.8 if _has_any(summary, CONVERSATIONAL_MARKERS) else 0.6
    return (length_score + conversational_score) / 2


class HeuristicQualityAssessor:
    """String-inspection scorer used by default."""

    def assess(self, summary: str, source: str) -> QualityScores:
        return QualityScores(
            coherence=coherence_score(summary),
            relevance=relevance_score(summary, source),
            readability=readability_score(summary),
        )
