"""Pipeline stage executors: scrape, summarize, generate audio, upload."""

from .base import (
    CostReport,
    JobMeta,
    StageExecutor,
    StageFailure,
    StageResult,
    StageSuccess,
    failure_from_exception,
)
from .factory import create_stage_executors
from .quality import HeuristicQualityAssessor, QualityAssessor, QualityScores, QualityThresholds
from .scraping import ScrapeExecutor
from .summarization import SummarizeExecutor
from .synthesis import SynthesizeAudioExecutor
from .upload import UploadExecutor

__all__ = [
    "CostReport",
    "HeuristicQualityAssessor",
    "JobMeta",
    "QualityAssessor",
    "QualityScores",
    "QualityThresholds",
    "ScrapeExecutor",
    "StageExecutor",
    "StageFailure",
    "StageResult",
    "StageSuccess",
    "SummarizeExecutor",
    "SynthesizeAudioExecutor",
    "UploadExecutor",
    "create_stage_executors",
    "failure_from_exception",
]
