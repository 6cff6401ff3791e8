"""Scrape stage: fetch the article text a job will be built from."""

from __future__ import annotations

import logging
from typing import Optional

from ..config_constants import MAX_CONTENT_LENGTH
from ..exceptions import ProviderError
from ..models import FailureKind, StageKind
from ..providers.base import ContentScraper
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


class ScrapeExecutor:
    """Stage executor that fills ``payload["content"]``.

    Jobs enqueued with content already present skip the network fetch; the
    stage then only checks the text is non-empty, and oversized text is left
    for the summarize stage to reject. Scraped text longer than
    ``max_content_length`` is truncated so the summarize stage accepts it;
    the original length is kept in ``payload["truncated_from"]``.
    """

    stage = StageKind.SCRAPE

    def __init__(
        self,
        scraper: Optional[ContentScraper],
        cost_per_scrape: float = 0.0,
        max_content_length: int = MAX_CONTENT_LENGTH,
    ) -> None:
        self.scraper = scraper
        self.cost_per_scrape = cost_per_scrape
        self.max_content_length = max_content_length

    def estimate_cost(self, payload: Payload, job: JobMeta) -> float:
        return self.cost_per_scrape

    def execute(self, payload: Payload, job: JobMeta) -> StageResult:
        next_payload = dict(payload)
        content = payload.get("content")

        if content is None:
            if not job.source_url:
                return StageFailure(FailureKind.INPUT_VALIDATION, "No source URL or content given")
            if self.scraper is None:
                return StageFailure(FailureKind.INPUT_VALIDATION, "No content scraper configured")
            try:
                article = self.scraper.scrape(job.source_url)
            except ProviderError as exc:
                return failure_from_exception(exc, self.stage)
            content = article.content or ""
            if len(content) > self.max_content_length:
                logger.info(
                    "Truncating scraped content for %s from %d to %d characters",
                    job.job_id,
                    len(content),
                    self.max_content_length,
                )
                next_payload["truncated_from"] = len(content)
                content = content[: self.max_content_length]
            next_payload["article_title"] = article.title
            next_payload["article_url"] = article.url or job.source_url
            next_payload["scrape_metadata"] = dict(article.metadata)

        if not content.strip():
            return StageFailure(FailureKind.INPUT_VALIDATION, "No content scraped from source")

        next_payload["content"] = content
        next_payload["word_count"] = len(content.split())
        return StageSuccess(next_payload, CostReport(amount=self.cost_per_scrape))
