#!/usr/bin/env python3
"""Unit tests for RetryPolicy backoff and give-up rules."""

import unittest

import pytest
from conftest import TEST_START_TIME

from podcast_generator.models import FailureKind, QueueItem, StageKind
from podcast_generator.queue.retry import RetryPolicy

pytestmark = [pytest.mark.unit]


def _item():
    return QueueItem(
        id="job-1",
        episode_title="Episode",
        source_name="Source",
        created_at=TEST_START_TIME,
        updated_at=TEST_START_TIME,
    )


class TestBackoffDelay(unittest.TestCase):
    def test_delay_doubles_per_attempt(self):
        policy = RetryPolicy(max_retries=5, base_delay=5.0, max_delay=300.0)
        self.assertEqual(
            [policy.backoff_delay(n) for n in range(1, 6)], [5.0, 10.0, 20.0, 40.0, 80.0]
        )

    def test_delay_is_capped(self):
        policy = RetryPolicy(base_delay=5.0, max_delay=60.0)
        self.assertEqual(policy.backoff_delay(10), 60.0)
        self.assertEqual(policy.backoff_delay(10_000), 60.0)


class TestShouldRetry(unittest.TestCase):
    def setUp(self):
        self.policy = RetryPolicy(max_retries=3, base_delay=5.0, max_delay=300.0)
        self.item = _item()

    def test_transient_failure_is_retried(self):
        decision = self.policy.should_retry(self.item, StageKind.SCRAPE, 1, FailureKind.TRANSIENT)
        self.assertTrue(decision.retry)
        self.assertEqual(decision.delay, 5.0)

    def test_gives_up_after_max_retries(self):
        """max_retries=3 allows attempts 1-3 to be retried, not the 4th."""
        third = self.policy.should_retry(self.item, StageKind.SCRAPE, 3, FailureKind.TRANSIENT)
        fourth = self.policy.should_retry(self.item, StageKind.SCRAPE, 4, FailureKind.TRANSIENT)
        self.assertTrue(third.retry)
        self.assertFalse(fourth.retry)
        self.assertIn("max retries 3", fourth.reason)

    def test_domain_failures_are_never_retried(self):
        permanent = (FailureKind.INPUT_VALIDATION, FailureKind.QUALITY_GATE, FailureKind.COST_LIMIT)
        for kind in permanent:
            with self.subTest(kind=kind):
                decision = self.policy.should_retry(self.item, StageKind.SUMMARIZE, 1, kind)
                self.assertFalse(decision.retry)
                self.assertIn("not retryable", decision.reason)

    def test_rate_limit_honors_retry_after(self):
        decision = self.policy.should_retry(
            self.item, StageKind.SUMMARIZE, 1, FailureKind.RATE_LIMITED, retry_after=42.0
        )
        self.assertTrue(decision.retry)
        self.assertEqual(decision.delay, 42.0)

    def test_retry_after_is_ignored_for_transient_failures(self):
        decision = self.policy.should_retry(
            self.item, StageKind.SUMMARIZE, 2, FailureKind.TRANSIENT, retry_after=42.0
        )
        self.assertEqual(decision.delay, 10.0)

    def test_zero_max_retries_fails_on_first_error(self):
        policy = RetryPolicy(max_retries=0)
        decision = policy.should_retry(self.item, StageKind.UPLOAD, 1, FailureKind.TRANSIENT)
        self.assertFalse(decision.retry)
