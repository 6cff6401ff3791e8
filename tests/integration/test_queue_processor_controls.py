#!/usr/bin/env python3
"""Integration tests for the processor's control operations.

Covers start/stop, pause/resume, force-dispatch, live configuration changes,
log queries and the per-stage timeout.
"""

import threading
import time
import unittest

import pytest
from conftest import (
    ARTICLE_CONTENT,
    TEST_EPISODE_TITLE,
    TEST_SOURCE_NAME,
    FakeClock,
    make_config,
    make_processor,
    run_until_terminal,
)

from podcast_generator.models import FailureKind, QueueStatus, StageKind
from podcast_generator.queue import QueueProcessor
from podcast_generator.stages import StageSuccess

pytestmark = [pytest.mark.integration]


class TestStartStop(unittest.TestCase):
    def test_start_is_idempotent(self):
        """Starting twice reports already running; stop ends the loop."""
        processor, _ = make_processor()
        try:
            first = processor.start()
            second = processor.start()
            self.assertTrue(first.success)
            self.assertEqual(first.message, "Queue processor started")
            self.assertTrue(second.success)
            self.assertIn("already running", second.message)
            self.assertTrue(processor.is_running)
            self.assertEqual(processor.get_stats().status, "processing")
        finally:
            result = processor.stop(timeout=10)
        self.assertTrue(result.success)
        self.assertFalse(processor.is_running)
        self.assertEqual(processor.get_stats().status, "idle")

    def test_stop_when_not_running(self):
        processor, _ = make_processor()
        result = processor.stop()
        self.assertTrue(result.success)
        self.assertIn("not running", result.message)
        self.assertEqual(
            result.to_dict(), {"success": True, "message": "Queue processor is not running"}
        )

    def test_auto_start(self):
        processor, _ = make_processor(make_config(auto_start=True))
        try:
            self.assertTrue(processor.is_running)
        finally:
            processor.stop(timeout=10)
        self.assertFalse(processor.is_running)

    def test_running_loop_completes_items(self):
        """The background loop drives an item to completion on its own."""
        processor, _ = make_processor(make_config(polling_interval=1.0))
        item = processor.enqueue(TEST_EPISODE_TITLE, TEST_SOURCE_NAME, content=ARTICLE_CONTENT)
        processor.start()
        try:
            deadline = time.monotonic() + 15
            while time.monotonic() < deadline:
                if processor.get_item(item.id).is_terminal:
                    break
                time.sleep(0.05)
        finally:
            processor.stop(timeout=10)
        self.assertEqual(processor.get_item(item.id).status, QueueStatus.COMPLETED)

    def test_stop_waits_for_in_flight_stage(self):
        """Stop does not abort a running stage; its result is committed."""
        gate = threading.Event()
        processor, _ = make_processor()
        scrape = processor._executors[StageKind.SCRAPE]
        original = scrape.execute

        def slow_execute(payload, job):
            gate.wait(timeout=10)
            return original(payload, job)

        scrape.execute = slow_execute
        item = processor.enqueue(TEST_EPISODE_TITLE, TEST_SOURCE_NAME, content=ARTICLE_CONTENT)
        processor.start()
        deadline = time.monotonic() + 5
        while processor.in_flight_count == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        self.assertEqual(processor.in_flight_count, 1)

        threading.Timer(0.2, gate.set).start()
        result = processor.stop(timeout=10)

        self.assertTrue(result.success)
        self.assertEqual(processor.in_flight_count, 0)
        self.assertEqual(processor.get_item(item.id).status, QueueStatus.SUMMARIZING)


class TestPauseResume(unittest.TestCase):
    def test_pause_blocks_new_admissions(self):
        clock = FakeClock()
        processor, _ = make_processor(clock=clock)
        self.assertTrue(processor.pause().success)
        self.assertIn("already paused", processor.pause().message)

        item = processor.enqueue(TEST_EPISODE_TITLE, TEST_SOURCE_NAME, content=ARTICLE_CONTENT)
        processor.tick()
        self.assertEqual(processor.get_item(item.id).status, QueueStatus.PENDING)
        self.assertEqual(processor.get_stats().status, "paused")

        self.assertTrue(processor.resume().success)
        self.assertIn("not paused", processor.resume().message)
        processor.tick()
        self.assertEqual(processor.get_item(item.id).status, QueueStatus.SCRAPING)
        processor.drain(timeout=10)

    def test_pause_lets_in_flight_work_finish(self):
        clock = FakeClock()
        processor, _ = make_processor(clock=clock)
        item = processor.enqueue(TEST_EPISODE_TITLE, TEST_SOURCE_NAME, content=ARTICLE_CONTENT)
        processor.tick()
        processor.pause()

        processor.drain(timeout=10)
        processor.tick()

        current = processor.get_item(item.id)
        self.assertEqual(current.status, QueueStatus.SUMMARIZING)
        self.assertEqual(processor.in_flight_count, 0)


class TestProcessItem(unittest.TestCase):
    def test_forced_item_jumps_the_queue(self):
        """process_item runs the chosen item ahead of older ones."""
        clock = FakeClock()
        processor, _ = make_processor(make_config(max_concurrent_jobs=1), clock=clock)
        older = processor.enqueue("Older", TEST_SOURCE_NAME, content=ARTICLE_CONTENT)
        clock.advance(1)
        newer = processor.enqueue("Newer", TEST_SOURCE_NAME, content=ARTICLE_CONTENT)

        result = processor.process_item(newer.id)

        self.assertTrue(result.success)
        self.assertEqual(
            result.message, f"Processed item {newer.id}; status is now summarizing"
        )
        self.assertEqual(processor.get_item(newer.id).status, QueueStatus.SUMMARIZING)
        self.assertEqual(processor.get_item(older.id).status, QueueStatus.PENDING)

    def test_stopped_processor_only_runs_the_requested_item(self):
        """Other queued items stay pending and nothing is left in flight."""
        clock = FakeClock()
        processor, _ = make_processor(clock=clock)
        ids = [
            processor.enqueue(f"Episode {n}", TEST_SOURCE_NAME, content=ARTICLE_CONTENT).id
            for n in range(3)
        ]

        result = processor.process_item(ids[2])

        self.assertTrue(result.success)
        self.assertFalse(processor.is_running)
        self.assertEqual(
            [processor.get_item(item_id).status for item_id in ids],
            [QueueStatus.PENDING, QueueStatus.PENDING, QueueStatus.SUMMARIZING],
        )
        self.assertEqual(processor.in_flight_count, 0)
        self.assertEqual(processor.get_stats().currently_processing, 0)
        self.assertFalse(processor.store.is_checked_out(ids[2]))

    def test_forced_item_denied_by_cost_reports_failure(self):
        processor, _ = make_processor(make_config(daily_limit=1.0, per_job_limit=0.0001))
        item = processor.enqueue(TEST_EPISODE_TITLE, TEST_SOURCE_NAME, content=ARTICLE_CONTENT)

        result = processor.process_item(item.id)

        self.assertFalse(result.success)
        self.assertIn("Cost limit exceeded", result.message)
        self.assertEqual(processor.get_item(item.id).failure_kind, FailureKind.COST_LIMIT)

    def test_unknown_terminal_and_in_flight_items_are_rejected(self):
        clock = FakeClock()
        processor, _ = make_processor(clock=clock)
        self.assertFalse(processor.process_item("missing").success)

        item = processor.enqueue(TEST_EPISODE_TITLE, TEST_SOURCE_NAME, content=ARTICLE_CONTENT)
        gate = threading.Event()
        scrape = processor._executors[StageKind.SCRAPE]
        original = scrape.execute

        def gated_execute(payload, job):
            gate.wait(timeout=10)
            return original(payload, job)

        scrape.execute = gated_execute
        processor.tick()
        try:
            busy = processor.process_item(item.id)
            self.assertFalse(busy.success)
            self.assertIn("already processing", busy.message)
        finally:
            gate.set()
        scrape.execute = original

        run_until_terminal(processor, clock, item.id)
        done = processor.process_item(item.id)
        self.assertFalse(done.success)
        self.assertIn("completed", done.message)

    def test_forced_item_still_respects_backoff(self):
        """A forced item inside its backoff window is not admitted early."""
        clock = FakeClock()
        processor, _ = make_processor(clock=clock)
        item = processor.enqueue(TEST_EPISODE_TITLE, TEST_SOURCE_NAME, source_url="https://x.test")
        processor.store.update(item.id, status=QueueStatus.SCRAPING, backoff_seconds=30.0)

        self.assertTrue(processor.process_item(item.id).success)

        self.assertEqual(processor.in_flight_count, 0)
        self.assertTrue(processor.get_item(item.id).priority)


class TestUpdateConfig(unittest.TestCase):
    def test_limits_apply_immediately(self):
        processor, _ = make_processor()
        result = processor.update_config(daily_limit=20.0, per_job_limit=2.0, max_retries=5)
        self.assertTrue(result.success)
        self.assertEqual(processor.ledger.daily_limit, 20.0)
        self.assertEqual(processor.ledger.per_job_limit, 2.0)
        self.assertEqual(processor.retry_policy.max_retries, 5)
        self.assertEqual(processor.cfg.daily_limit, 20.0)

    def test_concurrency_change_waits_for_restart_while_running(self):
        processor, _ = make_processor(make_config(max_concurrent_jobs=3))
        processor.start()
        try:
            result = processor.update_config(max_concurrent_jobs=5)
            self.assertTrue(result.success)
            self.assertIn("after restart", result.message)
            self.assertEqual(processor.max_concurrent_jobs, 3)
        finally:
            processor.stop(timeout=10)
        processor.start()
        try:
            self.assertEqual(processor.max_concurrent_jobs, 5)
        finally:
            processor.stop(timeout=10)

    def test_concurrency_change_applies_when_stopped(self):
        processor, _ = make_processor(make_config(max_concurrent_jobs=3))
        result = processor.update_config(max_concurrent_jobs=1, polling_interval=2.0)
        self.assertTrue(result.success)
        self.assertEqual(processor.max_concurrent_jobs, 1)
        self.assertEqual(processor.polling_interval, 2.0)

    def test_invalid_changes_are_rejected(self):
        processor, _ = make_processor(make_config(daily_limit=10.0, per_job_limit=1.0))

        too_high = processor.update_config(per_job_limit=20.0)
        unknown = processor.update_config(storage_dir="/tmp")
        out_of_range = processor.update_config(max_concurrent_jobs=50)

        self.assertFalse(too_high.success)
        self.assertFalse(unknown.success)
        self.assertIn("storage_dir", unknown.message)
        self.assertFalse(out_of_range.success)
        self.assertEqual(processor.ledger.per_job_limit, 1.0)
        self.assertEqual(processor.max_concurrent_jobs, 3)


class TestLogsAndStats(unittest.TestCase):
    def test_get_logs_filters_by_level(self):
        clock = FakeClock()
        processor, _ = make_processor(
            make_config(per_job_limit=0.0001, scrape_cost=0.0), clock=clock
        )
        item = processor.enqueue(TEST_EPISODE_TITLE, TEST_SOURCE_NAME, content=ARTICLE_CONTENT)
        run_until_terminal(processor, clock, item.id)

        warnings = processor.get_logs(level="warning")
        self.assertEqual(len(warnings), 1)
        self.assertIn("cost-limit-exceeded", warnings[0].message)
        everything = processor.get_logs()
        self.assertGreater(len(everything), len(warnings))
        self.assertEqual(everything[0].id, warnings[0].id)
        self.assertEqual(len(processor.get_logs(limit=1)), 1)
        with self.assertRaises(ValueError):
            processor.get_logs(level="debug")

    def test_stats_after_mixed_outcomes(self):
        clock = FakeClock()
        processor, _ = make_processor(clock=clock)
        good = processor.enqueue("Good", TEST_SOURCE_NAME, content=ARTICLE_CONTENT)
        bad = processor.enqueue("Bad", "", content=ARTICLE_CONTENT)

        run_until_terminal(processor, clock, good.id)
        run_until_terminal(processor, clock, bad.id)
        stats = processor.get_stats()

        self.assertEqual(processor.get_item(bad.id).failure_kind, FailureKind.INPUT_VALIDATION)
        self.assertEqual(stats.completed_count, 1)
        self.assertEqual(stats.failed_count, 1)
        self.assertEqual(stats.success_rate, 0.5)
        self.assertEqual(stats.total_in_queue, 0)
        self.assertGreater(stats.average_processing_time, 0)
        self.assertGreater(stats.total_cost_today, 0)

    def test_time_estimates_use_stage_history(self):
        """Once every stage has history, waiting items get a time estimate."""
        clock = FakeClock()
        processor, _ = make_processor(make_config(max_concurrent_jobs=1), clock=clock)
        first = processor.enqueue("First", TEST_SOURCE_NAME, content=ARTICLE_CONTENT)
        second = processor.enqueue("Second", TEST_SOURCE_NAME, content=ARTICLE_CONTENT)

        run_until_terminal(processor, clock, first.id, step_seconds=10)
        processor.tick()

        self.assertEqual(processor.get_item(first.id).estimated_time_remaining, 0.0)
        self.assertIsNotNone(processor.get_item(second.id).estimated_time_remaining)
        processor.drain(timeout=10)


class TestStageTimeout(unittest.TestCase):
    def test_stage_exceeding_timeout_is_a_transient_failure(self):
        release = threading.Event()

        class SlowScrape:
            stage = StageKind.SCRAPE

            def estimate_cost(self, payload, job):
                return 0.0

            def execute(self, payload, job):
                release.wait(timeout=10)
                return StageSuccess(payload)

        cfg = make_config(stage_timeout=1)
        template, _ = make_processor(cfg)
        executors = dict(template._executors)
        executors[StageKind.SCRAPE] = SlowScrape()
        processor = QueueProcessor(cfg, executors, clock=FakeClock())
        item = processor.enqueue(TEST_EPISODE_TITLE, TEST_SOURCE_NAME, content=ARTICLE_CONTENT)

        try:
            processor.tick()
            self.assertTrue(processor.drain(timeout=10))
        finally:
            release.set()

        current = processor.get_item(item.id)
        self.assertEqual(current.attempts, {"scrape": 1})
        self.assertIn("exceeded timeout", current.last_error)
