"""
Tests for caching, retry, jobs and the worker pool.
"""

import threading
import time

import pytest

from ocr_ia.errors import CorruptDocument, JobCancelled
from ocr_ia.performance import (
    BackoffStrategy,
    JobManager,
    JobStatus,
    JobType,
    NonRetryableError,
    OptimizationConfig,
    ResultCache,
    RetryPolicy,
    TaskStatus,
    WorkerConfig,
    WorkerPool,
    execute_with_retry,
    make_cache_key,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class Flaky:
    """Fails ``failures`` times, then returns ``value``."""

    def __init__(self, failures, value='ok', error=ValueError):
        self.failures = failures
        self.value = value
        self.error = error
        self.calls = 0

    def __call__(self, *args):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return self.value


class TestResultCache:
    """Tests for the LRU + TTL cache."""

    def setup_method(self):
        self.clock = FakeClock()
        self.cache = ResultCache(max_mb=1, default_ttl=60, clock=self.clock)

    def test_set_get(self):
        assert self.cache.set('a', {'text': 'Loi n° 12-34'})
        assert self.cache.get('a') == {'text': 'Loi n° 12-34'}
        assert 'a' in self.cache
        assert self.cache.get('missing') is None

    def test_ttl_expiry(self):
        self.cache.set('a', 'payload', ttl=10)
        self.clock.now = 11

        assert 'a' not in self.cache
        assert self.cache.get('a') is None
        assert self.cache.get_statistics()['expirations'] == 1
        assert len(self.cache) == 0

    def test_cleanup(self):
        self.cache.set('a', 'x', ttl=5)
        self.cache.set('b', 'y', ttl=100)
        self.clock.now = 10

        assert self.cache.cleanup() == 1
        assert self.cache.keys == ['b']

    def test_lru_eviction(self):
        cache = ResultCache(max_mb=500 / (1024 * 1024), default_ttl=None, clock=self.clock)
        payload = 'x' * 100                 # about 200 bytes

        cache.set('a', payload)
        cache.set('b', payload)
        cache.get('a')
        cache.set('c', payload)

        assert cache.keys == ['a', 'c']
        assert cache.size_bytes <= cache.max_bytes
        assert cache.get_statistics()['evictions'] == 1

    def test_oversized_payload_rejected(self):
        cache = ResultCache(max_mb=100 / (1024 * 1024), clock=self.clock)
        assert not cache.set('big', 'x' * 1000)
        assert len(cache) == 0

    def test_replace_keeps_size_consistent(self):
        self.cache.set('a', 'x' * 10)
        self.cache.set('a', 'x' * 20)
        assert len(self.cache) == 1
        assert self.cache.size_bytes == (20 + 2) * 2

    def test_hit_ratio(self):
        self.cache.set('a', 1)
        self.cache.get('a')
        self.cache.get('b')
        assert self.cache.get_statistics()['hit_ratio'] == pytest.approx(0.5)

    def test_cache_keys(self):
        first = make_cache_key('extract_document', 'abc', {'dpi': 300})
        assert first == make_cache_key('extract_document', 'abc', {'dpi': 300})
        assert first != make_cache_key('extract_document', 'abc', {'dpi': 200})
        assert first.startswith('extract_document:')


class TestRetry:
    """Tests for retry with backoff."""

    def setup_method(self):
        self.delays = []
        self.policy = RetryPolicy(max_retries=3, base_delay=1.0, sleep=self.delays.append)

    def test_exponential_delays(self):
        assert [self.policy.get_delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]
        capped = RetryPolicy(base_delay=10.0, max_delay=15.0)
        assert capped.get_delay(3) == 15.0

    def test_other_strategies(self):
        assert RetryPolicy(backoff=BackoffStrategy.CONSTANT).get_delay(3) == 1.0
        assert RetryPolicy(backoff=BackoffStrategy.LINEAR).get_delay(2) == 3.0

    def test_succeeds_after_failures(self):
        func = Flaky(2)
        assert execute_with_retry(func, self.policy) == 'ok'
        assert func.calls == 3
        assert self.delays == [1.0, 2.0]

    def test_exhausted_raises_last_error(self):
        func = Flaky(10)
        with pytest.raises(ValueError, match='failure 4'):
            execute_with_retry(func, self.policy)
        assert func.calls == 4

    def test_non_retryable(self):
        for error in (NonRetryableError, CorruptDocument):
            func = Flaky(10, error=error)
            with pytest.raises(error):
                execute_with_retry(func, self.policy)
            assert func.calls == 1

    def test_job_cancelled_not_retried(self):
        def cancelled():
            raise JobCancelled('job_1')

        with pytest.raises(JobCancelled):
            execute_with_retry(cancelled, self.policy)
        assert self.delays == []


class TestWorkerPool:
    """Tests for the ordered worker pool."""

    def test_results_in_input_order(self):
        def slow_square(n):
            time.sleep(0.01 * (5 - n))
            return n * n

        with WorkerPool(WorkerConfig(num_workers=4)) as pool:
            results = pool.map_ordered(slow_square, list(range(5)))

        assert [r.result for r in results] == [0, 1, 4, 9, 16]
        assert [r.index for r in results] == [0, 1, 2, 3, 4]

    def test_failures_captured(self):
        def check(n):
            if n == 2:
                raise ValueError("bad region")
            return n

        with WorkerPool(WorkerConfig(num_workers=2)) as pool:
            results = pool.map_ordered(check, [1, 2, 3])
            stats = pool.get_statistics()

        assert [r.status for r in results] == [TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.COMPLETED]
        assert isinstance(results[1].error, ValueError)
        assert stats['tasks_submitted'] == 3

    def test_task_retry_policy(self):
        func = Flaky(1)
        policy = RetryPolicy(max_retries=2, sleep=lambda s: None)
        with WorkerPool(WorkerConfig(num_workers=1, retry_policy=policy)) as pool:
            results = pool.map_ordered(lambda item: func(item), ['page'])
        assert results[0].result == 'ok'

    def test_progress_callback(self):
        progress = []
        with WorkerPool(WorkerConfig(num_workers=2)) as pool:
            pool.map_ordered(lambda n: n, [1, 2, 3], progress_callback=lambda done, total: progress.append((done, total)))
        assert progress[-1] == (3, 3)

    def test_submit_after_shutdown(self):
        pool = WorkerPool()
        pool.shutdown()
        with pytest.raises(RuntimeError):
            pool.submit(lambda: None)


class TestJobManager:
    """Tests for jobs, progress and cancellation."""

    def setup_method(self):
        self.sleeps = []
        self.config = OptimizationConfig(chunk_workers=2)
        self.manager = JobManager(self.config, sleep=self.sleeps.append)

    def test_run(self):
        result = self.manager.run(JobType.OCR_PROCESSING, lambda ctx: 'texte')

        assert result == 'texte'
        history = self.manager.history
        assert len(history) == 1
        assert history[0].status == JobStatus.COMPLETED
        assert history[0].progress == 100.0
        assert self.manager.active_jobs == []
        assert self.manager.get_metrics()['jobs_completed'] == 1

    def test_progress_never_decreases(self):
        reported = []

        def work(ctx):
            ctx.report(50, 'ocr')
            ctx.report(30, 'ocr')
            ctx.report(70, 'mapping')
            return None

        self.manager.run(JobType.PDF_EXTRACTION, work, lambda p, s, d: reported.append(p))

        assert reported == [50, 50, 70, 100]
        assert reported == sorted(reported)

    def test_sub_progress(self):
        reported = []

        def work(ctx):
            sub = ctx.sub_progress(20, 60)
            sub(50, 'ocr', None)
            return None

        self.manager.run(JobType.PDF_EXTRACTION, work, lambda p, s, d: reported.append(p))
        assert reported[0] == pytest.approx(40.0)

    def test_cancellation_at_checkpoint(self):
        def work(ctx):
            self.manager.cancel_job(ctx.job.job_id)
            ctx.checkpoint(50, 'ocr')
            return 'never'

        with pytest.raises(JobCancelled):
            self.manager.run(JobType.PDF_EXTRACTION, work)

        job = self.manager.history[0]
        assert job.status == JobStatus.CANCELLED
        assert self.manager.metrics.jobs_cancelled == 1
        assert self.manager.active_jobs == []

    def test_cancel_before_start(self):
        job = self.manager.create_job(JobType.FORM_MAPPING)
        assert self.manager.cancel_job(job.job_id)
        assert not self.manager.cancel_job(job.job_id)

        with pytest.raises(JobCancelled):
            self.manager.run(JobType.FORM_MAPPING, lambda ctx: 'never', job=job)

    def test_cancel_unknown(self):
        assert not self.manager.cancel_job('job_missing')

    def test_failure(self):
        def work(ctx):
            raise ValueError("page unreadable")

        with pytest.raises(ValueError):
            self.manager.run(JobType.OCR_PROCESSING, work)

        job = self.manager.history[0]
        assert job.status == JobStatus.FAILED
        assert job.error == "page unreadable"
        assert self.manager.metrics.jobs_failed == 1

    def test_cached_result(self):
        calls = []

        def work(ctx):
            calls.append(1)
            return {'pages': 2}

        first = self.manager.run(JobType.PDF_EXTRACTION, work, cache_key='doc:abc')
        stages = []
        second = self.manager.run(JobType.PDF_EXTRACTION, work, lambda p, s, d: stages.append(s), cache_key='doc:abc')

        assert first == second == {'pages': 2}
        assert len(calls) == 1
        assert stages == ['cached']

    def test_slot_wait_is_bounded(self):
        config = OptimizationConfig(max_concurrent_jobs=1, max_slot_wait=0.3, poll_interval=0.1)
        manager = JobManager(config, sleep=self.sleeps.append)

        manager.run(JobType.OCR_PROCESSING, lambda ctx: manager.ensure_resources())

        assert self.sleeps == [0.1, 0.1, 0.1]

    def test_concurrency_ceiling_holds(self):
        manager = JobManager(OptimizationConfig(max_concurrent_jobs=3, poll_interval=0.005))
        lock = threading.Lock()
        counts = {'running': 0, 'peak': 0}

        def work(ctx):
            with lock:
                counts['running'] += 1
                counts['peak'] = max(counts['peak'], counts['running'])
            time.sleep(0.02)
            with lock:
                counts['running'] -= 1

        threads = [
            threading.Thread(target=manager.run, args=(JobType.OCR_PROCESSING, work))
            for _ in range(12)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert counts['peak'] <= 3
        assert manager.metrics.jobs_completed == 12
        assert manager.active_jobs == []

    def test_cancelled_while_waiting_for_slot(self):
        sleeps = []
        waiting = []

        def sleep(delay):
            sleeps.append(delay)
            manager.cancel_job(waiting[0].job_id)

        manager = JobManager(OptimizationConfig(max_concurrent_jobs=1, poll_interval=0.1), sleep=sleep)

        def outer(ctx):
            inner = manager.create_job(JobType.FORM_MAPPING)
            waiting.append(inner)
            with pytest.raises(JobCancelled):
                manager.run(JobType.FORM_MAPPING, lambda c: 'never', job=inner)
            return 'done'

        assert manager.run(JobType.OCR_PROCESSING, outer) == 'done'
        assert sleeps == [0.1]
        assert waiting[0].status == JobStatus.CANCELLED
        assert waiting[0].started_at is None

    def test_chunk_size(self):
        assert self.manager.chunk_size_for(25) == 2
        assert self.manager.chunk_size_for(3) == 1
        manager = JobManager(OptimizationConfig(max_chunk_size=5))
        assert manager.chunk_size_for(1000) == 5

    def test_process_chunks_in_order(self):
        reported = []
        result = self.manager.process_chunks(
            list(range(10)),
            lambda chunk: [n * 2 for n in chunk],
            progress_callback=lambda p, s, d: reported.append(p),
            chunk_size=3,
        )

        assert result == [n * 2 for n in range(10)]
        assert len(reported) == 4
        assert max(reported) == 100.0

    def test_chunk_retried(self):
        lock = threading.Lock()
        state = {'failed': False}

        def processor(chunk):
            with lock:
                if not state['failed']:
                    state['failed'] = True
                    raise ValueError("transient")
            return list(chunk)

        result = self.manager.process_chunks(list(range(4)), processor, chunk_size=2)

        assert result == [0, 1, 2, 3]
        assert 1.0 in self.sleeps

    def test_chunk_failure_raises(self):
        manager = JobManager(OptimizationConfig(max_retries=1), sleep=self.sleeps.append)
        with pytest.raises(ValueError):
            manager.process_chunks([1, 2], Flaky(100), chunk_size=1)

    def test_empty_chunks(self):
        assert self.manager.process_chunks([], lambda chunk: chunk) == []
