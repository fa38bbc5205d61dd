"""
Job Management

Wraps heavy pipeline operations in jobs:
- At most ``max_concurrent_jobs`` jobs run at once; callers poll until a
  slot frees
- Memory pressure (cache size + a flat estimate per active job) triggers a
  cleanup and a bounded wait
- Large inputs are split into chunks, each retried with exponential backoff
- Progress is reported as (percent, stage, details) and never decreases
- Cancellation is cooperative: a cancelled job stops at its next checkpoint

Neither wait ever blocks forever: once the bound is reached the operation
proceeds and the condition is logged as resource exhaustion.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, TypeVar

from ..errors import JobCancelled, ResourceExhausted
from .cache import ResultCache
from .retry import BackoffStrategy, RetryPolicy, execute_with_retry
from .worker_pool import WorkerConfig, WorkerPool

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')

ProgressCallback = Callable[[float, str, Optional[Dict[str, Any]]], None]


class JobType(Enum):
    PDF_EXTRACTION = 'pdf_extraction'
    OCR_PROCESSING = 'ocr_processing'
    PATTERN_RECOGNITION = 'pattern_recognition'
    FORM_MAPPING = 'form_mapping'


class JobPriority(Enum):
    LOW = 'low'
    NORMAL = 'normal'
    HIGH = 'high'
    URGENT = 'urgent'


class JobStatus(Enum):
    PENDING = 'pending'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


@dataclass
class OptimizationConfig:
    """Resource ceilings, caching and chunking."""
    max_concurrent_jobs: int = 3
    max_memory_mb: float = 512.0
    enable_caching: bool = True
    cache_max_mb: float = 100.0
    cache_ttl: float = 30 * 60.0

    # Chunking
    chunk_divisor: int = 10
    max_chunk_size: Optional[int] = None
    chunk_workers: int = 2

    # Retry
    max_retries: int = 3
    base_delay: float = 1.0

    # Waiting
    poll_interval: float = 0.1
    max_slot_wait: float = 300.0
    memory_wait_attempts: int = 10
    memory_wait_interval: float = 1.0
    job_memory_mb: float = 50.0

    history_size: int = 100

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            backoff=BackoffStrategy.EXPONENTIAL,
            base_delay=self.base_delay,
            multiplier=2.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'max_concurrent_jobs': self.max_concurrent_jobs,
            'max_memory_mb': self.max_memory_mb,
            'enable_caching': self.enable_caching,
            'cache_max_mb': self.cache_max_mb,
            'cache_ttl': self.cache_ttl,
            'chunk_divisor': self.chunk_divisor,
            'max_chunk_size': self.max_chunk_size,
            'max_retries': self.max_retries,
            'base_delay': self.base_delay,
        }


@dataclass
class ProcessingJob:
    """Bookkeeping for one operation."""
    job_id: str
    job_type: JobType
    priority: JobPriority = JobPriority.NORMAL
    status: JobStatus = JobStatus.PENDING
    progress: float = 0.0
    stage: str = ''
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def duration(self) -> float:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return 0.0

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.job_id,
            'type': self.job_type.value,
            'priority': self.priority.value,
            'status': self.status.value,
            'progress': round(self.progress, 1),
            'stage': self.stage,
            'created_at': self.created_at.isoformat(),
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'duration': round(self.duration, 3),
            'error': self.error,
        }


class JobContext:
    """
    Handle given to the work function of a job.

    ``checkpoint`` is the cancellation point: it raises JobCancelled once the
    job has been cancelled, otherwise it records and forwards progress.
    """

    def __init__(self, manager: 'JobManager', job: ProcessingJob, callback: Optional[ProgressCallback] = None):
        self.manager = manager
        self.job = job
        self._callback = callback
        self._lock = threading.RLock()

    @property
    def cancelled(self) -> bool:
        return self.job.status == JobStatus.CANCELLED

    def check_cancelled(self) -> None:
        if self.cancelled:
            raise JobCancelled(self.job.job_id)

    def checkpoint(self, percent: float, stage: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.check_cancelled()
        self.report(percent, stage, details)

    def report(self, percent: float, stage: str, details: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            if self.cancelled:
                return
            percent = max(self.job.progress, min(100.0, float(percent)))
            self.job.progress = percent
            self.job.stage = stage
            # Callbacks observe non-decreasing percentages
            if self._callback:
                self._callback(percent, stage, details)

    def sub_progress(self, start: float, end: float) -> ProgressCallback:
        """Callback mapping 0-100 of a sub-step onto [start, end] of this job."""
        def callback(percent: float, stage: str, details: Optional[Dict[str, Any]] = None) -> None:
            self.report(start + (end - start) * percent / 100.0, stage, details)
        return callback


@dataclass
class PerformanceMetrics:
    jobs_completed: int = 0
    jobs_failed: int = 0
    jobs_cancelled: int = 0
    total_processing_time: float = 0.0

    @property
    def average_processing_time(self) -> float:
        return self.total_processing_time / self.jobs_completed if self.jobs_completed else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'jobs_completed': self.jobs_completed,
            'jobs_failed': self.jobs_failed,
            'jobs_cancelled': self.jobs_cancelled,
            'average_processing_time': round(self.average_processing_time, 3),
        }


class JobManager:
    """
    Process-wide job registry with a concurrency ceiling.

    Usage:
        manager = JobManager()
        document = manager.run(
            JobType.PDF_EXTRACTION,
            lambda ctx: pipeline_step(ctx),
            progress_callback=print,
        )
    """

    def __init__(
        self,
        config: Optional[OptimizationConfig] = None,
        cache: Optional[ResultCache] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or OptimizationConfig()
        self.cache = cache or ResultCache(self.config.cache_max_mb, self.config.cache_ttl)
        self._sleep = sleep

        self._jobs: Dict[str, ProcessingJob] = {}
        self._active: Dict[str, ProcessingJob] = {}
        self._history: Deque[ProcessingJob] = deque(maxlen=self.config.history_size)
        self._counter = itertools.count(1)
        self._lock = threading.Lock()
        self.metrics = PerformanceMetrics()

    # Job registry

    def create_job(self, job_type: JobType, priority: JobPriority = JobPriority.NORMAL) -> ProcessingJob:
        job_id = f"job_{int(time.time() * 1000)}_{next(self._counter)}"
        job = ProcessingJob(job_id=job_id, job_type=job_type, priority=priority)
        with self._lock:
            self._jobs[job_id] = job
        logger.debug(f"Created {job_type.value} job {job_id}")
        return job

    def get_job(self, job_id: str) -> Optional[ProcessingJob]:
        with self._lock:
            return self._jobs.get(job_id)

    @property
    def active_jobs(self) -> List[ProcessingJob]:
        with self._lock:
            return list(self._active.values())

    @property
    def history(self) -> List[ProcessingJob]:
        with self._lock:
            return list(self._history)

    def cancel_job(self, job_id: str) -> bool:
        """
        Mark a pending or running job cancelled.

        Returns:
            False when the job is unknown or already finished
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.is_finished:
                return False
            job.status = JobStatus.CANCELLED
            job.completed_at = datetime.now()
            self._active.pop(job_id, None)
            self._jobs.pop(job_id, None)
            self._history.append(job)
            self.metrics.jobs_cancelled += 1
        logger.info(f"Job {job_id} cancelled")
        return True

    # Resources

    def memory_estimate_mb(self) -> float:
        return self.cache.size_mb + len(self._active) * self.config.job_memory_mb

    def ensure_resources(self, job: Optional[ProcessingJob] = None) -> None:
        """
        Wait for a free job slot and acceptable memory use, within bounds.

        When ``job`` is given the slot is taken for it: the free-slot check
        and the registration happen under one lock hold.

        Raises:
            JobCancelled: If ``job`` is cancelled while waiting
        """
        self._acquire_slot(job)

        if self.memory_estimate_mb() <= self.config.max_memory_mb:
            return

        logger.info(f"Memory estimate {self.memory_estimate_mb():.0f} MB over limit, cleaning up")
        self.cleanup()
        for _ in range(self.config.memory_wait_attempts):
            if self.memory_estimate_mb() <= self.config.max_memory_mb:
                return
            self._sleep(self.config.memory_wait_interval)
        logger.warning(str(ResourceExhausted(
            f"Memory estimate still {self.memory_estimate_mb():.0f} MB after cleanup, proceeding"
        )))

    def _acquire_slot(self, job: Optional[ProcessingJob]) -> None:
        waited = 0.0
        while True:
            with self._lock:
                if job is not None and job.status == JobStatus.CANCELLED:
                    raise JobCancelled(job.job_id)
                active = len(self._active)
                if active < self.config.max_concurrent_jobs or waited >= self.config.max_slot_wait:
                    if active >= self.config.max_concurrent_jobs:
                        logger.warning(str(ResourceExhausted(
                            f"No job slot after {waited:.1f}s ({active} active), proceeding"
                        )))
                    if job is not None:
                        job.status = JobStatus.PROCESSING
                        job.started_at = datetime.now()
                        self._active[job.job_id] = job
                    return
            self._sleep(self.config.poll_interval)
            waited += self.config.poll_interval

    def cleanup(self) -> None:
        self.cache.cleanup()
        if self.cache.size_mb > self.config.cache_max_mb / 2:
            self.cache.shrink()

    def clear_cache(self) -> None:
        self.cache.clear()

    # Execution

    def run(
        self,
        job_type: JobType,
        func: Callable[[JobContext], R],
        progress_callback: Optional[ProgressCallback] = None,
        priority: JobPriority = JobPriority.NORMAL,
        cache_key: Optional[str] = None,
        job: Optional[ProcessingJob] = None,
    ) -> R:
        """
        Run ``func`` as a job.

        Raises:
            JobCancelled: if the job was cancelled before or while running
            Exception: whatever ``func`` raised
        """
        job = job or self.create_job(job_type, priority)
        context = JobContext(self, job, progress_callback)

        if cache_key and self.config.enable_caching:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for job {job.job_id}")
                context.report(100.0, 'cached', {'cache_key': cache_key, 'job_id': job.job_id})
                self._finish(job, JobStatus.COMPLETED)
                return cached

        context.check_cancelled()
        self.ensure_resources(job)
        context.check_cancelled()

        try:
            result = func(context)
        except JobCancelled:
            self._finish(job, JobStatus.CANCELLED)
            raise
        except Exception as e:
            job.error = str(e)
            self._finish(job, JobStatus.FAILED)
            logger.error(f"Job {job.job_id} failed: {e}")
            raise

        if context.cancelled:
            self._finish(job, JobStatus.CANCELLED)
            raise JobCancelled(job.job_id)

        context.report(100.0, 'completed')
        self._finish(job, JobStatus.COMPLETED)
        if cache_key and self.config.enable_caching:
            self.cache.set(cache_key, result)
        return result

    def _finish(self, job: ProcessingJob, status: JobStatus) -> None:
        with self._lock:
            already_cancelled = job.status == JobStatus.CANCELLED
            if not already_cancelled:
                job.status = status
                job.completed_at = datetime.now()
                self._history.append(job)
            self._active.pop(job.job_id, None)
            self._jobs.pop(job.job_id, None)

            if already_cancelled:
                return
            if status == JobStatus.COMPLETED:
                self.metrics.jobs_completed += 1
                self.metrics.total_processing_time += job.duration
            elif status == JobStatus.FAILED:
                self.metrics.jobs_failed += 1
            elif status == JobStatus.CANCELLED:
                self.metrics.jobs_cancelled += 1

    def chunk_size_for(self, total: int) -> int:
        size = max(1, total // max(1, self.config.chunk_divisor))
        if self.config.max_chunk_size:
            size = min(size, self.config.max_chunk_size)
        return size

    def process_chunks(
        self,
        items: Sequence[T],
        processor: Callable[[Sequence[T]], Any],
        context: Optional[JobContext] = None,
        progress_callback: Optional[ProgressCallback] = None,
        chunk_size: Optional[int] = None,
    ) -> List[Any]:
        """
        Split ``items`` into chunks and process them with bounded concurrency.

        Each chunk is retried under the configured policy; the last error of
        a chunk that keeps failing is raised. List results are flattened,
        other results are appended, both in input order.
        """
        if not items:
            return []

        size = chunk_size or self.chunk_size_for(len(items))
        chunks = [items[i:i + size] for i in range(0, len(items), size)]
        policy = self.config.retry_policy()
        policy.sleep = self._sleep
        report = progress_callback or (context.report if context else None)
        lock = threading.Lock()
        done = [0]

        def work(indexed: tuple) -> Any:
            index, chunk = indexed
            if context:
                context.check_cancelled()
            result = execute_with_retry(processor, policy, chunk)
            with lock:
                done[0] += 1
                if report:
                    report(done[0] / len(chunks) * 100.0, f"chunk {index + 1}/{len(chunks)}", {'chunk_size': len(chunk)})
            return result

        with WorkerPool(WorkerConfig(num_workers=self.config.chunk_workers, thread_name_prefix='ocr-ia-chunk')) as pool:
            results = pool.map_ordered(work, list(enumerate(chunks)))

        output: List[Any] = []
        for task in results:
            if not task.success:
                raise task.error
            if isinstance(task.result, list):
                output.extend(task.result)
            else:
                output.append(task.result)
        return output

    def get_metrics(self) -> Dict[str, Any]:
        cache_stats = self.cache.get_statistics()
        return {
            **self.metrics.to_dict(),
            'active_jobs': len(self._active),
            'memory_estimate_mb': round(self.memory_estimate_mb(), 2),
            'cache_hit_ratio': cache_stats['hit_ratio'],
            'cache': cache_stats,
        }
