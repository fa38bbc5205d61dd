"""
Performance and Resource Management

Caching, bounded concurrency, chunked processing and retry for the
extraction pipeline.
"""

from .worker_pool import (
    WorkerPool,
    WorkerConfig,
    Task,
    TaskResult,
    TaskStatus,
)
from .retry import (
    RetryPolicy,
    NonRetryableError,
    BackoffStrategy,
    execute_with_retry,
)
from .cache import (
    ResultCache,
    CacheEntry,
    make_cache_key,
    file_fingerprint,
    estimate_size,
)
from .jobs import (
    JobManager,
    JobContext,
    JobType,
    JobPriority,
    JobStatus,
    ProcessingJob,
    OptimizationConfig,
    PerformanceMetrics,
    ProgressCallback,
)

__all__ = [
    'WorkerPool',
    'WorkerConfig',
    'Task',
    'TaskResult',
    'TaskStatus',
    'RetryPolicy',
    'NonRetryableError',
    'BackoffStrategy',
    'execute_with_retry',
    'ResultCache',
    'CacheEntry',
    'make_cache_key',
    'file_fingerprint',
    'estimate_size',
    'JobManager',
    'JobContext',
    'JobType',
    'JobPriority',
    'JobStatus',
    'ProcessingJob',
    'OptimizationConfig',
    'PerformanceMetrics',
    'ProgressCallback',
]
