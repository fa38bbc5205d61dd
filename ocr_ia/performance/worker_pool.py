"""
Worker Pool

Thread pool for region OCR and page processing. Results are always handed
back in submission order, whatever order the workers finish in.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from .retry import RetryPolicy, execute_with_retry

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')


class TaskStatus(Enum):
    """Status of a task."""
    PENDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()
    CANCELLED = auto()


@dataclass
class Task:
    """
    A unit of work for the pool.
    """
    task_id: str
    func: Callable
    args: tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    index: int = 0

    @classmethod
    def create(cls, func: Callable, *args, index: int = 0, **kwargs) -> 'Task':
        return cls(
            task_id=str(uuid.uuid4()),
            func=func,
            args=args,
            kwargs=kwargs,
            index=index,
        )


@dataclass
class TaskResult:
    """
    Result of task execution.
    """
    task_id: str
    status: TaskStatus
    index: int = 0
    result: Any = None
    error: Optional[Exception] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def duration(self) -> float:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0

    @property
    def success(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'task_id': self.task_id,
            'index': self.index,
            'status': self.status.name,
            'error': str(self.error) if self.error else None,
            'duration': round(self.duration, 3),
        }


@dataclass
class WorkerConfig:
    """Configuration for the worker pool."""
    num_workers: int = 4
    thread_name_prefix: str = 'ocr-ia'
    retry_policy: Optional[RetryPolicy] = None
    on_task_complete: Optional[Callable[[TaskResult], None]] = None


class WorkerPool:
    """
    Thread pool with per-task bookkeeping.

    Usage:
        with WorkerPool(WorkerConfig(num_workers=4)) as pool:
            results = pool.map_ordered(recognize_cell, cells)
    """

    def __init__(self, config: Optional[WorkerConfig] = None):
        self.config = config or WorkerConfig()
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self.config.num_workers),
            thread_name_prefix=self.config.thread_name_prefix,
        )

        self._pending_tasks: Dict[str, Task] = {}
        self._futures: Dict[str, Future] = {}
        self._results: Dict[str, TaskResult] = {}

        self._tasks_submitted = 0
        self._tasks_completed = 0
        self._tasks_failed = 0

        self._lock = threading.Lock()
        self._shutdown = False

        logger.debug(f"Worker pool initialized with {self.config.num_workers} threads")

    def submit(self, func: Callable[..., R], *args, index: int = 0, **kwargs) -> Future:
        """
        Schedule ``func``. The future resolves to a TaskResult and never
        raises for task errors.
        """
        if self._shutdown:
            raise RuntimeError("Pool is shut down")

        task = Task.create(func, *args, index=index, **kwargs)
        with self._lock:
            self._pending_tasks[task.task_id] = task
            self._tasks_submitted += 1

        future = self._executor.submit(self._execute_task, task)
        with self._lock:
            self._futures[task.task_id] = future
        future.add_done_callback(lambda f: self._on_complete(task.task_id, f))
        return future

    def _execute_task(self, task: Task) -> TaskResult:
        start_time = datetime.now()
        try:
            if self.config.retry_policy is not None:
                result = execute_with_retry(task.func, self.config.retry_policy, *task.args, **task.kwargs)
            else:
                result = task.func(*task.args, **task.kwargs)
        except Exception as e:
            logger.warning(f"Task {task.index} failed: {e}")
            return TaskResult(
                task_id=task.task_id,
                status=TaskStatus.FAILED,
                index=task.index,
                error=e,
                start_time=start_time,
                end_time=datetime.now(),
            )
        return TaskResult(
            task_id=task.task_id,
            status=TaskStatus.COMPLETED,
            index=task.index,
            result=result,
            start_time=start_time,
            end_time=datetime.now(),
        )

    def _on_complete(self, task_id: str, future: Future) -> None:
        if future.cancelled():
            result = TaskResult(task_id=task_id, status=TaskStatus.CANCELLED)
        else:
            result = future.result()

        with self._lock:
            self._results[task_id] = result
            self._pending_tasks.pop(task_id, None)
            if result.success:
                self._tasks_completed += 1
            else:
                self._tasks_failed += 1

        if self.config.on_task_complete:
            try:
                self.config.on_task_complete(result)
            except Exception as e:
                logger.error(f"Error in completion callback: {e}")

    def map_ordered(
        self,
        func: Callable[[T], R],
        items: Sequence[T],
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> List[TaskResult]:
        """
        Apply ``func`` to every item concurrently.

        Returns:
            One TaskResult per item, in input order
        """
        futures = {self.submit(func, item, index=i): i for i, item in enumerate(items)}
        results: Dict[int, TaskResult] = {}

        completed = 0
        for future in as_completed(futures):
            results[futures[future]] = future.result()
            completed += 1
            if progress_callback:
                progress_callback(completed, len(items))

        return [results[i] for i in range(len(items))]

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'num_workers': self.config.num_workers,
                'tasks_submitted': self._tasks_submitted,
                'tasks_completed': self._tasks_completed,
                'tasks_failed': self._tasks_failed,
                'tasks_pending': len(self._pending_tasks),
                'success_rate': (
                    self._tasks_completed / self._tasks_submitted
                    if self._tasks_submitted > 0 else 0.0
                ),
            }

    def shutdown(self, wait: bool = True) -> None:
        self._shutdown = True
        self._executor.shutdown(wait=wait)
        logger.debug("Worker pool shut down")

    def __enter__(self) -> 'WorkerPool':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
