from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from .errors import InvalidTransition, TaskNotFound

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_S = 60 * 60


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (TaskStatus.COMPLETED, TaskStatus.FAILED)


@dataclass(frozen=True)
class RegionSummary:
    region: str
    count: int


@dataclass
class TaskProgress:
    current: int
    total: int
    percentage: int = 0


def progress_percentage(current: int, total: int) -> int:
    # an empty task is fully done
    if total == 0:
        return 100
    # halves round up: 1/8 is 13
    return (200 * current + total) // (2 * total)


@dataclass
class BulkSearchTask:
    id: str
    keyword: str
    regions: List[str]
    progress: TaskProgress
    start_time: float
    status: TaskStatus = TaskStatus.PENDING
    total_results: int = 0
    region_results: List[RegionSummary] = field(default_factory=list)
    error: Optional[str] = None
    end_time: Optional[float] = None
    result_handle: Optional[str] = None


class TaskRegistry:
    """
    In-memory bulk-search task state machine.

    pending -> running -> completed | failed; terminal states are final.
    Nothing is persisted: tasks live until `reap()` removes them once their
    end time is older than the retention window.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_S,
        clock: Callable[[], float] = time.time,
    ):
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._tasks: Dict[str, BulkSearchTask] = {}

    def _new_id(self, keyword: str) -> str:
        base = f"{keyword}-{int(self._clock() * 1000)}"
        task_id = base
        n = 2
        while task_id in self._tasks:
            task_id = f"{base}-{n}"
            n += 1
        return task_id

    def _require(self, task_id: str) -> BulkSearchTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def _transition(self, task: BulkSearchTask, expected: TaskStatus, target: TaskStatus) -> None:
        if task.status != expected:
            raise InvalidTransition(f"task {task.id}: cannot go {task.status.value} -> {target.value}")
        task.status = target

    def create(self, keyword: str, regions: List[str]) -> str:
        task_id = self._new_id(keyword)
        self._tasks[task_id] = BulkSearchTask(
            id=task_id,
            keyword=keyword,
            regions=list(regions),
            progress=TaskProgress(current=0, total=len(regions), percentage=0),
            start_time=self._clock(),
        )
        return task_id

    def start(self, task_id: str) -> None:
        task = self._require(task_id)
        self._transition(task, TaskStatus.PENDING, TaskStatus.RUNNING)
        logger.info("task %s started (%s regions)", task_id, task.progress.total)

    def update_progress(self, task_id: str, current: int, summary: Optional[RegionSummary] = None) -> None:
        task = self._require(task_id)
        if task.status != TaskStatus.RUNNING:
            raise InvalidTransition(f"task {task_id}: progress update while {task.status.value}")
        if current < task.progress.current or current > task.progress.total:
            raise ValueError(
                f"task {task_id}: progress {current} outside [{task.progress.current}, {task.progress.total}]"
            )
        task.progress.current = current
        task.progress.percentage = progress_percentage(current, task.progress.total)
        if summary is not None:
            task.total_results += summary.count
            task.region_results.append(summary)

    def complete(self, task_id: str, result_handle: str) -> None:
        task = self._require(task_id)
        self._transition(task, TaskStatus.RUNNING, TaskStatus.COMPLETED)
        task.end_time = self._clock()
        task.result_handle = result_handle
        task.progress.percentage = progress_percentage(task.progress.current, task.progress.total)
        logger.info("task %s completed: %s results", task_id, task.total_results)

    def fail(self, task_id: str, message: str) -> None:
        task = self._require(task_id)
        self._transition(task, TaskStatus.RUNNING, TaskStatus.FAILED)
        task.end_time = self._clock()
        task.error = message
        logger.error("task %s failed: %s", task_id, message)

    def get(self, task_id: str) -> Optional[BulkSearchTask]:
        return self._tasks.get(task_id)

    def list_by_keyword(self, keyword: str) -> List[BulkSearchTask]:
        return [t for t in self._tasks.values() if t.keyword == keyword]

    def stats(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in TaskStatus}
        for t in self._tasks.values():
            counts[t.status.value] += 1
        return {"total": len(self._tasks), **counts}

    def reap(self, now: Optional[float] = None) -> int:
        """Removes terminal tasks whose end time is older than the retention window."""
        cutoff = (self._clock() if now is None else now) - self.retention_seconds
        expired = [
            task_id
            for task_id, t in self._tasks.items()
            if t.status in TERMINAL_STATUSES and t.end_time is not None and t.end_time < cutoff
        ]
        for task_id in expired:
            del self._tasks[task_id]
        return len(expired)


async def reap_periodically(registry: TaskRegistry, interval_seconds: float) -> None:
    """Runs `registry.reap()` every `interval_seconds` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        removed = registry.reap()
        if removed:
            logger.info("reaped %s expired tasks", removed)
