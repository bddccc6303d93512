from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from loguru import logger

from opera.config import Settings, settings as default_settings
from opera.models.events import EventType
from opera.models.research import utc_now
from opera.services import streaming
from opera.services.errors import WorkerNotRegistered
from opera.services.event_bus import EventSink, NullSink
from opera.services.logger import log_job_event


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class Job:
    type: str
    data: dict[str, Any]
    priority: int = 0
    max_attempts: int = 3
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    result: Any = None
    error: str | None = None
    id: str = field(default_factory=lambda: f"job-{uuid4().hex[:12]}")
    created_at: str = field(default_factory=utc_now)
    started_at: str | None = None
    completed_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "data": self.data,
            "priority": self.priority,
            "status": self.status.value,
            "attempts": self.attempts,
            "maxAttempts": self.max_attempts,
            "result": self.result,
            "error": self.error,
            "createdAt": self.created_at,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
        }


class Worker(Protocol):
    async def execute(self, data: dict[str, Any], job: Job) -> Any: ...


class JobQueue:
    """Priority job runner with retries; one job in flight at a time.

    Higher ``priority`` runs sooner and equal priorities run in insertion
    order. A failed attempt is requeued at ``priority - 1`` until
    ``max_attempts`` is reached.
    """

    def __init__(
        self,
        sink: EventSink | None = None,
        *,
        config: Settings | None = None,
        max_attempts: int | None = None,
        delay: float | None = None,
        history_limit: int = 500,
    ):
        config = config or default_settings
        self.sink = sink or NullSink()
        self.max_attempts = max_attempts or config.job_max_attempts
        self.delay = config.job_delay_seconds if delay is None else delay
        self.history_limit = history_limit
        self._workers: dict[str, Worker] = {}
        self._queue: list[Job] = []
        self._jobs: dict[str, Job] = {}
        self._task: asyncio.Task | None = None
        self._current: Job | None = None

    def register_worker(self, job_type: str, worker: Worker) -> None:
        self._workers[job_type] = worker
        logger.info(f"Worker registered for job type {job_type}")

    @property
    def processing(self) -> bool:
        return self._task is not None and not self._task.done()

    def add(self, job_type: str, data: dict[str, Any], priority: int = 0) -> Job:
        job = Job(type=job_type, data=data, priority=priority, max_attempts=self.max_attempts)
        self._jobs[job.id] = job
        self._insert(job)
        log_job_event(job.id, job.type, "queued", priority=priority, queue_length=len(self._queue))
        self._ensure_running()
        return job

    def _insert(self, job: Job) -> None:
        for index, queued in enumerate(self._queue):
            if queued.priority < job.priority:
                self._queue.insert(index, job)
                return
        self._queue.append(job)

    def _ensure_running(self) -> None:
        if not self.processing:
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while self._queue:
            job = self._queue.pop(0)
            await self._process(job)
            self._prune_history()
            # yield between jobs
            await asyncio.sleep(self.delay)

    async def _process(self, job: Job) -> None:
        self._current = job
        job.status = JobStatus.RUNNING
        job.attempts += 1
        job.started_at = utc_now()
        log_job_event(job.id, job.type, "started", attempt=job.attempts)
        self._emit(EventType.JOB_STARTED, job)
        try:
            worker = self._workers.get(job.type)
            if worker is None:
                raise WorkerNotRegistered(f"no worker registered for job type {job.type!r}")
            result = await worker.execute(job.data, job)
        except asyncio.CancelledError:
            job.status = JobStatus.FAILED
            job.error = "cancelled"
            job.completed_at = utc_now()
            log_job_event(job.id, job.type, "failed", error=job.error, attempts=job.attempts)
            self._emit(EventType.JOB_FAILED, job)
            raise
        except Exception as e:
            job.error = str(e) or type(e).__name__
            if job.attempts < job.max_attempts:
                job.status = JobStatus.PENDING
                job.priority -= 1
                self._insert(job)
                logger.warning(
                    f"Job {job.id} failed (attempt {job.attempts}/{job.max_attempts}), retrying: {job.error}"
                )
                self._emit(EventType.JOB_RETRYING, job)
            else:
                job.status = JobStatus.FAILED
                job.completed_at = utc_now()
                log_job_event(job.id, job.type, "failed", error=job.error, attempts=job.attempts)
                self._emit(EventType.JOB_FAILED, job)
        else:
            job.status = JobStatus.COMPLETED
            job.result = result
            job.error = None
            job.completed_at = utc_now()
            log_job_event(job.id, job.type, "completed", attempts=job.attempts)
            self._emit(EventType.JOB_COMPLETED, job)
        finally:
            if self._current is job:
                self._current = None

    def _emit(self, event: EventType, job: Job) -> None:
        self.sink.emit(streaming.job_event(event, job.to_dict()))

    def _prune_history(self) -> None:
        if len(self._jobs) <= self.history_limit:
            return
        done = [j for j in self._jobs.values() if j.status in (JobStatus.COMPLETED, JobStatus.FAILED)]
        for job in done[: len(self._jobs) - self.history_limit]:
            del self._jobs[job.id]

    def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def get_status(self) -> dict[str, Any]:
        jobs = list(self._jobs.values())
        return {
            "total": len(jobs),
            "queued": len(self._queue),
            "processing": self.processing,
            "current": self._current.id if self._current else None,
            "byStatus": dict(Counter(j.status.value for j in jobs)),
            "byType": dict(Counter(j.type for j in jobs)),
        }

    def cancel(self, job_id: str) -> bool:
        """Remove a job that has not started yet."""
        for index, job in enumerate(self._queue):
            if job.id == job_id and job.status == JobStatus.PENDING:
                del self._queue[index]
                self._jobs.pop(job_id, None)
                log_job_event(job.id, job.type, "cancelled")
                return True
        return False

    def clear(self) -> None:
        """Drop every pending job and stop the loop."""
        for job in self._queue:
            self._jobs.pop(job.id, None)
        dropped = len(self._queue)
        self._queue.clear()
        if self.processing:
            self._task.cancel()
        # a job added from here on starts a fresh loop
        self._task = None
        logger.info(f"Job queue cleared ({dropped} pending jobs dropped)")

    async def join(self) -> None:
        """Wait until the queue is empty and the loop has stopped."""
        while self.processing:
            await asyncio.shield(self._task)

    async def shutdown(self) -> None:
        task = self._task
        self.clear()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
