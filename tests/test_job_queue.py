from __future__ import annotations

import asyncio

import pytest

from opera.models.events import EventType
from opera.services.job_queue import JobQueue, JobStatus


class RecordingWorker:
    def __init__(self):
        self.seen: list[str] = []

    async def execute(self, data, job):
        self.seen.append(data["name"])
        return {"ok": data["name"]}


class FlakyWorker:
    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def execute(self, data, job):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"boom {self.calls}")
        return "done"


class GatedWorker:
    def __init__(self):
        self.gate = asyncio.Event()

    async def execute(self, data, job):
        await self.gate.wait()
        return data


@pytest.mark.asyncio
async def test_higher_priority_runs_first(test_settings, sink):
    queue = JobQueue(sink, config=test_settings)
    worker = RecordingWorker()
    queue.register_worker("record", worker)

    low = queue.add("record", {"name": "low"}, priority=0)
    queue.add("record", {"name": "high"}, priority=5)
    queue.add("record", {"name": "mid"}, priority=1)
    queue.add("record", {"name": "mid-2"}, priority=1)
    await queue.join()

    assert worker.seen == ["high", "mid", "mid-2", "low"]
    assert low.status == JobStatus.COMPLETED
    assert low.result == {"ok": "low"}
    assert len(sink.of(EventType.JOB_COMPLETED)) == 4


@pytest.mark.asyncio
async def test_failed_attempts_are_retried(test_settings, sink):
    queue = JobQueue(sink, config=test_settings)
    queue.register_worker("flaky", FlakyWorker(failures=2))

    job = queue.add("flaky", {"projectId": "p1"})
    await queue.join()

    assert job.status == JobStatus.COMPLETED
    assert job.attempts == 3
    assert job.error is None
    assert job.priority == -2
    assert len(sink.of(EventType.JOB_RETRYING)) == 2
    assert len(sink.of(EventType.JOB_COMPLETED)) == 1
    assert len(sink.of(EventType.JOB_STARTED)) == 3
    # job events are scoped to the job's project
    assert all(e.project_id == "p1" for e in sink.events)


@pytest.mark.asyncio
async def test_job_fails_after_max_attempts(test_settings, sink):
    queue = JobQueue(sink, config=test_settings, max_attempts=2)
    worker = FlakyWorker(failures=10)
    queue.register_worker("flaky", worker)

    job = queue.add("flaky", {})
    await queue.join()

    assert worker.calls == 2
    assert job.status == JobStatus.FAILED
    assert job.error == "boom 2"
    assert job.completed_at is not None
    failed = sink.of(EventType.JOB_FAILED)
    assert len(failed) == 1
    assert failed[0].data["job"]["id"] == job.id


@pytest.mark.asyncio
async def test_unregistered_job_type_fails(test_settings, sink):
    queue = JobQueue(sink, config=test_settings, max_attempts=1)
    job = queue.add("nobody-home", {})
    await queue.join()

    assert job.status == JobStatus.FAILED
    assert "no worker registered" in job.error


@pytest.mark.asyncio
async def test_cancel_only_removes_pending_jobs(test_settings):
    queue = JobQueue(config=test_settings)
    worker = GatedWorker()
    queue.register_worker("gated", worker)

    running = queue.add("gated", {"n": 1})
    waiting = queue.add("gated", {"n": 2})
    while running.status != JobStatus.RUNNING:
        await asyncio.sleep(0)

    assert queue.cancel(running.id) is False
    assert queue.cancel(waiting.id) is True
    assert queue.cancel("job-unknown") is False

    worker.gate.set()
    await queue.join()

    assert running.status == JobStatus.COMPLETED
    assert queue.get_job(waiting.id) is None


@pytest.mark.asyncio
async def test_status_summary(test_settings):
    queue = JobQueue(config=test_settings)
    worker = GatedWorker()
    queue.register_worker("gated", worker)

    first = queue.add("gated", {})
    queue.add("gated", {})
    while first.status != JobStatus.RUNNING:
        await asyncio.sleep(0)

    status = queue.get_status()
    assert status["total"] == 2
    assert status["queued"] == 1
    assert status["processing"] is True
    assert status["current"] == first.id
    assert status["byStatus"] == {"running": 1, "pending": 1}
    assert status["byType"] == {"gated": 2}

    worker.gate.set()
    await queue.join()
    assert queue.get_status()["byStatus"] == {"completed": 2}
    assert queue.get_status()["processing"] is False


@pytest.mark.asyncio
async def test_shutdown_drops_pending_jobs(test_settings):
    queue = JobQueue(config=test_settings)
    queue.register_worker("gated", GatedWorker())

    first = queue.add("gated", {})
    queue.add("gated", {})
    while first.status != JobStatus.RUNNING:
        await asyncio.sleep(0)

    await queue.shutdown()

    assert queue.processing is False
    assert queue.get_status()["queued"] == 0
    assert first.status == JobStatus.FAILED
    assert first.error == "cancelled"


@pytest.mark.asyncio
async def test_jobs_added_after_clear_still_run(test_settings, sink):
    queue = JobQueue(sink, config=test_settings)
    queue.register_worker("gated", GatedWorker())
    queue.register_worker("record", RecordingWorker())

    stuck = queue.add("gated", {})
    while stuck.status != JobStatus.RUNNING:
        await asyncio.sleep(0)

    queue.clear()
    later = queue.add("record", {"name": "later"})
    await queue.join()

    assert later.status == JobStatus.COMPLETED
    assert stuck.status == JobStatus.FAILED
    assert stuck.error == "cancelled"
    failed = sink.of(EventType.JOB_FAILED)
    assert [e.data["job"]["id"] for e in failed] == [stuck.id]


def test_job_to_dict_uses_wire_names():
    from opera.services.job_queue import Job

    payload = Job(type="scrape", data={"a": 1}, priority=5).to_dict()
    assert payload["maxAttempts"] == 3
    assert payload["status"] == "pending"
    assert payload["createdAt"]
