import pytest
from pydantic import BaseModel

from prospector.jobs.job import Job
from prospector.jobs.registry import JobRegistry
from prospector.main.job_context import get_job_context
from prospector.worker.arq import build_worker_settings


def _function(worker_settings, name):
    return next(f for f in worker_settings.functions if f.name == name)


def test_worker_settings_follow_registry(test_settings):
    registry = JobRegistry()

    async def handler(job):
        return None

    registry.register("lead_discovery_handler", handler, {"concurrency": 3, "lockLifetime": 1_800_000})
    registry.register("report", handler)

    worker_settings = build_worker_settings(registry, test_settings)

    assert worker_settings.max_jobs == 3
    assert worker_settings.retry_jobs is False
    assert worker_settings.max_tries == 1
    assert worker_settings.allow_abort_jobs is True
    assert worker_settings.queue_name == test_settings.arq_queue_name
    assert worker_settings.cron_jobs == []
    assert {f.name for f in worker_settings.functions} == {"lead_discovery_handler", "report"}
    assert _function(worker_settings, "lead_discovery_handler").timeout_s == 1800


def test_max_jobs_falls_back_to_setting(test_settings):
    registry = JobRegistry()

    async def handler(job):
        return None

    registry.register("report", handler)

    worker_settings = build_worker_settings(registry, test_settings)

    assert worker_settings.max_jobs == test_settings.worker_max_jobs


@pytest.mark.asyncio
async def test_function_rebuilds_canonical_job(test_settings):
    registry = JobRegistry()
    received = []

    async def handler(job: Job):
        received.append(job)
        return {"ok": True}

    registry.register("report", handler)
    worker_settings = build_worker_settings(registry, test_settings)
    job = Job.create("report", {"workflow_id": "w-1"})

    result = await _function(worker_settings, "report").coroutine({"job_try": 1}, job.to_message())

    assert result == {"ok": True}
    assert received[0].id == job.id
    assert received[0].data == {"workflow_id": "w-1"}


@pytest.mark.asyncio
async def test_function_returns_models_as_dicts(test_settings):
    registry = JobRegistry()

    class Result(BaseModel):
        leads: int

    async def handler(job: Job):
        return Result(leads=5)

    registry.register("report", handler)
    worker_settings = build_worker_settings(registry, test_settings)

    result = await _function(worker_settings, "report").coroutine({}, Job.create("report").to_message())

    assert result == {"leads": 5}


@pytest.mark.asyncio
async def test_function_binds_job_context_only_while_handler_runs(test_settings):
    registry = JobRegistry()
    seen = []

    async def handler(job: Job):
        seen.append(get_job_context())

    registry.register("report", handler)
    worker_settings = build_worker_settings(registry, test_settings)
    job = Job.create("report", {"workflow_id": "w-1", "organisation_id": "o-1"})

    await _function(worker_settings, "report").coroutine({"job_try": 1}, job.to_message())

    assert seen == [
        {"job_id": job.id, "job_name": "report", "workflow_id": "w-1", "organisation_id": "o-1"}
    ]
    assert get_job_context() == {}
