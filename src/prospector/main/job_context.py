"""Per-job logging context.

Each consumer task and each arq job runs in its own copy of the context, so
ids bound while a handler runs never leak into sibling jobs.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, Dict, Iterator

if TYPE_CHECKING:
    from prospector.jobs.job import Job


_job_context: ContextVar[Dict[str, Any]] = ContextVar("job_context", default={})

# Payload keys copied into the context when a job starts
JOB_DATA_KEYS = ("workflow_id", "organisation_id")


def get_job_context() -> Dict[str, Any]:
    context = _job_context.get()
    return dict(context) if context else {}


def set_job_context(**values: Any) -> Dict[str, Any]:
    """Merge values into the current context. ``None`` removes the key."""
    current = get_job_context()
    for key, value in values.items():
        if value is None:
            current.pop(key, None)
        else:
            current[key] = value
    _job_context.set(current)
    return current


def clear_job_context() -> None:
    _job_context.set({})


def context_for_job(job: Job) -> Dict[str, Any]:
    context: Dict[str, Any] = {"job_id": job.id, "job_name": job.name}
    for key in JOB_DATA_KEYS:
        value = job.data.get(key)
        if value is not None:
            context[key] = str(value)
    return context


@contextmanager
def job_context(job: Job) -> Iterator[Dict[str, Any]]:
    """Bind the job's ids for the duration of the block.

    Whatever the context held before is restored on exit, including values a
    handler added while it ran.
    """
    token = _job_context.set(context_for_job(job))
    try:
        yield get_job_context()
    finally:
        _job_context.reset(token)
