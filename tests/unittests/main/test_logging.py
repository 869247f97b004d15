import json
import logging

from prospector.main.job_context import clear_job_context, get_job_context, set_job_context
from prospector.main.logging import ContextJSONFormatter


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="prospector.jobs.consumer",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_includes_job_context_and_extra():
    set_job_context(job_id="job-1", job_name="lead_discovery_handler", workflow_id="wf-1")
    try:
        output = json.loads(ContextJSONFormatter().format(_record("Processing", duration_ms=12)))
    finally:
        clear_job_context()

    assert output["message"] == "Processing"
    assert output["level"] == "info"
    assert output["logger"] == "prospector.jobs.consumer"
    assert output["job_id"] == "job-1"
    assert output["job_name"] == "lead_discovery_handler"
    assert output["workflow_id"] == "wf-1"
    assert output["duration_ms"] == 12
    assert "organisation_id" not in output


def test_formatter_without_context_uses_record_fields():
    clear_job_context()

    output = json.loads(ContextJSONFormatter().format(_record("Enqueued", job_id="job-2")))

    assert output["job_id"] == "job-2"


def test_job_context_keys_can_be_cleared_individually():
    set_job_context(job_id="job-1", workflow_id="wf-1")
    set_job_context(workflow_id=None)
    try:
        assert get_job_context() == {"job_id": "job-1"}
    finally:
        clear_job_context()
    assert get_job_context() == {}
