from uuid import uuid4

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from prospector.jobs.job import JobStatus, JobStatusSnapshot
from prospector.main.config import set_settings
from prospector.main.container import create_container
from prospector.main.exceptions import ErrorCodes
from prospector.main.models import WorkflowStatus
from prospector.server.main import get_application
from prospector.workflows.workflow_service import WorkflowService
from tests.unittests.fakes import (
    InMemoryWorkflowConfigRepository,
    InMemoryWorkflowRepository,
    RecordingProducer,
)

PREFIX = "/api/v1"


class Api:
    def __init__(self, test_settings):
        set_settings(test_settings)
        self.organisation_id = uuid4()
        self.workflow_repo = InMemoryWorkflowRepository()
        self.config_repo = InMemoryWorkflowConfigRepository()
        self.producer = RecordingProducer()

        self.container = create_container(test_settings)
        self.container.workflow_service.override(
            providers.Object(
                WorkflowService(
                    workflow_repo=self.workflow_repo,
                    workflow_config_repo=self.config_repo,
                    producer=self.producer,
                )
            )
        )

        app = get_application()
        app.state.container = self.container
        # Not entered as a context manager, so the lifespan never connects anything
        self.client = TestClient(app)

    @property
    def headers(self):
        return {"X-Organisation-Id": str(self.organisation_id)}


@pytest.fixture
def api(test_settings):
    return Api(test_settings)


def test_run_workflow_returns_accepted(api):
    config = api.config_repo.add(api.organisation_id)

    response = api.client.post(
        f"{PREFIX}/workflow-configs/{config.workflow_config_id}/run", headers=api.headers
    )

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "QUEUED"
    assert body["job_id"] == api.producer.dispatched[0].id
    assert body["workflow_config_id"] == str(config.workflow_config_id)


def test_organisation_header_is_required(api):
    response = api.client.get(f"{PREFIX}/workflows")

    assert response.status_code == 422


def test_unknown_config_maps_to_not_found_error(api):
    response = api.client.post(
        f"{PREFIX}/workflow-configs/{uuid4()}/run", headers=api.headers
    )

    assert response.status_code == 404
    assert response.json() == {
        "message": "Workflow config not found",
        "prospector_error_code": ErrorCodes.NOT_FOUND.value,
    }


def test_list_and_get_workflows(api):
    workflow = api.workflow_repo.add(api.organisation_id, uuid4())
    api.workflow_repo.add(uuid4(), uuid4())

    listed = api.client.get(f"{PREFIX}/workflows", headers=api.headers).json()
    assert listed["total_count"] == 1
    assert listed["items"][0]["workflow_id"] == str(workflow.workflow_id)

    fetched = api.client.get(f"{PREFIX}/workflows/{workflow.workflow_id}", headers=api.headers)
    assert fetched.status_code == 200
    assert fetched.json()["status"] == "QUEUED"


def test_delete_running_workflow_is_rejected(api):
    running = api.workflow_repo.add(api.organisation_id, uuid4(), status=WorkflowStatus.RUNNING)
    queued = api.workflow_repo.add(api.organisation_id, uuid4())

    rejected = api.client.delete(f"{PREFIX}/workflows/{running.workflow_id}", headers=api.headers)
    assert rejected.status_code == 400
    assert rejected.json()["prospector_error_code"] == ErrorCodes.BAD_REQUEST.value

    deleted = api.client.delete(f"{PREFIX}/workflows/{queued.workflow_id}", headers=api.headers)
    assert deleted.status_code == 204


def test_job_status_and_cancel(api):
    api.producer.snapshots["job-1"] = JobStatusSnapshot(
        id="job-1", status=JobStatus.QUEUED, data={"organisation_id": str(api.organisation_id)}
    )

    status_response = api.client.get(f"{PREFIX}/jobs/job-1", headers=api.headers)
    assert status_response.status_code == 200
    assert status_response.json()["status"] == "queued"

    assert api.client.get(f"{PREFIX}/jobs/unknown", headers=api.headers).status_code == 404
    assert api.client.delete(f"{PREFIX}/jobs/job-1", headers=api.headers).status_code == 204
    assert api.producer.cancelled == ["job-1"]


def test_healthz_reports_unavailable_producer(api):
    response = api.client.get("/healthz")

    assert response.status_code == 503
    body = response.json()
    assert body["producer_ready"] is False
    assert body["consumer"]["processing"] is False
