"""Canonical job value shared by every producer, consumer and backend."""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from prospector.main.exceptions import JobMessageException


class JobPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobOptions(BaseModel):
    """Enqueue options. Keys the layer does not know about are kept as-is."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    priority: Optional[JobPriority] = None
    concurrency: Optional[int] = Field(default=None, ge=1)
    # Milliseconds
    lock_lifetime: Optional[int] = Field(default=None, alias="lockLifetime")
    unique: Optional[str] = None

    @classmethod
    def coerce(cls, value: Union["JobOptions", dict[str, Any], None]) -> "JobOptions":
        if value is None:
            return cls()
        if isinstance(value, JobOptions):
            return value.model_copy()
        return cls.model_validate(value)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Job(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    data: dict[str, Any] = Field(default_factory=dict)
    options: JobOptions = Field(default_factory=JobOptions)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="createdAt"
    )
    status: JobStatus = JobStatus.QUEUED

    @classmethod
    def create(
        cls,
        name: str,
        data: Optional[dict[str, Any]] = None,
        options: Union[JobOptions, dict[str, Any], None] = None,
    ) -> "Job":
        return cls(
            id=str(uuid4()),
            name=name,
            data=dict(data or {}),
            options=JobOptions.coerce(options),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "data": self.data,
            "options": self.options.to_wire(),
            "createdAt": self.created_at.isoformat(),
            "status": self.status.value,
        }

    def to_message(self) -> str:
        """Serialise to the JSON envelope published on the job channel."""
        return json.dumps(self.to_wire(), default=str)

    @classmethod
    def from_message(cls, raw: Union[str, bytes]) -> "Job":
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise JobMessageException(f"Malformed job message: {e}") from e


class EnqueuedJob(Job):
    """Handle returned to the caller after a job was handed to the transport."""

    # Best-effort count of receivers reported by the transport
    subscribers: int = 0

    @classmethod
    def from_job(cls, job: Job, subscribers: int) -> "EnqueuedJob":
        return cls.model_validate({**job.model_dump(), "subscribers": subscribers})


class JobStatusSnapshot(BaseModel):
    id: str
    name: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus
    enqueued_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    success: Optional[bool] = None


JobHandler = Callable[[Job], Awaitable[Any]]
