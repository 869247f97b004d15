from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class WorkflowStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"


class TransactionType(str, Enum):
    CREDIT = "C"
    DEBIT = "D"


class InDB(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class GeneralError(BaseModel):
    message: str
    prospector_error_code: int


class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    total_count: int
    limit: int
    offset: int
