from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, AliasGenerator, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from models.common import PyObjectId
from core.time_utils import ensure_aware


class TaskType(str, Enum):
    ONE_TIME = "one-time"
    DAILY = "daily"


class TaskState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


# Set-once timestamp written by each transition
STATE_STAMP_FIELDS = {
    TaskState.ACTIVE: "activated_at",
    TaskState.COMPLETED: "completed_at",
    TaskState.FAILED: "failed_at",
}


class Task(BaseModel):
    """
    A unit of work.

    - 'one-time': has a due date (`due_at`), overdue once past it while active.
    - 'daily': no due date, counts as done for the local day it was activated in.

    Storage uses the snake_case field names and Mongo's `_id`; the API
    serializes camelCase with the identity exposed as `id`.

    Lineage:
    - `original_id` points at the task this one was reactivated from.
    - `is_reactivation` marks reactivated copies.
    """
    model_config = ConfigDict(
        alias_generator=AliasGenerator(
            validation_alias=lambda name: AliasChoices(name, to_camel(name)),
            serialization_alias=to_camel,
        ),
        use_enum_values=True,
    )

    id: Optional[PyObjectId] = Field(
        default=None,
        validation_alias=AliasChoices("_id", "id"),
        serialization_alias="id",
    )
    text: str
    type: TaskType
    state: TaskState = TaskState.PENDING
    due_at: Optional[datetime] = None

    created_at: datetime
    updated_at: datetime
    activated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    # Reactivation lineage
    original_id: Optional[PyObjectId] = None
    is_reactivation: bool = False

    @field_validator('due_at', 'created_at', 'updated_at', 'activated_at', 'completed_at', 'failed_at')
    @classmethod
    def assume_utc(cls, dt: Optional[datetime]):
        return ensure_aware(dt)

    @field_serializer('due_at', 'created_at', 'updated_at', 'activated_at', 'completed_at', 'failed_at', when_used='json')
    def serialize_dt(self, dt: Optional[datetime], _info):
        if dt is None: return None
        return dt.isoformat()

    def to_document(self) -> dict:
        """Mongo document without `_id` (the store assigns it)."""
        return self.model_dump(exclude={"id"})


class TaskCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    text: str
    type: TaskType
    due_at: Optional[datetime] = None


class TaskUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    text: Optional[str] = None
    due_at: Optional[datetime] = None


class TaskReactivate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    new_due_at: Optional[datetime] = None


class GroupedTasks(BaseModel):
    pending: List[Task] = []
    active: List[Task] = []
    completed: List[Task] = []
    failed: List[Task] = []
