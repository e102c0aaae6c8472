from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict

from models.task import Task, TaskType, TaskState


class TimeRange(BaseModel):
    """Half-open range [start, end). Either bound may be left open."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def contains(self, dt: Optional[datetime]) -> bool:
        if dt is None:
            return False
        if self.start is not None and dt < self.start:
            return False
        if self.end is not None and dt >= self.end:
            return False
        return True


class TaskQuery(BaseModel):
    """
    Conjunction of filters understood by every task store.
    Unset fields do not filter. Results are ordered by `created_at` descending.
    """
    model_config = ConfigDict(use_enum_values=True)

    state: Optional[TaskState] = None
    type: Optional[TaskType] = None
    due_at: Optional[TimeRange] = None
    activated_at: Optional[TimeRange] = None
    completed_at: Optional[TimeRange] = None
    failed_at: Optional[TimeRange] = None
    original_id: Optional[str] = None
    text: Optional[str] = None  # free-text search terms

    def matches(self, task: Task) -> bool:
        """Python-side evaluation, used by the in-memory store."""
        if self.state is not None and task.state != self.state:
            return False
        if self.type is not None and task.type != self.type:
            return False
        for field in ("due_at", "activated_at", "completed_at", "failed_at"):
            time_range = getattr(self, field)
            if time_range is not None and not time_range.contains(getattr(task, field)):
                return False
        if self.original_id is not None and task.original_id != self.original_id:
            return False
        if self.text is not None:
            # Any term matches, case-insensitive, like a Mongo $text search
            terms = self.text.casefold().split()
            haystack = task.text.casefold()
            if not any(term in haystack for term in terms):
                return False
        return True
