import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

from bson import ObjectId

from models.query import TaskQuery
from models.task import Task, TaskState, STATE_STAMP_FIELDS

logger = logging.getLogger(__name__)


class TaskStore(Protocol):
    """
    Durable storage for tasks.

    Every write is atomic per task. `transition` in particular is a single
    conditional read-modify-write: the state's set-once stamp keeps its old
    value if it has one, so racing callers never produce two different stamps.
    `allowed_from`, when given, is part of the condition (the write only
    happens if the current state is in it).
    """

    async def ensure_indexes(self) -> None: ...

    async def insert(self, task: Task) -> Task: ...

    async def get(self, task_id: str) -> Optional[Task]: ...

    async def transition(
        self,
        task_id: str,
        state: TaskState,
        now: datetime,
        allowed_from: Optional[Iterable[TaskState]] = None,
    ) -> Optional[Task]: ...

    async def update_fields(
        self,
        task_id: str,
        fields: dict,
        now: datetime,
        allowed_from: Optional[Iterable[TaskState]] = None,
    ) -> Optional[Task]: ...

    async def find(self, query: TaskQuery) -> List[Task]: ...

    async def delete(self, task_id: str) -> bool: ...

    async def delete_many(self, query: TaskQuery) -> int: ...


def state_values(allowed_from: Optional[Iterable[TaskState]]) -> Optional[List[str]]:
    if allowed_from is None:
        return None
    return [TaskState(s).value for s in allowed_from]


class InMemoryTaskStore:
    """
    Process-local TaskStore. Used for STORE_BACKEND=memory and in tests.

    A single lock serialises every operation, which gives the same per-task
    atomicity as Mongo's find_one_and_update.
    """

    def __init__(self):
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.Lock()

    async def ensure_indexes(self) -> None:
        return

    async def insert(self, task: Task) -> Task:
        with self._lock:
            stored = task.model_copy(update={"id": str(ObjectId())}, deep=True)
            self._tasks[stored.id] = stored
            logger.debug("Task inserted id=%s type=%s state=%s", stored.id, stored.type, stored.state)
            return stored.model_copy(deep=True)

    async def get(self, task_id: str) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task else None

    async def transition(self, task_id, state, now, allowed_from=None):
        state = TaskState(state)
        stamp = STATE_STAMP_FIELDS[state]
        allowed = state_values(allowed_from)
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or (allowed is not None and task.state not in allowed):
                return None
            changes = {"state": state.value, "updated_at": now}
            if getattr(task, stamp) is None:
                changes[stamp] = now
            self._tasks[task_id] = task.model_copy(update=changes)
            return self._tasks[task_id].model_copy(deep=True)

    async def update_fields(self, task_id, fields, now, allowed_from=None):
        allowed = state_values(allowed_from)
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None or (allowed is not None and task.state not in allowed):
                return None
            self._tasks[task_id] = task.model_copy(update={**fields, "updated_at": now})
            return self._tasks[task_id].model_copy(deep=True)

    async def find(self, query: TaskQuery) -> List[Task]:
        with self._lock:
            found = [t.model_copy(deep=True) for t in self._tasks.values() if query.matches(t)]
        # Newest first; insertion order breaks ties the way ObjectIds would
        found.sort(key=lambda t: (t.created_at, t.id), reverse=True)
        return found

    async def delete(self, task_id: str) -> bool:
        with self._lock:
            return self._tasks.pop(task_id, None) is not None

    async def delete_many(self, query: TaskQuery) -> int:
        with self._lock:
            doomed = [task_id for task_id, t in self._tasks.items() if query.matches(t)]
            for task_id in doomed:
                del self._tasks[task_id]
            return len(doomed)
