import logging
from datetime import datetime, tzinfo
from typing import Callable, List, Optional

from core.config import settings
from core.errors import NotFoundError, TransitionError, ValidationError
from core.scheduling import daily_active_query, overdue_query
from core.store import TaskStore
from core.time_utils import LOCAL_TZ, ensure_aware, get_current_time
from models.query import TaskQuery
from models.task import GroupedTasks, Task, TaskState, TaskType

logger = logging.getLogger(__name__)

# Used only when strict transitions are on: operation -> states it may start from
ALLOWED_TRANSITIONS = {
    "activate": (TaskState.PENDING,),
    "complete": (TaskState.ACTIVE,),
    "fail": (TaskState.ACTIVE,),
    "reactivate": (TaskState.COMPLETED, TaskState.FAILED),
    "update": (TaskState.PENDING, TaskState.ACTIVE),
}


def _coerce(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {enum_cls.__name__} '{value}', expected one of: {allowed}") from None


class TaskLifecycleEngine:
    """
    Owns the task state machine and the two scheduling policies.

    The engine keeps no state between calls; everything durable lives in the
    store. Every write goes through `validate` first, and every transition is
    handed to the store as one atomic conditional update.

    `clock` returns the current aware datetime. Tests pass a fake one;
    `find_overdue` and `find_daily_active_today` also take an explicit `now`.
    """

    def __init__(
        self,
        store: TaskStore,
        tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
        strict_transitions: Optional[bool] = None,
        max_text_length: Optional[int] = None,
    ):
        self.store = store
        self.tz = tz or LOCAL_TZ
        self.clock = clock or (lambda: get_current_time(self.tz))
        self.strict_transitions = settings.STRICT_TRANSITIONS if strict_transitions is None else strict_transitions
        self.max_text_length = max_text_length or settings.TASK_TEXT_MAX_LENGTH

    def now(self) -> datetime:
        return self.clock()

    # --- Validation ---

    def validate(self, text: Optional[str], task_type: TaskType, due_at: Optional[datetime]) -> str:
        """Checks a record about to be persisted. Returns the trimmed text."""
        trimmed = (text or "").strip()
        if not trimmed:
            raise ValidationError("Task text cannot be empty")
        if len(trimmed) > self.max_text_length:
            raise ValidationError(f"Task text cannot exceed {self.max_text_length} characters")
        if task_type == TaskType.ONE_TIME and due_at is None:
            raise ValidationError("Due date is required for one-time tasks")
        return trimmed

    def _check_allowed(self, task: Task, operation: str):
        allowed = ALLOWED_TRANSITIONS[operation] if self.strict_transitions else None
        if allowed is not None and task.state not in allowed:
            raise TransitionError(task.id, task.state, operation)
        return allowed

    async def _raise_lost_write(self, task_id: str, operation: str):
        # The conditional write matched nothing: deleted, or moved out of an allowed state.
        latest = await self.store.get(task_id)
        if latest is None:
            raise NotFoundError(task_id)
        raise TransitionError(task_id, latest.state, operation)

    # --- Commands ---

    async def create(self, text: str, task_type, due_at: Optional[datetime] = None) -> Task:
        task_type = _coerce(TaskType, task_type)
        due_at = ensure_aware(due_at)
        if task_type == TaskType.DAILY:
            due_at = None
        text = self.validate(text, task_type, due_at)

        now = self.now()
        task = Task(
            text=text,
            type=task_type,
            state=TaskState.PENDING,
            due_at=due_at,
            created_at=now,
            updated_at=now,
        )
        created = await self.store.insert(task)
        logger.info("Task created id=%s type=%s due_at=%s", created.id, created.type, created.due_at)
        return created

    async def get(self, task_id: str) -> Task:
        task = await self.store.get(task_id)
        if task is None:
            raise NotFoundError(task_id)
        return task

    async def _transition(self, task_id: str, state: TaskState, operation: str) -> Task:
        current = await self.get(task_id)
        self.validate(current.text, current.type, current.due_at)
        allowed = self._check_allowed(current, operation)

        updated = await self.store.transition(task_id, state, self.now(), allowed_from=allowed)
        if updated is None:
            await self._raise_lost_write(task_id, operation)
        logger.info("Task %s id=%s %s -> %s", operation, task_id, current.state, updated.state)
        return updated

    async def activate(self, task_id: str) -> Task:
        return await self._transition(task_id, TaskState.ACTIVE, "activate")

    async def complete(self, task_id: str) -> Task:
        return await self._transition(task_id, TaskState.COMPLETED, "complete")

    async def fail(self, task_id: str) -> Task:
        return await self._transition(task_id, TaskState.FAILED, "fail")

    async def reactivate(self, task_id: str, new_due_at: Optional[datetime] = None) -> Task:
        """
        Spawns a new active task from `task_id`. The source is never modified.
        Every call creates a new record, even for the same source.
        """
        source = await self.get(task_id)
        self._check_allowed(source, "reactivate")

        due_at = ensure_aware(new_due_at) if new_due_at is not None else source.due_at
        if source.type == TaskType.DAILY:
            due_at = None
        text = self.validate(source.text, source.type, due_at)

        now = self.now()
        task = Task(
            text=text,
            type=source.type,
            state=TaskState.ACTIVE,
            due_at=due_at,
            created_at=now,
            updated_at=now,
            activated_at=now,
            original_id=source.id,
            is_reactivation=True,
        )
        created = await self.store.insert(task)
        logger.info("Task reactivated id=%s from=%s due_at=%s", created.id, source.id, created.due_at)
        return created

    async def update(self, task_id: str, text: Optional[str] = None, due_at: Optional[datetime] = None) -> Task:
        """Edit text and/or due date. Daily tasks silently drop a due date."""
        current = await self.get(task_id)
        allowed = self._check_allowed(current, "update")

        new_due_at = current.due_at if due_at is None else ensure_aware(due_at)
        if current.type == TaskType.DAILY:
            new_due_at = None
        new_text = self.validate(current.text if text is None else text, current.type, new_due_at)

        fields = {}
        if text is not None:
            fields["text"] = new_text
        if new_due_at != current.due_at:
            fields["due_at"] = new_due_at
        if not fields:
            return current

        updated = await self.store.update_fields(task_id, fields, self.now(), allowed_from=allowed)
        if updated is None:
            await self._raise_lost_write(task_id, "update")
        logger.info("Task updated id=%s fields=%s", task_id, sorted(fields))
        return updated

    # --- Queries ---

    async def find_by_state(self, state) -> List[Task]:
        return await self.store.find(TaskQuery(state=_coerce(TaskState, state)))

    async def find_by_type(self, task_type) -> List[Task]:
        return await self.store.find(TaskQuery(type=_coerce(TaskType, task_type)))

    async def find_active_by_type(self, task_type) -> List[Task]:
        return await self.store.find(TaskQuery(type=_coerce(TaskType, task_type), state=TaskState.ACTIVE))

    async def find_overdue(self, now: Optional[datetime] = None) -> List[Task]:
        """One-time tasks that are active and past due."""
        return await self.store.find(overdue_query(ensure_aware(now) or self.now()))

    async def find_daily_active_today(self, now: Optional[datetime] = None) -> List[Task]:
        """Daily tasks that are active and were activated during the local day of `now`."""
        return await self.store.find(daily_active_query(ensure_aware(now) or self.now(), self.tz))

    async def find_reactivations(self, task_id: str) -> List[Task]:
        return await self.store.find(TaskQuery(original_id=task_id))

    async def search(self, text: str) -> List[Task]:
        if not text or not text.strip():
            raise ValidationError("Search text cannot be empty")
        return await self.store.find(TaskQuery(text=text.strip()))

    async def find_all_grouped(self) -> GroupedTasks:
        grouped = GroupedTasks()
        for task in await self.store.find(TaskQuery()):
            getattr(grouped, TaskState(task.state).value).append(task)
        return grouped
