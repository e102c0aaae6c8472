"""
Read-side scheduling policies.

Both policies are pure functions of the task, the current time and the local
time zone. Each has a predicate form (for a single task) and a query form
(for the store), and the two must agree.
"""
from datetime import datetime, tzinfo
from typing import Optional

from core.time_utils import local_day_window
from models.query import TaskQuery, TimeRange
from models.task import Task, TaskType, TaskState, STATE_STAMP_FIELDS


def is_overdue(task: Task, now: datetime) -> bool:
    """one-time AND active AND due_at < now"""
    return (
        task.type == TaskType.ONE_TIME
        and task.state == TaskState.ACTIVE
        and task.due_at is not None
        and task.due_at < now
    )


def overdue_query(now: datetime) -> TaskQuery:
    return TaskQuery(
        type=TaskType.ONE_TIME,
        state=TaskState.ACTIVE,
        due_at=TimeRange(end=now),
    )


def is_active_for_day(task: Task, now: datetime, tz: Optional[tzinfo] = None) -> bool:
    """daily AND active AND activated_at within the local day containing `now`"""
    if task.type != TaskType.DAILY or task.state != TaskState.ACTIVE:
        return False
    start, end = local_day_window(now, tz)
    return TimeRange(start=start, end=end).contains(task.activated_at)


def daily_active_query(now: datetime, tz: Optional[tzinfo] = None) -> TaskQuery:
    start, end = local_day_window(now, tz)
    return TaskQuery(
        type=TaskType.DAILY,
        state=TaskState.ACTIVE,
        activated_at=TimeRange(start=start, end=end),
    )


def stale_daily_query(now: datetime, tz: Optional[tzinfo] = None) -> TaskQuery:
    """Daily tasks still active from a previous local day."""
    start, _ = local_day_window(now, tz)
    return TaskQuery(
        type=TaskType.DAILY,
        state=TaskState.ACTIVE,
        activated_at=TimeRange(end=start),
    )


def finished_daily_query(state: TaskState, now: datetime, tz: Optional[tzinfo] = None) -> TaskQuery:
    """Daily tasks that reached `state` (completed or failed) on a previous local day."""
    start, _ = local_day_window(now, tz)
    return TaskQuery(
        type=TaskType.DAILY,
        state=state,
        **{STATE_STAMP_FIELDS[TaskState(state)]: TimeRange(end=start)},
    )


def missed_daily_query(now: datetime, tz: Optional[tzinfo] = None) -> TaskQuery:
    """
    Daily tasks activated on a previous local day and failed today: the ones
    the daily reset failed, including any whose fresh instance was never created.
    """
    start, _ = local_day_window(now, tz)
    return TaskQuery(
        type=TaskType.DAILY,
        state=TaskState.FAILED,
        activated_at=TimeRange(end=start),
        failed_at=TimeRange(start=start),
    )
