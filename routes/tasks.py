from fastapi import APIRouter, Depends, Query, Request, status
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel

from core.errors import NotFoundError, ValidationError
from core.lifecycle import TaskLifecycleEngine
from core.scheduler import run_daily_reset, run_overdue_sweep
from core.time_utils import ensure_aware
from models.query import TaskQuery
from models.task import GroupedTasks, Task, TaskCreate, TaskReactivate, TaskState, TaskType, TaskUpdate

router = APIRouter(prefix="/api/todos", tags=["Todos"])


class TaskResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Task

class TaskListResponse(BaseModel):
    success: bool = True
    count: int
    data: List[Task]

class GroupedResponse(BaseModel):
    success: bool = True
    count: int
    data: GroupedTasks

class DeleteResponse(BaseModel):
    success: bool = True
    message: str
    data: dict

class SweepResponse(BaseModel):
    success: bool = True
    message: str
    data: dict


def get_engine(request: Request) -> TaskLifecycleEngine:
    """The engine is built once at startup (see main.lifespan)."""
    return request.app.state.engine

def _list(tasks: List[Task]) -> TaskListResponse:
    return TaskListResponse(count=len(tasks), data=tasks)

def _require_future(due_at: Optional[datetime], engine: TaskLifecycleEngine, label: str):
    # Client input only; sweeps and the engine itself may use any due date
    if due_at is not None and ensure_aware(due_at) <= engine.now():
        raise ValidationError(f"{label} must be in the future")


@router.get("", response_model=GroupedResponse)
async def get_all_todos(engine: TaskLifecycleEngine = Depends(get_engine)):
    """All tasks grouped by state, newest first within each group."""
    grouped = await engine.find_all_grouped()
    total = len(grouped.pending) + len(grouped.active) + len(grouped.completed) + len(grouped.failed)
    return GroupedResponse(count=total, data=grouped)

@router.get("/overdue", response_model=TaskListResponse)
async def get_overdue_todos(engine: TaskLifecycleEngine = Depends(get_engine)):
    """One-time tasks that are active and past their due date."""
    return _list(await engine.find_overdue())

@router.get("/daily/today", response_model=TaskListResponse)
async def get_daily_active_today(engine: TaskLifecycleEngine = Depends(get_engine)):
    """Daily tasks activated during the current local day."""
    return _list(await engine.find_daily_active_today())

@router.get("/search", response_model=TaskListResponse)
async def search_todos(q: str = Query(..., min_length=1), engine: TaskLifecycleEngine = Depends(get_engine)):
    return _list(await engine.search(q))

@router.get("/state/{state}", response_model=TaskListResponse)
async def get_todos_by_state(state: TaskState, engine: TaskLifecycleEngine = Depends(get_engine)):
    return _list(await engine.find_by_state(state))

@router.get("/type/{task_type}", response_model=TaskListResponse)
async def get_todos_by_type(task_type: TaskType, active: bool = False, engine: TaskLifecycleEngine = Depends(get_engine)):
    """`?active=true` narrows the list to active tasks of that type."""
    if active:
        return _list(await engine.find_active_by_type(task_type))
    return _list(await engine.find_by_type(task_type))

@router.get("/{task_id}", response_model=TaskResponse)
async def get_todo(task_id: str, engine: TaskLifecycleEngine = Depends(get_engine)):
    return TaskResponse(data=await engine.get(task_id))

@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_todo(todo_in: TaskCreate, engine: TaskLifecycleEngine = Depends(get_engine)):
    """
    Create a task in 'pending'.
    One-time tasks need a future `dueAt`; daily tasks ignore it.
    """
    if todo_in.type == TaskType.ONE_TIME:
        _require_future(todo_in.due_at, engine, "Due date")
    task = await engine.create(todo_in.text, todo_in.type, todo_in.due_at)
    return TaskResponse(message="Todo created successfully", data=task)

@router.put("/{task_id}", response_model=TaskResponse)
async def update_todo(task_id: str, todo_in: TaskUpdate, engine: TaskLifecycleEngine = Depends(get_engine)):
    task = await engine.update(task_id, text=todo_in.text, due_at=todo_in.due_at)
    return TaskResponse(message="Todo updated successfully", data=task)

@router.patch("/{task_id}/activate", response_model=TaskResponse)
async def activate_todo(task_id: str, engine: TaskLifecycleEngine = Depends(get_engine)):
    return TaskResponse(message="Todo activated successfully", data=await engine.activate(task_id))

@router.patch("/{task_id}/complete", response_model=TaskResponse)
async def complete_todo(task_id: str, engine: TaskLifecycleEngine = Depends(get_engine)):
    return TaskResponse(message="Todo completed successfully", data=await engine.complete(task_id))

@router.patch("/{task_id}/fail", response_model=TaskResponse)
async def fail_todo(task_id: str, engine: TaskLifecycleEngine = Depends(get_engine)):
    return TaskResponse(message="Todo marked as failed", data=await engine.fail(task_id))

@router.patch("/{task_id}/reactivate", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def reactivate_todo(
    task_id: str,
    body: Optional[TaskReactivate] = None,
    engine: TaskLifecycleEngine = Depends(get_engine),
):
    """
    Spawn a new active task from an existing one.
    The original stays as it is; the new one links back via `originalId`.
    """
    new_due_at = body.new_due_at if body else None
    _require_future(new_due_at, engine, "New due date")
    task = await engine.reactivate(task_id, new_due_at=new_due_at)
    return TaskResponse(message="Todo reactivated successfully", data=task)

# Manual triggers for the scheduled sweeps

@router.post("/process/overdue", response_model=SweepResponse)
async def process_overdue_todos(engine: TaskLifecycleEngine = Depends(get_engine)):
    """Runs the overdue sweep now with the configured OVERDUE_ACTION."""
    summary = await run_overdue_sweep(engine)
    return SweepResponse(message=f"Processed {summary['overdue']} overdue todos", data=summary)

@router.post("/process/daily", response_model=SweepResponse)
async def process_daily_todos(engine: TaskLifecycleEngine = Depends(get_engine)):
    summary = await run_daily_reset(engine)
    return SweepResponse(message=f"Processed {summary['missed'] + summary['renewed']} daily todos", data=summary)

# Administrative deletes go straight to the store; the engine never deletes.

@router.delete("/completed", response_model=DeleteResponse)
async def delete_completed_todos(engine: TaskLifecycleEngine = Depends(get_engine)):
    deleted = await engine.store.delete_many(TaskQuery(state=TaskState.COMPLETED))
    return DeleteResponse(message=f"{deleted} completed todos deleted successfully", data={"deletedCount": deleted})

@router.delete("/failed", response_model=DeleteResponse)
async def delete_failed_todos(engine: TaskLifecycleEngine = Depends(get_engine)):
    deleted = await engine.store.delete_many(TaskQuery(state=TaskState.FAILED))
    return DeleteResponse(message=f"{deleted} failed todos deleted successfully", data={"deletedCount": deleted})

@router.delete("/{task_id}", response_model=DeleteResponse)
async def delete_todo(task_id: str, engine: TaskLifecycleEngine = Depends(get_engine)):
    if not await engine.store.delete(task_id):
        raise NotFoundError(task_id)
    return DeleteResponse(message="Todo deleted successfully", data={"id": task_id})
