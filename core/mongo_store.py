import logging
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import ValidationError as PydanticValidationError
from pymongo import ASCENDING, DESCENDING, TEXT, IndexModel, ReturnDocument
from pymongo.errors import PyMongoError

from core.errors import StoreError
from core.store import state_values
from models.query import TaskQuery, TimeRange
from models.task import Task, TaskState, STATE_STAMP_FIELDS

logger = logging.getLogger(__name__)

# Overdue and daily-window sweeps run often; none of their lookups may scan the collection.
INDEXES = [
    IndexModel([("state", ASCENDING), ("created_at", DESCENDING)], name="state_created_at"),
    IndexModel([("type", ASCENDING), ("state", ASCENDING), ("created_at", DESCENDING)], name="type_state_created_at"),
    IndexModel([("due_at", ASCENDING)], name="due_at"),
    IndexModel([("activated_at", ASCENDING)], name="activated_at"),
    IndexModel([("completed_at", DESCENDING)], name="completed_at"),
    IndexModel([("failed_at", DESCENDING)], name="failed_at"),
    IndexModel([("original_id", ASCENDING)], name="original_id"),
    IndexModel([("text", TEXT)], name="text_search"),
]


def _range_filter(time_range: TimeRange) -> dict:
    cond = {}
    if time_range.start is not None:
        cond["$gte"] = time_range.start
    if time_range.end is not None:
        cond["$lt"] = time_range.end
    if not cond:
        # Open on both sides still means "has a value"
        cond["$ne"] = None
    return cond


def build_filter(query: TaskQuery) -> dict:
    """Translate a TaskQuery into a Mongo filter document."""
    flt = {}
    if query.state is not None:
        flt["state"] = query.state
    if query.type is not None:
        flt["type"] = query.type
    for field in ("due_at", "activated_at", "completed_at", "failed_at"):
        time_range = getattr(query, field)
        if time_range is not None:
            flt[field] = _range_filter(time_range)
    if query.original_id is not None:
        flt["original_id"] = query.original_id
    if query.text is not None:
        flt["$text"] = {"$search": query.text}
    return flt


def build_transition_update(state: TaskState, now: datetime) -> list:
    """
    Update pipeline for a state transition. `$ifNull` keeps an existing stamp,
    so the whole set-if-unset happens inside one server-side write.
    """
    state = TaskState(state)
    stamp = STATE_STAMP_FIELDS[state]
    return [
        {"$set": {
            "state": state.value,
            "updated_at": now,
            stamp: {"$ifNull": [f"${stamp}", now]},
        }}
    ]


def _object_id(task_id: str) -> Optional[ObjectId]:
    if not ObjectId.is_valid(task_id):
        return None
    return ObjectId(task_id)


@contextmanager
def _store_errors(operation: str):
    try:
        yield
    except PyMongoError as exc:
        logger.error("Task store %s failed: %s", operation, exc)
        raise StoreError(f"Task store {operation} failed: {exc}") from exc


def _to_task(doc: dict) -> Task:
    try:
        return Task.model_validate(doc)
    except PydanticValidationError as exc:
        raise StoreError(f"Malformed task document {doc.get('_id')}") from exc


class MongoTaskStore:
    """TaskStore backed by a Motor collection."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def ensure_indexes(self) -> None:
        with _store_errors("ensure_indexes"):
            names = await self.collection.create_indexes(INDEXES)
        logger.info("Task indexes ready: %s", ", ".join(names))

    async def insert(self, task: Task) -> Task:
        with _store_errors("insert"):
            result = await self.collection.insert_one(task.to_document())
        task_id = str(result.inserted_id)
        logger.debug("Task inserted id=%s type=%s state=%s", task_id, task.type, task.state)
        return task.model_copy(update={"id": task_id})

    async def get(self, task_id: str) -> Optional[Task]:
        oid = _object_id(task_id)
        if oid is None:
            return None
        with _store_errors("get"):
            doc = await self.collection.find_one({"_id": oid})
        return _to_task(doc) if doc else None

    async def transition(self, task_id, state, now, allowed_from=None):
        oid = _object_id(task_id)
        if oid is None:
            return None
        flt = {"_id": oid}
        allowed = state_values(allowed_from)
        if allowed is not None:
            flt["state"] = {"$in": allowed}
        with _store_errors("transition"):
            doc = await self.collection.find_one_and_update(
                flt,
                build_transition_update(state, now),
                return_document=ReturnDocument.AFTER,
            )
        return _to_task(doc) if doc else None

    async def update_fields(self, task_id, fields, now, allowed_from=None):
        oid = _object_id(task_id)
        if oid is None:
            return None
        flt = {"_id": oid}
        allowed = state_values(allowed_from)
        if allowed is not None:
            flt["state"] = {"$in": allowed}
        with _store_errors("update"):
            doc = await self.collection.find_one_and_update(
                flt,
                {"$set": {**fields, "updated_at": now}},
                return_document=ReturnDocument.AFTER,
            )
        return _to_task(doc) if doc else None

    async def find(self, query: TaskQuery) -> List[Task]:
        with _store_errors("find"):
            cursor = self.collection.find(build_filter(query)).sort("created_at", DESCENDING)
            docs = await cursor.to_list(length=None)
        return [_to_task(doc) for doc in docs]

    async def delete(self, task_id: str) -> bool:
        oid = _object_id(task_id)
        if oid is None:
            return False
        with _store_errors("delete"):
            result = await self.collection.delete_one({"_id": oid})
        return result.deleted_count == 1

    async def delete_many(self, query: TaskQuery) -> int:
        with _store_errors("delete_many"):
            result = await self.collection.delete_many(build_filter(query))
        return result.deleted_count
