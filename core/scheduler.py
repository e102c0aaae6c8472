import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from core.errors import TaskError
from core.lifecycle import TaskLifecycleEngine
from core.scheduling import finished_daily_query, is_active_for_day, is_overdue, missed_daily_query, stale_daily_query
from models.task import TaskState

logger = logging.getLogger(__name__)

OVERDUE_ACTIONS = ("fail", "reactivate", "none")

async def run_overdue_sweep(engine: TaskLifecycleEngine, action: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    """
    Handles one-time tasks that are active and past due.

    Actions:
    - 'fail': mark each overdue task failed.
    - 'reactivate': fail it, then spawn a fresh active copy due
      OVERDUE_REACTIVATE_HOURS from now.
    - 'none': only report.

    A failure on one task is logged and the sweep moves on; a failure to
    fetch the overdue list propagates.
    """
    action = action or settings.OVERDUE_ACTION
    if action not in OVERDUE_ACTIONS:
        raise ValueError(f"Unknown overdue action '{action}'")
    now = now or engine.now()

    overdue = await engine.find_overdue(now)
    summary = {"overdue": len(overdue), "failed": 0, "reactivated": 0, "errors": 0}
    if overdue:
        logger.info("Overdue sweep found %d task(s) action=%s", len(overdue), action)

    for task in overdue:
        if not is_overdue(task, now):
            logger.warning("Store returned task %s as overdue but it is not; skipping", task.id)
            continue
        try:
            if action in ("fail", "reactivate"):
                await engine.fail(task.id)
                summary["failed"] += 1
            if action == "reactivate":
                new_due_at = now + timedelta(hours=settings.OVERDUE_REACTIVATE_HOURS)
                await engine.reactivate(task.id, new_due_at=new_due_at)
                summary["reactivated"] += 1
        except TaskError:
            logger.exception("Overdue sweep failed for task %s", task.id)
            summary["errors"] += 1

    return summary

async def run_daily_reset(engine: TaskLifecycleEngine, now: Optional[datetime] = None) -> dict:
    """
    Rolls daily tasks over to the current local day.

    1. Daily tasks still active from a previous day were missed: fail them.
    2. Missed tasks failed today without a fresh instance get one. This
       also picks up tasks whose reactivation failed on an earlier run.
    3. Daily tasks completed or failed on a previous day that have no
       reactivation yet get one for today.
    """
    now = now or engine.now()
    summary = {"missed": 0, "renewed": 0, "errors": 0}

    stale = await engine.store.find(stale_daily_query(now, engine.tz))
    for task in stale:
        if is_active_for_day(task, now, engine.tz):
            logger.warning("Store returned task %s as stale but it is active today; skipping", task.id)
            continue
        try:
            await engine.fail(task.id)
        except TaskError:
            logger.exception("Daily reset failed to fail missed task %s", task.id)
            summary["errors"] += 1

    missed = await engine.store.find(missed_daily_query(now, engine.tz))
    for task in missed:
        try:
            if await engine.find_reactivations(task.id):
                continue
            await engine.reactivate(task.id)
            summary["missed"] += 1
        except TaskError:
            logger.exception("Daily reset failed for missed task %s", task.id)
            summary["errors"] += 1

    for state in (TaskState.COMPLETED, TaskState.FAILED):
        finished = await engine.store.find(finished_daily_query(state, now, engine.tz))
        for task in finished:
            try:
                if await engine.find_reactivations(task.id):
                    continue
                await engine.reactivate(task.id)
                summary["renewed"] += 1
            except TaskError:
                logger.exception("Daily reset failed for task %s", task.id)
                summary["errors"] += 1

    if summary["missed"] or summary["renewed"]:
        logger.info("Daily reset: %d missed, %d renewed", summary["missed"], summary["renewed"])
    return summary

async def run_sweeps(engine: TaskLifecycleEngine):
    now = engine.now()
    logger.debug("[%s] Running task sweeps...", now)
    await run_overdue_sweep(engine, now=now)
    await run_daily_reset(engine, now=now)

def create_scheduler(engine: TaskLifecycleEngine) -> AsyncIOScheduler:
    """Interval job that drives both sweeps. The caller starts and shuts it down."""
    scheduler = AsyncIOScheduler(timezone=engine.tz)
    scheduler.add_job(
        run_sweeps,
        IntervalTrigger(minutes=settings.SWEEP_INTERVAL_MINUTES),
        args=[engine],
        id="task_sweeps",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    return scheduler
