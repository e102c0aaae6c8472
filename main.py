import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from core.config import settings
from core.database import close_client, get_tasks_collection
from core.errors import TaskError
from core.lifecycle import TaskLifecycleEngine
from core.logging_setup import setup_logging
from core.mongo_store import MongoTaskStore
from core.scheduler import create_scheduler
from core.store import InMemoryTaskStore
from routes import tasks

setup_logging(settings.LOG_LEVEL, settings.LOG_FILE or None)
logger = logging.getLogger(__name__)


def build_store():
    if settings.STORE_BACKEND == "memory":
        logger.warning("Using in-memory task store; tasks are lost on restart")
        return InMemoryTaskStore()
    return MongoTaskStore(get_tasks_collection())


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = build_store()
    await store.ensure_indexes()
    engine = TaskLifecycleEngine(store)
    app.state.engine = engine

    scheduler = None
    if settings.SWEEP_ENABLED:
        scheduler = create_scheduler(engine)
        scheduler.start()
        logger.info("Task sweeps scheduled every %d min", settings.SWEEP_INTERVAL_MINUTES)

    logger.info("%s started (store=%s, tz=%s)", settings.APP_NAME, settings.STORE_BACKEND, settings.TIMEZONE)
    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)
    close_client()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# CORS
origins = [
    settings.FRONTEND_URL,
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000", # Common alternative
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(TaskError)
async def task_error_handler(request: Request, exc: TaskError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.error, "message": exc.message},
    )

# Routers
app.include_router(tasks.router)

@app.get("/")
def read_root():
    return {"message": f"Welcome to {settings.APP_NAME} API"}

@app.get("/health")
def health():
    return {"status": "ok"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
