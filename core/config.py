import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    APP_NAME: str = "TaskFlow"

    # Database
    MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    DB_NAME: str = os.getenv("DB_NAME", "tracker")
    TASKS_COLLECTION: str = os.getenv("TASKS_COLLECTION", "todos")
    STORE_BACKEND: str = os.getenv("STORE_BACKEND", "mongo") # 'mongo' or 'memory'
    STORE_TIMEOUT_MS: int = int(os.getenv("STORE_TIMEOUT_MS", "5000"))

    # Frontend
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")

    # Local day boundaries for daily tasks are computed in this zone
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Kolkata")

    # Task Configuration
    TASK_TEXT_MAX_LENGTH: int = 500
    # Off: any state may move to any other state.
    # On: only pending->active, active->completed/failed, completed/failed->reactivate.
    STRICT_TRANSITIONS: bool = False

    # Sweeps (overdue scan + daily reset)
    SWEEP_ENABLED: bool = True
    SWEEP_INTERVAL_MINUTES: int = int(os.getenv("SWEEP_INTERVAL_MINUTES", "15"))
    OVERDUE_ACTION: str = os.getenv("OVERDUE_ACTION", "fail") # 'fail', 'reactivate' or 'none'
    OVERDUE_REACTIVATE_HOURS: int = 24

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "")

    # Pydantic Settings Config
    model_config = {"env_file": ".env", "extra": "ignore"}

settings = Settings()
