# labtrack/core/config.py
import os
import sys
import logging
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

project_root = Path(__file__).resolve().parent.parent.parent
dotenv_path = project_root / ".env"

# Real environment variables win over the .env file
if dotenv_path.is_file():
    logger.info(f"Loading environment variables from: {dotenv_path}")
    load_dotenv(dotenv_path=dotenv_path, override=False)
else:
    logger.debug(f".env file not found at {dotenv_path}. Relying on system environment variables.")


class InterceptHandler(logging.Handler):
    """Routes standard library log records into Loguru."""
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging():
    """Configure Loguru sinks and intercept standard logging."""
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    )
    log_file_path = Path(os.getenv("LOG_FILE_PATH", "logs/labtrack_{time:YYYY-MM-DD}.log"))
    log_rotation = os.getenv("LOG_ROTATION", "1 day")
    log_retention = os.getenv("LOG_RETENTION", "7 days")
    log_serialize = os.getenv("LOG_SERIALIZE", "False").lower() == "true"

    logger.remove()
    logger.add(sys.stderr, level=log_level_name, format=log_format, colorize=True)

    try:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file_path,
            level=log_level_name,
            format=log_format,
            rotation=log_rotation,
            retention=log_retention,
            serialize=log_serialize,
            enqueue=True,
            backtrace=True,
            diagnose=False,
            encoding="utf-8",
        )
        logger.info(f"File logging enabled at: {log_file_path}")
    except OSError as e:
        logger.error(f"Failed to setup file logging at {log_file_path}: {e}")

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in list(logging.root.manager.loggerDict):
        if name.startswith(("uvicorn", "fastapi", "starlette", "apscheduler")):
            existing_logger = logging.getLogger(name)
            existing_logger.handlers = [InterceptHandler()]
            existing_logger.propagate = False

    logger.info(f"Logging set up at level {log_level_name}.")


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid {name}. Using default: {default}.")
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid {name}. Using default: {default}.")
        return default


# --- Storage ---
STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "mongo").lower()
MONGODB_URL: str = os.getenv("MONGODB_URL", "")
DATABASE_NAME: str = os.getenv("DATABASE_NAME", "labtrack")

# --- Lifecycle ---
FINE_PER_DAY: float = _float_env("FINE_PER_DAY", 10)
MAX_COMMIT_ATTEMPTS: int = max(1, _int_env("MAX_COMMIT_ATTEMPTS", 5))
RETRY_BASE_DELAY: float = _float_env("RETRY_BASE_DELAY", 0.05)

# --- Scheduler ---
SWEEP_INTERVAL_MINUTES: int = _int_env("SWEEP_INTERVAL_MINUTES", 15)
SCHEDULER_TIMEZONE: str = os.getenv("SCHEDULER_TIMEZONE", "Asia/Manila")
SCHEDULER_ENABLED: bool = os.getenv("SCHEDULER_ENABLED", "True").lower() == "true"

# --- HTTP ---
RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "True").lower() == "true"

# --- Notifications ---
SENDER_NAME: str = os.getenv("SENDER_NAME", "LabTrack")

logger.debug(f"Storage backend: {STORAGE_BACKEND}, database: {DATABASE_NAME}")
logger.debug(f"Fine per day: {FINE_PER_DAY}, commit attempts: {MAX_COMMIT_ATTEMPTS}")
