"""
Logging setup for the Portfolio AI service.

One dictConfig for the whole process: a console handler, a rotating file
handler and a separate error file. Profiles are picked by ENVIRONMENT.
"""
import functools
import inspect
import logging
import logging.config
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_NAMESPACE = "portfolio_ai"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

FORMATS = {
    "simple": "%(levelname)s - %(name)s - %(message)s",
    "detailed": "%(asctime)s | %(levelname)-8s | %(name)-34s | %(funcName)-22s:%(lineno)-4d | %(message)s",
}

# level, console, file, format
PROFILES = {
    "production": (None, True, True, "detailed"),
    "development": ("DEBUG", True, True, "detailed"),
    "testing": ("WARNING", True, False, "simple"),
}

# chatty third-party loggers
QUIET_LOGGERS = {
    "pymongo": "WARNING",
    "motor": "WARNING",
    "httpx": "WARNING",
    "urllib3": "WARNING",
    "pdfminer": "ERROR",
}


def _rotating(filename: Path, level: str) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "detailed",
        "filename": str(filename),
        "maxBytes": MAX_LOG_BYTES,
        "backupCount": LOG_BACKUPS,
        "encoding": "utf8",
    }


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True,
    enable_file: bool = True,
    format_style: str = "detailed",
) -> None:
    """
    Install the process-wide logging config.

    Args:
        level: root level name
        log_file: main log file, defaults to $LOG_DIR/portfolio_ai_<date>.log
        enable_console: log to stdout
        enable_file: log to rotating files (main + errors only)
        format_style: 'simple' or 'detailed'
    """
    log_dir = Path(os.getenv("LOG_DIR", "logs"))
    stamp = datetime.now().strftime("%Y%m%d")
    log_file = Path(log_file) if log_file else log_dir / f"{ROOT_NAMESPACE}_{stamp}.log"

    handlers: Dict[str, Any] = {}
    if enable_console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": format_style if format_style in FORMATS else "detailed",
            "stream": "ext://sys.stdout",
        }
    if enable_file:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers["file"] = _rotating(log_file, level)
        handlers["error_file"] = _rotating(log_dir / f"{ROOT_NAMESPACE}_errors_{stamp}.log", "ERROR")

    names = list(handlers)
    loggers: Dict[str, Any] = {
        "": {"level": level, "handlers": names, "propagate": False},
        "uvicorn": {"level": "INFO", "handlers": [h for h in names if h != "error_file"], "propagate": False},
        "uvicorn.access": {"level": "INFO", "handlers": [h for h in names if h == "console"], "propagate": False},
    }
    for name, quiet_level in QUIET_LOGGERS.items():
        loggers[name] = {"level": quiet_level, "handlers": [], "propagate": True}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {name: {"format": fmt, "datefmt": "%Y-%m-%d %H:%M:%S"} for name, fmt in FORMATS.items()},
        "handlers": handlers,
        "loggers": loggers,
    })

    logger = get_logger("logging")
    logger.info(f"Logging configured - level={level}, handlers={names}")
    if enable_file:
        logger.info(f"Log file: {log_file}")


def get_logger(name: str) -> logging.Logger:
    """Logger under the portfolio_ai namespace."""
    if name.startswith(ROOT_NAMESPACE):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_NAMESPACE}.{name}")


def log_function_call(func):
    """Debug-level entry/exit timing for service entry points, sync or async."""
    logger = get_logger(func.__module__)

    def _done(start: float) -> None:
        logger.debug(f"{func.__name__} finished in {time.perf_counter() - start:.3f}s")

    def _failed(start: float, e: Exception) -> None:
        logger.error(f"{func.__name__} failed after {time.perf_counter() - start:.3f}s: {e}")

    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            logger.debug(f"{func.__name__} called with {len(args)} args, kwargs={list(kwargs)}")
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _failed(start, e)
                raise
            _done(start)
            return result
        return async_wrapper

    @functools.wraps(func)
    def sync_wrapper(*args, **kwargs):
        logger.debug(f"{func.__name__} called with {len(args)} args, kwargs={list(kwargs)}")
        start = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            _failed(start, e)
            raise
        _done(start)
        return result
    return sync_wrapper


def log_api_call(operation: str):
    """Info-level start/finish lines for a route handler."""
    def decorator(func):
        logger = get_logger(f"api.{func.__module__.rsplit('.', 1)[-1]}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            logger.info(f"API {operation} started")
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = time.perf_counter() - start
                logger.error(f"API {operation} failed after {elapsed:.3f}s: {e}", extra={"execution_time": elapsed})
                raise
            elapsed = time.perf_counter() - start
            logger.info(f"API {operation} completed in {elapsed:.3f}s", extra={"execution_time": elapsed})
            return result

        return wrapper
    return decorator


def configure_for_environment():
    """Pick a logging profile from ENVIRONMENT (production, development, testing)."""
    environment = os.getenv("ENVIRONMENT", "development").lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    profile = PROFILES.get(environment)
    if profile is None:
        setup_logging(level=log_level)
        return
    level, console, to_file, style = profile
    setup_logging(level=level or log_level, enable_console=console, enable_file=to_file, format_style=style)


class PerformanceMonitor:
    """Times a block; warns when it runs past `threshold_ms`."""

    def __init__(self, operation_name: str, logger: logging.Logger = None, threshold_ms: float = 1000):
        self.operation_name = operation_name
        self.logger = logger or get_logger("performance")
        self.threshold_ms = threshold_ms
        self.elapsed_ms = 0.0
        self._start = 0.0

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000
        if exc_type is not None:
            self.logger.error(f"{self.operation_name} failed after {self.elapsed_ms:.1f}ms: {exc_val}")
        elif self.elapsed_ms > self.threshold_ms:
            self.logger.warning(
                f"{self.operation_name} took {self.elapsed_ms:.1f}ms (threshold {self.threshold_ms:g}ms)"
            )
        else:
            self.logger.debug(f"{self.operation_name} took {self.elapsed_ms:.1f}ms")
        return False
