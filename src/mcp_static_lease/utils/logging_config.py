"""Logging configuration for Leasecraft.

Provides configurable logging with:
- File-based logging with rotation
- Console output for real-time debugging
- Performance timing decorators for UI session analysis
- Structured context (appliance_id, operation type)

Environment Variables:
    LEASECRAFT_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    LEASECRAFT_LOG_FILE: Path to log file (default: ~/.leasecraft/leasecraft.log)
    LEASECRAFT_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    LEASECRAFT_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from mcp_static_lease.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("lease_create")
    async def create(self, entry):
        ...

    # Or use context manager for sections:
    async with timed_section("tool:lease_read", appliance_id="home-gw"):
        ...
"""
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("leasecraft.perf")


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("LEASECRAFT_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".leasecraft" / "leasecraft.log"
    path_str = os.environ.get("LEASECRAFT_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging() -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects LEASECRAFT_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures every UI step)
    - Performance logger for timing metrics
    """
    log_level = get_log_level()
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("LEASECRAFT_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("LEASECRAFT_LOG_BACKUPS", "5"))

    log_file.parent.mkdir(parents=True, exist_ok=True)

    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-25s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    perf_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | PERF | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Console handler - stderr, stdout belongs to the MCP transport
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(main_format)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(main_format)

    perf_log_file = log_file.parent / "leasecraft-perf.log"
    perf_handler = RotatingFileHandler(
        perf_log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    perf_handler.setLevel(logging.DEBUG)
    perf_handler.setFormatter(perf_format)

    root_logger = logging.getLogger("leasecraft")
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    # Package modules log under their import path
    pkg_logger = logging.getLogger("mcp_static_lease")
    pkg_logger.setLevel(logging.DEBUG)
    pkg_logger.addHandler(console_handler)
    pkg_logger.addHandler(file_handler)

    perf_logger.setLevel(logging.DEBUG)
    perf_logger.addHandler(perf_handler)
    perf_logger.addHandler(console_handler)
    perf_logger.propagate = False

    root_logger.info(f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}")
    perf_logger.info(f"Performance logging to: {perf_log_file}")


def _format_perf(operation: str, appliance_id: Optional[str], elapsed: float, status: str) -> str:
    return f"{operation:20s} | {appliance_id or 'N/A':15s} | {elapsed:8.2f}ms | {status}"


def timed(operation: str, appliance_id: Optional[str] = None):
    """Decorator to log execution time of a coroutine function.

    Args:
        operation: Name of the operation (e.g., "lease_read", "session")
        appliance_id: Optional appliance identifier (can also be inferred
            from self.appliance_id)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            app_id = appliance_id
            if app_id is None and args and hasattr(args[0], 'appliance_id'):
                app_id = args[0].appliance_id

            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                elapsed = (time.perf_counter() - start) * 1000  # ms
                perf_logger.info(_format_perf(operation, app_id, elapsed, "OK"))
                return result
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_format_perf(operation, app_id, elapsed, f"FAIL: {e}"))
                raise

        return wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, appliance_id: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Usage:
        async with timed_section("lease_apply", appliance_id="home-gw", changes=3):
            await engine.apply(desired)
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
        elapsed = (time.perf_counter() - start) * 1000
        msg = _format_perf(operation, appliance_id, elapsed, "OK")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.info(msg)
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        msg = _format_perf(operation, appliance_id, elapsed, f"FAIL: {e}")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.warning(msg)
        raise
