"""Utility modules for retries, logging and auditing."""
from .connection import with_retry, retry_call
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    perf_logger,
)

__all__ = [
    "with_retry",
    "retry_call",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
]
