"""Shared helpers for the DOS scanner."""

from datetime import datetime
from typing import List

from .logging_config import logger
from .models import Issue, Severity, utc_now

_LOG_METHODS = {
    Severity.INFO: logger.info,
    Severity.WARNING: logger.warning,
    Severity.ERROR: logger.error,
}


def create_and_log_issue(source: str, message: str, severity: Severity = Severity.ERROR) -> Issue:
    """Create an Issue and log it with the level matching its severity."""
    issue = Issue(source=source, message=message, severity=severity)
    _LOG_METHODS[severity](f"{source}: {message}")
    return issue


def collect_messages(error: BaseException) -> str:
    """
    Join the messages of an exception and the exceptions it was raised from.

    Args:
        error: The outermost exception

    Returns:
        Messages in chain order, e.g. "DownloadError: git fetch failed <- CalledProcessError: ..."
    """
    messages: List[str] = []
    seen = set()
    current = error

    while current is not None and id(current) not in seen:
        seen.add(id(current))
        text = str(current).strip()
        messages.append(f"{type(current).__name__}: {text}" if text else type(current).__name__)
        current = current.__cause__ or current.__context__

    return " <- ".join(messages)


def elapsed_time(start_time: datetime) -> str:
    """Format the time passed since start_time as HH:MM:SS."""
    total_seconds = max(int((utc_now() - start_time).total_seconds()), 0)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
