"""
In-memory log of replication and verification failures.

The log lives for the lifetime of the process. Nothing is persisted and
entries are only removed by ``clear()``; treat it as a diagnostic signal
for operators, not an audit trail.
"""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic_core import to_jsonable_python

logger = logging.getLogger(__name__)


def _serialize_args(args: Any) -> Any:
    """JSON-compatible copy of call arguments; unknown objects fall back to repr."""
    return to_jsonable_python(args, fallback=repr)


@dataclass(frozen=True)
class ErrorLogEntry:
    """
    One recorded failure.

    Attributes:
        timestamp: When the failure was logged
        message: Human-readable summary
        operation: Failed operation name (e.g. "create", "verify")
        args: JSON-compatible copy of the call arguments
        error: Error message
        error_type: Exception class name
        stack: Formatted traceback, if one was available
    """

    message: str
    operation: str
    args: Any = None
    error: str = ""
    error_type: str = ""
    stack: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "operation": self.operation,
            "args": self.args,
            "error": self.error,
            "error_type": self.error_type,
            "stack": self.stack,
        }


class ErrorLog:
    """
    Append-only failure log.

    Example:
        >>> log = ErrorLog()
        >>> try:
        ...     raise RuntimeError("table unavailable")
        ... except RuntimeError as exc:
        ...     log.log("Secondary write failed", "create", {"id": "p1"}, exc)
        >>> [e.operation for e in log.list()]
        ['create']
    """

    def __init__(self) -> None:
        self._entries: list[ErrorLogEntry] = []

    def log(
        self,
        message: str,
        operation: str,
        args: Any = None,
        error: BaseException | None = None,
    ) -> ErrorLogEntry:
        """
        Append an entry.

        Args:
            message: Human-readable summary
            operation: Failed operation name
            args: Call arguments; serialized immediately
            error: The exception that caused the failure

        Returns:
            The new entry
        """
        stack = None
        if error is not None:
            stack = "".join(traceback.format_exception(error))
        entry = ErrorLogEntry(
            message=message,
            operation=operation,
            args=_serialize_args(args),
            error=str(error) if error is not None else "",
            error_type=type(error).__name__ if error is not None else "",
            stack=stack,
        )
        self._entries.append(entry)
        logger.warning("%s (operation=%s): %s", message, operation, entry.error)
        return entry

    def list(self) -> list[ErrorLogEntry]:
        """All entries, oldest first."""
        return list(self._entries)

    def clear(self) -> int:
        """
        Remove every entry.

        Returns:
            Number of entries removed
        """
        count = len(self._entries)
        self._entries.clear()
        if count:
            logger.info("Cleared %d error log entries", count)
        return count

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["ErrorLog", "ErrorLogEntry"]
