"""Logging utilities for the pipeline."""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from rich.logging import RichHandler
from rich.console import Console

console = Console()

def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Set up a logger with rich formatting.

    Args:
        name: Logger name
        level: Logging level

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid adding multiple handlers
    if not logger.handlers:
        handler = RichHandler(
            rich_tracebacks=True,
            console=console,
            show_time=True,
            show_path=False
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    return logger


class LogEntry(BaseModel):
    """A single timestamped run log message."""
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    level: str = "INFO"
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)


class RunLog:
    """Diagnostic log for one extraction run.

    Entries are kept in memory for the caller to store or download, and are
    also forwarded to a regular logger so they show up on the console.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        """Initialize run log.

        Args:
            logger: Logger that entries are forwarded to
        """
        self.entries: List[LogEntry] = []
        self._logger = logger or setup_logger("bookboard.run")

    def log(self, message: str, level: int = logging.INFO, **data: Any) -> LogEntry:
        """Record a message with optional structured data.

        Args:
            message: Human readable message
            level: Logging level
            **data: Context such as chunk range or lengths

        Returns:
            The recorded entry
        """
        entry = LogEntry(
            level=logging.getLevelName(level),
            message=message,
            data=data
        )
        self.entries.append(entry)

        if data:
            self._logger.log(level, f"{message} {json.dumps(data, default=str)}")
        else:
            self._logger.log(level, message)

        return entry

    def warning(self, message: str, **data: Any) -> LogEntry:
        return self.log(message, logging.WARNING, **data)

    def error(self, message: str, **data: Any) -> LogEntry:
        return self.log(message, logging.ERROR, **data)

    def clear(self) -> None:
        self.entries = []

    def to_text(self) -> str:
        """Render entries as plain text for download or storage."""
        blocks = []
        for entry in self.entries:
            line = f"[{entry.timestamp}] {entry.message}"
            if entry.data:
                line += "\n" + json.dumps(entry.data, indent=2, default=str)
            blocks.append(line)
        return "\n\n".join(blocks)

    def __len__(self) -> int:
        return len(self.entries)
