"""User-visible notices for warnings and errors."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Linear rate limit exceeded"
RATE_LIMIT_DESCRIPTION = "Please wait a few minutes before retrying."


@dataclass(frozen=True, slots=True)
class Notice:
    level: str
    message: str
    description: str | None
    created_at: datetime


class NoticeBoard:
    """Keeps the most recent notices and mirrors each into the log."""

    def __init__(
        self,
        *,
        limit: int = 50,
        rate_limit_interval: float = 10.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._notices: deque[Notice] = deque(maxlen=limit)
        self._rate_limit_interval = rate_limit_interval
        self._clock = clock or time.monotonic
        self._last_rate_limit: float | None = None

    def _push(self, level: str, message: str, description: str | None) -> Notice:
        notice = Notice(
            level=level,
            message=message,
            description=description,
            created_at=datetime.now(timezone.utc),
        )
        self._notices.append(notice)
        log_method = getattr(logger, level, logger.info)
        log_method(message, extra={"description": description} if description else None)
        return notice

    def info(self, message: str, description: str | None = None) -> Notice:
        return self._push("info", message, description)

    def warning(self, message: str, description: str | None = None) -> Notice:
        return self._push("warning", message, description)

    def error(self, message: str, description: str | None = None) -> Notice:
        return self._push("error", message, description)

    def rate_limited(self) -> Notice | None:
        """Report an exceeded rate limit, at most once per interval."""

        now = self._clock()
        if self._last_rate_limit is not None and now - self._last_rate_limit <= self._rate_limit_interval:
            return None
        self._last_rate_limit = now
        return self.error(RATE_LIMIT_MESSAGE, RATE_LIMIT_DESCRIPTION)

    def recent(self, limit: int | None = None) -> list[Notice]:
        notices = list(self._notices)
        if limit is None:
            return notices
        return notices[-limit:] if limit > 0 else []

    def clear(self) -> None:
        self._notices.clear()


__all__ = ["Notice", "NoticeBoard", "RATE_LIMIT_MESSAGE"]
