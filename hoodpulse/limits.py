"""Per-user turn rate limiting."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-window counter: at most ``max_turns`` per user per ``window``."""

    def __init__(
        self,
        *,
        max_turns: int = 15,
        window: timedelta = timedelta(hours=1),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._max = max_turns
        self._window = window
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._windows: dict[str, tuple[datetime, int]] = {}

    def allow(self, user_id: str) -> bool:
        """Count one turn for *user_id*; False once the window is used up."""
        now = self._clock()
        started, count = self._windows.get(user_id, (now, 0))
        if now - started >= self._window:
            started, count = now, 0
        if count >= self._max:
            logger.info("Rate limit hit for %s (%d turns)", user_id, count)
            return False
        self._windows[user_id] = (started, count + 1)
        return True

    def sweep(self) -> int:
        now = self._clock()
        expired = [uid for uid, (started, _) in self._windows.items() if now - started >= self._window]
        for uid in expired:
            del self._windows[uid]
        return len(expired)
