"""
Operator-facing decision trace.

Every distribution decision (simulated or committed) produces an ordered list
of timestamped lines explaining what the engine saw and decided. The same
lines are mirrored to the application log.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class DistributionTrace:
    def __init__(self, clock: Optional[Callable[[], datetime]] = None, prefix: str = "") -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._prefix = prefix
        self._lines: List[str] = []

    def log(self, message: str, level: int = logging.INFO) -> None:
        stamp = self._clock().strftime("%H:%M:%S")
        self._lines.append(f"[{stamp}] {message}")
        logger.log(level, "%s%s", self._prefix, message)

    def step(self, number: int, title: str) -> None:
        self.log(f"[STEP {number}] {title}")

    @property
    def lines(self) -> List[str]:
        return list(self._lines)


__all__ = ["DistributionTrace"]
