"""
Per-source failure tracking with a three-strikes exclusion and a 12 hour cooldown.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List

from bookmarkr_news.models.content import ReliabilityState, Source
from bookmarkr_news.utils.date_extraction import utc_now

FAILURE_WINDOW = timedelta(hours=12)
EXCLUSION_THRESHOLD = 3


class ReliabilityTracker:
    """
    Counts consecutive failures per source.

    A failure within ``window`` of the previous one increments the counter,
    otherwise the counter restarts at 1. A source is excluded once the counter
    reaches ``threshold`` and stays excluded until ``window`` has passed since
    its last failure. Only the orchestrator mutates this, after a batch resolves.
    """

    def __init__(
        self,
        window: timedelta = FAILURE_WINDOW,
        threshold: int = EXCLUSION_THRESHOLD,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.window = window
        self.threshold = threshold
        self._clock = clock
        self._states: Dict[str, ReliabilityState] = {}
        self.logger = logging.getLogger(__name__)

    def state(self, source_id: str) -> ReliabilityState:
        return self._states.get(source_id) or ReliabilityState()

    def mark_failing(self, source_id: str) -> ReliabilityState:
        now = self._clock()
        state = self._states.setdefault(source_id, ReliabilityState())
        if state.last_failure_at is not None and now - state.last_failure_at < self.window:
            state.consecutive_failures += 1
        else:
            state.consecutive_failures = 1
        state.last_failure_at = now

        if state.consecutive_failures == self.threshold:
            self.logger.warning(
                f"🚫 Source {source_id} excluded after {state.consecutive_failures} failures "
                f"(retry after {self.window})"
            )
        return state

    def mark_succeeded(self, source_id: str) -> None:
        state = self._states.get(source_id)
        if state is not None and state.consecutive_failures:
            self.logger.info(f"Source {source_id} recovered after {state.consecutive_failures} failures")
            state.consecutive_failures = 0

    def is_excluded(self, source_id: str) -> bool:
        state = self._states.get(source_id)
        if state is None or state.consecutive_failures < self.threshold:
            return False
        return self._clock() - state.last_failure_at < self.window

    def reliable_subset(self, sources: Iterable[Source]) -> List[Source]:
        """Filter out currently excluded sources, preserving order."""
        return [s for s in sources if not self.is_excluded(s.id)]

    def excluded_sources(self) -> List[str]:
        return [source_id for source_id in self._states if self.is_excluded(source_id)]

    def failure_count(self, source_id: str) -> int:
        return self.state(source_id).consecutive_failures

    def snapshot(self) -> Dict[str, ReliabilityState]:
        return {
            source_id: ReliabilityState(s.consecutive_failures, s.last_failure_at)
            for source_id, s in self._states.items()
        }
