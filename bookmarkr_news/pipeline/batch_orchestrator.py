"""
Runs a fetch function across many sources in fixed-size concurrent batches.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from bookmarkr_news.models.content import ContentItem, FetchOutcome, Source
from bookmarkr_news.services.reliability_tracker import ReliabilityTracker
from bookmarkr_news.utils.error_monitoring import ErrorHandler

FetchFn = Callable[[Source], Awaitable[FetchOutcome]]


@dataclass
class BatchReport:
    """What happened during one ``run`` call"""
    family: str
    items: List[ContentItem] = field(default_factory=list)
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    batches: int = 0
    duration_ms: float = 0.0
    failures: Dict[str, str] = field(default_factory=dict)


class BatchOrchestrator:
    """
    Splits sources into groups of ``batch_size``, fetches each group
    concurrently, waits for the whole group, then pauses ``delay`` seconds
    before the next one.

    Reliability state is only touched here, once a batch has fully resolved.
    """

    def __init__(
        self,
        tracker: ReliabilityTracker,
        error_handler: Optional[ErrorHandler] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.tracker = tracker
        self.error_handler = error_handler or ErrorHandler()
        self._sleep = sleep
        self.logger = logging.getLogger(__name__)

    async def process_batches(
        self,
        sources: Sequence[Source],
        batch_size: int,
        fetch_fn: FetchFn,
        delay: float = 1.0,
        family: str = "feed",
    ) -> List[ContentItem]:
        report = await self.run(sources, batch_size, fetch_fn, delay=delay, family=family)
        return report.items

    async def run(
        self,
        sources: Sequence[Source],
        batch_size: int,
        fetch_fn: FetchFn,
        delay: float = 1.0,
        family: str = "feed",
    ) -> BatchReport:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        start = time.monotonic()
        eligible = self.tracker.reliable_subset(sources)
        report = BatchReport(family=family, skipped=len(sources) - len(eligible))
        if report.skipped:
            self.logger.info(f"Skipping {report.skipped} excluded {family} sources")

        total_batches = (len(eligible) + batch_size - 1) // batch_size
        for index in range(0, len(eligible), batch_size):
            batch = eligible[index:index + batch_size]
            report.batches += 1
            self.logger.debug(
                f"Processing {family} batch {report.batches} of {total_batches} ({len(batch)} sources)"
            )

            outcomes = await asyncio.gather(*(self._guarded(fetch_fn, source) for source in batch))
            self._record(outcomes, report)

            if index + batch_size < len(eligible) and delay > 0:
                await self._sleep(delay)

        report.duration_ms = (time.monotonic() - start) * 1000
        self.logger.info(
            f"📥 {family}: {report.succeeded}/{report.attempted} sources ok, "
            f"{len(report.items)} items ({report.duration_ms:.0f}ms)"
        )
        return report

    async def _guarded(self, fetch_fn: FetchFn, source: Source) -> FetchOutcome:
        """Adapters return outcomes; anything raised anyway becomes a failed outcome."""
        try:
            return await fetch_fn(source)
        except Exception as e:
            kind = self.error_handler.classify_kind(e)
            self.logger.warning(f"⚠️ Unexpected error fetching {source.id}: {type(e).__name__}: {e}")
            return FetchOutcome.failure(source.id, e, kind.value)

    def _record(self, outcomes: List[FetchOutcome], report: BatchReport) -> None:
        for outcome in outcomes:
            report.attempted += 1
            if outcome.ok:
                report.succeeded += 1
                report.items.extend(outcome.items)
                self.tracker.mark_succeeded(outcome.source_id)
                continue

            report.failed += 1
            report.failures[outcome.source_id] = outcome.error
            self.tracker.mark_failing(outcome.source_id)
            error_type, _, message = (outcome.error or "").partition(": ")
            self.error_handler.record_failure(
                source_id=outcome.source_id,
                operation=report.family,
                error_type=error_type or "Error",
                error_message=message,
                kind=outcome.error_kind or "unknown",
            )

