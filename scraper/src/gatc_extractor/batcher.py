"""Fixed-width batches of concurrent items with pacing and block-aware abort."""

from __future__ import annotations

import asyncio
import random
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from .config import ExtractorConfig, uniform_ms
from .logging import jlog, logging_context
from .records import FIELDS, ExtractionRecord, ItemResult, WorkItem, is_resolved
from .session import REASON_BLOCKED, REASON_STORE_ERROR, SessionAborted, SessionGovernor

T = TypeVar("T")

ItemRunner = Callable[[WorkItem], Awaitable[ItemResult]]
BatchWriter = Callable[[list[ItemResult]], Awaitable[object]]


def partition(items: Sequence[T], width: int) -> list[list[T]]:
    if width < 1:
        raise ValueError("batch width must be >= 1")
    return [list(items[i : i + width]) for i in range(0, len(items), width)]


@dataclass
class RunSummary:
    results: list[ItemResult] = field(default_factory=list)
    batches_done: int = 0
    batches_total: int = 0
    abort_reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self.abort_reason is not None


def _tally(results: Sequence[ItemResult]) -> dict[str, int]:
    counts: Counter[str] = Counter()
    for r in results:
        for name in FIELDS:
            if name in r.item.required_fields:
                counts[f"{name}_found" if is_resolved(r.record.get(name)) else f"{name}_missing"] += 1
    return dict(counts)


class ConcurrencyBatcher:
    def __init__(
        self,
        runner: ItemRunner,
        config: ExtractorConfig,
        *,
        writer: BatchWriter,
        governor: SessionGovernor | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.runner = runner
        self.config = config
        self.writer = writer
        self.governor = governor
        self.rng = rng or random.Random()
        self.sleep = sleep

    async def _run_one(self, item: WorkItem) -> ItemResult:
        # Independent start offsets avoid a simultaneous burst of navigations.
        await self.sleep(uniform_ms(self.rng, 0, self.config.stagger_max_ms))
        with logging_context(row=item.row_index):
            try:
                return await self.runner(item)
            except Exception as exc:
                jlog("error", event="item_runner_error", url=item.source_url, error=repr(exc))
                return ItemResult(item=item, record=ExtractionRecord.error_for(item), attempts=0)

    async def run_all(self, items: Sequence[WorkItem]) -> RunSummary:
        batches = partition(items, self.config.batch_width)
        summary = RunSummary(batches_total=len(batches))
        for index, batch in enumerate(batches, start=1):
            try:
                if self.governor is not None:
                    self.governor.check()
                if index > 1:
                    delay = uniform_ms(self.rng, self.config.batch_delay_min_ms, self.config.batch_delay_max_ms)
                    jlog("info", event="batch_pause", delay_s=round(delay, 1))
                    await self.sleep(delay)

                jlog("info", event="batch_start", batch=index, batches=len(batches), size=len(batch))
                results = list(await asyncio.gather(*(self._run_one(item) for item in batch)))
                summary.results.extend(results)
                try:
                    await self.writer(results)
                except SessionAborted:
                    raise
                except Exception as exc:
                    jlog("error", event="batch_write_error", batch=index, error=repr(exc))
                    raise SessionAborted(REASON_STORE_ERROR, repr(exc)) from exc
                summary.batches_done = index
                jlog("info", event="batch_done", batch=index, **_tally(results))

                blocked = [r.source_url for r in results if r.record.is_blocked]
                if blocked:
                    raise SessionAborted(REASON_BLOCKED, f"{len(blocked)} item(s) blocked")
            except SessionAborted as exc:
                jlog("warning", event="run_aborted", reason=exc.reason, detail=exc.detail, batch=index)
                summary.abort_reason = exc.reason
                break
        return summary


__all__ = ["ConcurrencyBatcher", "RunSummary", "partition"]
