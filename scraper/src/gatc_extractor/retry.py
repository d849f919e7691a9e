"""Bounded retries with multiplicative back-off and partial-success acceptance."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable

from .config import ExtractorConfig, scaled_ms
from .logging import itemlog
from .records import ERROR, NOT_FOUND, ExtractionRecord, ItemResult, WorkItem, is_resolved

Runner = Callable[..., Awaitable[ExtractionRecord]]


def is_acceptable(item: WorkItem, record: ExtractionRecord, *, accept_partial: bool = True) -> bool:
    """Whether an attempt ends the retry chain.

    BLOCKED always ends it. Otherwise every requested field must be resolved, or,
    with ``accept_partial``, at least one requested field.
    """

    if record.is_blocked:
        return True
    requested = [record.get(f) for f in item.required_fields]
    if not requested:
        return True
    resolved = [is_resolved(v) for v in requested]
    if all(resolved):
        return True
    return accept_partial and any(resolved)


def backoff_delay_s(config: ExtractorConfig, attempt: int, rng: random.Random) -> float:
    """Delay after failed ``attempt`` (1-based): base * multiplier**(attempt-1) + jitter."""

    base = scaled_ms(config.backoff_base_ms, config.backoff_multiplier, attempt)
    return (base + rng.uniform(0, config.backoff_jitter_ms)) / 1000.0


class RetryController:
    def __init__(
        self,
        runner: Runner,
        config: ExtractorConfig,
        *,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.runner = runner
        self.config = config
        self.rng = rng or random.Random()
        self.sleep = sleep

    async def run_with_retry(self, item: WorkItem) -> ItemResult:
        """Run up to ``max_attempts`` times; exhaustion yields NOT_FOUND, never an exception."""

        best: ExtractionRecord | None = None
        attempts = 0
        for attempt in range(1, self.config.max_attempts + 1):
            attempts = attempt
            try:
                record = await self.runner(item, attempt=attempt)
            except Exception as exc:
                itemlog("attempt_error", url=item.source_url, level="error", attempt=attempt, error=repr(exc))
                record = ExtractionRecord.error_for(item)

            if record.is_blocked:
                return ItemResult(item=item, record=record, attempts=attempt)

            best = record if best is None else best.merge(record)
            if is_acceptable(item, best, accept_partial=self.config.accept_partial):
                return ItemResult(item=item, record=best.settle_errors(), attempts=attempt)

            if attempt < self.config.max_attempts:
                delay = backoff_delay_s(self.config, attempt, self.rng)
                itemlog(
                    "retry_backoff",
                    url=item.source_url,
                    attempt=attempt,
                    delay_s=round(delay, 3),
                    unresolved=sorted(f for f in item.required_fields if best.get(f) in (NOT_FOUND, ERROR)),
                )
                await self.sleep(delay)

        final = (best or ExtractionRecord.for_item(item)).settle_errors()
        itemlog("retries_exhausted", url=item.source_url, level="warning", attempts=attempts, **final.as_dict())
        return ItemResult(item=item, record=final, attempts=attempts)


__all__ = ["RetryController", "backoff_delay_s", "is_acceptable"]
