import random

import pytest

from gatc_extractor.batcher import ConcurrencyBatcher, partition
from gatc_extractor.config import MODE_METADATA, ExtractorConfig
from gatc_extractor.reconciler import WorklistReconciler
from gatc_extractor.records import BLOCKED, ERROR, LINK, NAME, NOT_FOUND, SKIP, ExtractionRecord, ItemResult, WorkItem
from gatc_extractor.retry import RetryController
from gatc_extractor.session import LoggingChannel, SessionGovernor

PLAY = "https://play.google.com/store/apps/details?id=com.acme"


def _items(n):
    return [WorkItem(f"https://adstransparency.google.com/{i}", frozenset({LINK, NAME})) for i in range(n)]


class Harness:
    def __init__(self, blocked=(), failing=()):
        self.blocked = set(blocked)
        self.failing = set(failing)
        self.events = []
        self.written = []
        self.sleeps = []

    async def runner(self, item):
        self.events.append(("run", item.source_url))
        if item.source_url in self.failing:
            raise RuntimeError("boom")
        if item.source_url in self.blocked:
            return ItemResult(item, ExtractionRecord.filled(BLOCKED))
        return ItemResult(item, ExtractionRecord(link=PLAY, name="Acme"))

    async def writer(self, results):
        self.events.append(("write", len(results)))
        self.written.append(results)

    async def sleep(self, seconds):
        self.sleeps.append(seconds)

    def batcher(self, governor=None, **config):
        return ConcurrencyBatcher(
            self.runner,
            ExtractorConfig(**config),
            writer=self.writer,
            governor=governor,
            rng=random.Random(0),
            sleep=self.sleep,
        )


def test_partition():
    assert partition(list(range(5)), 2) == [[0, 1], [2, 3], [4]]
    assert partition([], 3) == []
    with pytest.raises(ValueError):
        partition([1], 0)


@pytest.mark.asyncio
async def test_writes_after_each_batch():
    harness = Harness()
    summary = await harness.batcher(batch_width=2).run_all(_items(5))

    assert [len(w) for w in harness.written] == [2, 2, 1]
    assert summary.batches_done == summary.batches_total == 3
    assert not summary.aborted
    assert len(summary.results) == 5
    kinds = [e[0] for e in harness.events]
    assert kinds == ["run", "run", "write", "run", "run", "write", "run", "write"]
    # five start staggers plus two inter-batch pauses
    assert len(harness.sleeps) == 7
    pauses = [s for s in harness.sleeps if s > 2.0]
    assert len(pauses) == 2
    assert all(5.0 <= s <= 12.0 for s in pauses)


@pytest.mark.asyncio
async def test_block_aborts_after_current_batch():
    items = _items(6)
    harness = Harness(blocked={items[0].source_url})
    summary = await harness.batcher(batch_width=2).run_all(items)

    assert summary.abort_reason == "blocked"
    assert len(harness.written) == 1
    assert len(harness.written[0]) == 2
    assert [e for e in harness.events if e[0] == "run"] == [("run", items[0].source_url), ("run", items[1].source_url)]


@pytest.mark.asyncio
async def test_session_budget_checked_before_each_batch():
    ticks = iter([0.0, 0.0, 10.0] + [999.0] * 5)
    governor = SessionGovernor(100, LoggingChannel(), clock=lambda: next(ticks))
    harness = Harness()
    summary = await harness.batcher(governor=governor, batch_width=1).run_all(_items(3))

    assert summary.abort_reason == "time_budget"
    assert summary.batches_done == 2
    assert len(harness.written) == 2


@pytest.mark.asyncio
async def test_runner_exception_becomes_error_record():
    items = _items(1)
    harness = Harness(failing={items[0].source_url})
    summary = await harness.batcher().run_all(items)
    assert summary.results[0].record.link == ERROR
    assert summary.results[0].attempts == 0


def _worklist(make_store, urls):
    store = make_store([["Advertiser", "URL", "Link", "Name", "Video"]] + [["Acme Corp", u] for u in urls])
    return store, WorklistReconciler(store, ExtractorConfig(mode=MODE_METADATA))


@pytest.mark.asyncio
async def test_store_failure_during_write_back_aborts(make_store):
    store, reconciler = _worklist(make_store, ["https://a", "https://b"])

    async def unavailable(column):
        raise RuntimeError("sheets 503")

    store.read_column = unavailable
    harness = Harness()
    batcher = harness.batcher(batch_width=1)
    batcher.writer = reconciler.reconcile_write
    summary = await batcher.run_all(await reconciler.read_pending())

    assert summary.abort_reason == "store_error"
    assert summary.batches_done == 0
    assert [e for e in harness.events if e[0] == "run"] == [("run", "https://a")]
    assert store.writes == []


@pytest.mark.asyncio
async def test_exhausted_item_is_written_and_next_batch_runs(make_store):
    store, reconciler = _worklist(make_store, ["https://a", "https://b"])
    attempts = []

    async def extract(item, *, attempt):
        attempts.append((item.source_url, attempt))
        if item.source_url == "https://a":
            return ExtractionRecord.for_item(item)
        return ExtractionRecord(link=PLAY, name="Acme", video_id=SKIP)

    harness = Harness()
    config = ExtractorConfig(mode=MODE_METADATA, batch_width=1)
    retry = RetryController(extract, config, rng=random.Random(0), sleep=harness.sleep)
    batcher = ConcurrencyBatcher(
        retry.run_with_retry,
        config,
        writer=reconciler.reconcile_write,
        rng=random.Random(0),
        sleep=harness.sleep,
    )
    summary = await batcher.run_all(await reconciler.read_pending())

    assert not summary.aborted
    assert summary.batches_done == 2
    assert [a for u, a in attempts if u == "https://a"] == [1, 2, 3]
    assert store.rows[1][2:4] == [NOT_FOUND, NOT_FOUND]
    assert store.rows[2][2:4] == [PLAY, "Acme"]
    assert await reconciler.read_pending() == []
