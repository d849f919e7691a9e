import random
from dataclasses import replace

import pytest

from gatc_extractor.config import ExtractorConfig
from gatc_extractor.records import BLOCKED, ERROR, LINK, NAME, NOT_FOUND, SKIP, ExtractionRecord, WorkItem
from gatc_extractor.retry import RetryController, backoff_delay_s, is_acceptable

PLAY = "https://play.google.com/store/apps/details?id=com.acme"
ITEM = WorkItem("https://adstransparency.google.com/x", frozenset({LINK, NAME}))
MISSING = ExtractionRecord.for_item(ITEM)
FULL = ExtractionRecord(link=PLAY, name="Acme", video_id=SKIP)


class ScriptedRunner:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.attempts = []

    async def __call__(self, item, *, attempt):
        self.attempts.append(attempt)
        outcome = self.outcomes[min(len(self.attempts), len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _controller(runner, **config):
    sleeps = []

    async def sleep(seconds):
        sleeps.append(seconds)

    cfg = replace(ExtractorConfig(backoff_jitter_ms=0), **config)
    return RetryController(runner, cfg, rng=random.Random(0), sleep=sleep), sleeps


def test_is_acceptable():
    assert is_acceptable(ITEM, FULL)
    assert is_acceptable(ITEM, ExtractionRecord.filled(BLOCKED))
    partial = MISSING.fill(NAME, "Acme")
    assert is_acceptable(ITEM, partial, accept_partial=True)
    assert not is_acceptable(ITEM, partial, accept_partial=False)
    assert not is_acceptable(ITEM, ExtractionRecord.error_for(ITEM))


def test_backoff_grows_by_multiplier():
    config = ExtractorConfig(backoff_base_ms=2000, backoff_multiplier=1.5, backoff_jitter_ms=0)
    rng = random.Random(0)
    assert backoff_delay_s(config, 1, rng) == 2.0
    assert backoff_delay_s(config, 2, rng) == 3.0


@pytest.mark.asyncio
async def test_complete_record_accepted_without_sleep():
    runner = ScriptedRunner(FULL)
    controller, sleeps = _controller(runner)
    result = await controller.run_with_retry(ITEM)
    assert result.record == FULL
    assert result.attempts == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_blocked_is_not_retried():
    runner = ScriptedRunner(ExtractionRecord.filled(BLOCKED), FULL)
    controller, sleeps = _controller(runner)
    result = await controller.run_with_retry(ITEM)
    assert result.record.is_blocked
    assert runner.attempts == [1]
    assert sleeps == []


@pytest.mark.asyncio
async def test_exhaustion_yields_not_found():
    runner = ScriptedRunner(MISSING)
    controller, sleeps = _controller(runner)
    result = await controller.run_with_retry(ITEM)
    assert result.record.as_dict()[LINK] == NOT_FOUND
    assert result.record.as_dict()[NAME] == NOT_FOUND
    assert runner.attempts == [1, 2, 3]
    assert sleeps == [2.0, 3.0]


@pytest.mark.asyncio
async def test_errors_and_exceptions_degrade_to_not_found():
    runner = ScriptedRunner(ExtractionRecord.error_for(ITEM), RuntimeError("page crashed"))
    controller, _ = _controller(runner)
    result = await controller.run_with_retry(ITEM)
    assert result.record.link == NOT_FOUND
    assert ERROR not in result.record.as_dict().values()


@pytest.mark.asyncio
async def test_transient_error_then_success():
    runner = ScriptedRunner(ExtractionRecord.error_for(ITEM), FULL)
    controller, sleeps = _controller(runner)
    result = await controller.run_with_retry(ITEM)
    assert result.record == FULL
    assert result.attempts == 2
    assert len(sleeps) == 1


@pytest.mark.asyncio
async def test_strict_policy_merges_attempts():
    runner = ScriptedRunner(MISSING.fill(NAME, "Acme"), MISSING.fill(LINK, PLAY))
    controller, _ = _controller(runner, accept_partial=False)
    result = await controller.run_with_retry(ITEM)
    assert (result.record.name, result.record.link) == ("Acme", PLAY)
    assert result.attempts == 2
