import asyncio
import json
import logging

import pytest

from gatc_extractor.logging import current_context, itemlog, jlog, logging_context, set_global_context


def _payloads(caplog):
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == "extractor"]


def test_jlog_merges_context(caplog):
    caplog.set_level(logging.INFO, logger="extractor")
    set_global_context(app="gatc_extractor", ignored=None)
    with logging_context(script="app_data"):
        jlog("info", event="batch_start", batch=1)
    jlog("warning", event="run_aborted")

    first, second = _payloads(caplog)
    assert first["event"] == "batch_start"
    assert first["app"] == "gatc_extractor"
    assert first["script"] == "app_data"
    assert "ignored" not in first
    assert "script" not in second
    assert "ts" in first


def test_itemlog_carries_url(caplog):
    caplog.set_level(logging.DEBUG, logger="extractor")
    itemlog("item_start", url="https://a", level="debug", attempt=2)
    (payload,) = _payloads(caplog)
    assert payload["url"] == "https://a"
    assert payload["attempt"] == 2


@pytest.mark.asyncio
async def test_scoped_context_is_per_task():
    seen = {}

    async def item(name):
        with logging_context(row=name):
            await asyncio.sleep(0)
            seen[name] = current_context()["row"]

    await asyncio.gather(item(2), item(3))
    assert seen == {2: 2, 3: 3}
    assert "row" not in current_context()
