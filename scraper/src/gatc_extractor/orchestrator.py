"""Per-item extraction: one isolated page, metadata from frames, video id from traffic."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any

from playwright.async_api import Browser
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import ExtractorConfig, scaled_ms, uniform_ms
from .debug import dump_frame_inventory, ensure_debug_html
from .frames import read_advertiser_name, scan_frames
from .interaction import click_trigger
from .logging import itemlog
from .network import NetworkObserver
from .playwright import IsolatedPage, close_quietly, detect_block, human_scroll, open_isolated_page
from .records import (
    BLOCKED,
    ERROR,
    FIELDS,
    LINK,
    NAME,
    NOT_FOUND,
    SKIP,
    VIDEO_ID,
    ExtractionRecord,
    WorkItem,
    is_resolved,
)
from .urls import is_valid_store_link, normalize_store_link

PageOpener = Callable[[Any, ExtractorConfig, random.Random], Awaitable[IsolatedPage]]


def _mark_errors(record: ExtractionRecord, item: WorkItem) -> ExtractionRecord:
    """Requested fields that are still unresolved become ERROR; found values survive.

    An opportunistic video id that was already being looked for counts as requested.
    """

    out = record
    for name in FIELDS:
        if name in item.required_fields and out.get(name) in (NOT_FOUND, SKIP):
            out = out.set(name, ERROR)
    if item.video_allowed and out.video_id == NOT_FOUND:
        out = out.set(VIDEO_ID, ERROR)
    return out


class ExtractionOrchestrator:
    """Drives one browser page through discovery for a single work item."""

    def __init__(
        self,
        browser: Browser | Any,
        config: ExtractorConfig,
        *,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        open_page: PageOpener = open_isolated_page,
        debug_html: bool = False,
        debug_frames: bool = False,
    ) -> None:
        self.browser = browser
        self.config = config
        self.rng = rng or random.Random()
        self.sleep = sleep
        self._open_page = open_page
        self.debug_html = debug_html
        self.debug_frames = debug_frames

    def wants_video(self, item: WorkItem, record: ExtractionRecord) -> bool:
        """Video extraction needs the pass enabled and a valid link, existing or just found."""

        if not self.config.extract_video:
            return False
        if not (item.needs_video_id or item.video_allowed):
            return False
        link = record.link if is_resolved(record.link) else item.existing_link
        return is_valid_store_link(link)

    async def run(self, item: WorkItem, *, attempt: int = 1) -> ExtractionRecord:
        url = item.source_url
        record = ExtractionRecord.for_item(item)
        try:
            isolated = await self._open_page(self.browser, self.config, self.rng)
        except Exception as exc:
            itemlog("page_open_error", url=url, level="error", attempt=attempt, error=str(exc))
            return ExtractionRecord.error_for(item)

        page = isolated.page
        observer = NetworkObserver(label=url)
        try:
            await observer.attach(page)
            itemlog(
                "item_start",
                url=url,
                attempt=attempt,
                needs_metadata=item.needs_metadata,
                needs_video_id=item.needs_video_id,
                viewport=f"{isolated.viewport.width}x{isolated.viewport.height}",
            )
            await self.sleep(uniform_ms(self.rng, self.config.pre_nav_min_ms, self.config.pre_nav_max_ms))
            response = await page.goto(url, wait_until="networkidle", timeout=self.config.nav_timeout_ms)

            content = await page.content()
            reason = detect_block(response.status if response is not None else None, content)
            if reason:
                itemlog("block_detected", url=url, level="warning", reason=reason, attempt=attempt)
                return ExtractionRecord.filled(BLOCKED)
            observer.observe_html(content, source="page_source")

            if self.debug_html:
                await ensure_debug_html(page, url)
            if self.debug_frames:
                itemlog("frame_inventory", url=url, frames=await dump_frame_inventory(page))

            settle_ms = scaled_ms(
                self.rng.uniform(self.config.settle_min_ms, self.config.settle_max_ms),
                self.config.backoff_multiplier,
                attempt,
            )
            await self.sleep(settle_ms / 1000.0)
            await human_scroll(page, self.rng, sleep=self.sleep)

            if item.needs_metadata:
                record = await self._extract_metadata(page, item, record)
            if self.wants_video(item, record):
                record = await self._extract_video(page, item, record, observer, isolated, attempt)

            itemlog("item_done", url=url, attempt=attempt, **record.as_dict())
            return record
        except PlaywrightTimeoutError as exc:
            itemlog("navigation_timeout", url=url, level="warning", attempt=attempt, error=str(exc))
            return _mark_errors(record, item)
        except Exception as exc:
            itemlog("item_error", url=url, level="error", attempt=attempt, error=repr(exc))
            return _mark_errors(record, item)
        finally:
            await close_quietly(page, isolated.context)

    async def _extract_metadata(self, page: Any, item: WorkItem, record: ExtractionRecord) -> ExtractionRecord:
        blacklist = await read_advertiser_name(page) or item.advertiser_name
        found = await scan_frames(page.frames, blacklist, min_size=self.config.min_frame_px)
        record = record.fill(NAME, found.name).fill(LINK, normalize_store_link(found.link))
        itemlog(
            "metadata_extracted",
            url=item.source_url,
            name=record.name,
            link=record.link,
            name_strategy=found.name_strategy,
            link_strategy=found.link_strategy,
        )
        return record

    async def _extract_video(
        self,
        page: Any,
        item: WorkItem,
        record: ExtractionRecord,
        observer: NetworkObserver,
        isolated: IsolatedPage,
        attempt: int,
    ) -> ExtractionRecord:
        url = item.source_url
        if record.video_id == SKIP:
            record = record.set(VIDEO_ID, NOT_FOUND)
        if observer.has_video_id:
            return record.fill(VIDEO_ID, observer.video_id)

        try:
            await click_trigger(
                page,
                self.rng,
                viewport=(isolated.viewport.width, isolated.viewport.height),
                sleep=self.sleep,
                label=url,
            )
        except Exception as exc:
            itemlog("click_failed", url=url, level="warning", attempt=attempt, error=str(exc))
            return record.set(VIDEO_ID, ERROR) if record.video_id == NOT_FOUND else record

        async def _probe() -> None:
            try:
                observer.observe_html(await page.content(), source="page_source_after_click")
            except Exception as exc:
                itemlog("page_content_error", url=url, level="debug", error=str(exc))

        wait_s = scaled_ms(self.config.video_wait_ms, self.config.backoff_multiplier, attempt) / 1000.0
        video_id = await observer.wait_for_video_id(
            wait_s,
            self.config.video_poll_ms / 1000.0,
            probe=_probe,
            sleep=self.sleep,
        )
        if not video_id:
            await _probe()
            video_id = observer.video_id
        if not video_id:
            itemlog("video_id_missing", url=url, attempt=attempt)
        return record.fill(VIDEO_ID, video_id)


__all__ = ["ExtractionOrchestrator"]
