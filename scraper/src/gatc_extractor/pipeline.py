"""Worklist extraction pipeline: read pending rows, extract in batches, write back, hand off."""

from __future__ import annotations

import argparse
import asyncio
import os
import random
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from playwright.async_api import async_playwright

from .batcher import ConcurrencyBatcher, RunSummary
from .config import MODE_BOTH, MODES, ExtractorConfig
from .logging import jlog, set_global_context
from .orchestrator import ExtractionOrchestrator
from .playwright import CHROMIUM_LAUNCH_ARGS, close_quietly
from .reconciler import WorklistReconciler
from .records import WorkItem
from .retry import RetryController
from .session import REASON_MORE_ROWS, ContinuationChannel, SessionGovernor, channel_from_env
from .sheets import DEFAULT_SHEET_NAME, GoogleSheetsStore, TabularStore

DEFAULT_CREDENTIALS = os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "credentials.json")

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2


@dataclass(frozen=True)
class CliArgs:
    spreadsheet_id: str
    sheet_name: str
    credentials: str
    mode: str
    limit: int | None
    concurrency: int | None
    max_retries: int | None
    max_runtime_minutes: float | None
    nav_timeout_ms: int | None
    video_wait_ms: int | None
    seed: int | None
    dry_run: bool
    headful: bool
    debug_html: bool
    debug_frames: bool


def parse_args(argv: Sequence[str] | None = None) -> CliArgs:
    p = argparse.ArgumentParser(description="Fill install link, app name and video id for a sheet of ad pages")
    p.add_argument("--spreadsheet-id", default=os.getenv("SPREADSHEET_ID"))
    p.add_argument("--sheet-name", default=os.getenv("SHEET_NAME", DEFAULT_SHEET_NAME))
    p.add_argument("--credentials", default=DEFAULT_CREDENTIALS, help="Service account JSON key file")
    p.add_argument("--mode", choices=list(MODES), default=os.getenv("EXTRACT_MODE", MODE_BOTH))
    p.add_argument("--limit", type=int, help="Process at most N pending rows this run")
    p.add_argument("--concurrency", type=int, help="Pages per batch (overrides CONCURRENT_PAGES)")
    p.add_argument("--max-retries", type=int, help="Attempts per row (overrides MAX_RETRIES)")
    p.add_argument("--max-runtime-minutes", type=float, help="Session budget (overrides MAX_RUNTIME_MINUTES)")
    p.add_argument("--nav-timeout-ms", type=int)
    p.add_argument("--video-wait-ms", type=int)
    p.add_argument("--seed", type=int, help="Seed the random source (reproducible fingerprints and delays)")
    p.add_argument("--dry-run", action="store_true", help="Extract but only log the planned cell writes")
    p.add_argument("--headful", action="store_true", help="Show the browser window")
    p.add_argument("--debug-html", action="store_true", help="Save each page's HTML under the debug dir")
    p.add_argument("--debug-frames", action="store_true", help="Log the frame inventory of each page")
    ns = p.parse_args(argv)
    if not ns.spreadsheet_id:
        p.error("--spreadsheet-id is required (or set SPREADSHEET_ID)")
    return CliArgs(
        spreadsheet_id=ns.spreadsheet_id,
        sheet_name=ns.sheet_name,
        credentials=ns.credentials,
        mode=ns.mode,
        limit=ns.limit,
        concurrency=ns.concurrency,
        max_retries=ns.max_retries,
        max_runtime_minutes=ns.max_runtime_minutes,
        nav_timeout_ms=ns.nav_timeout_ms,
        video_wait_ms=ns.video_wait_ms,
        seed=ns.seed,
        dry_run=ns.dry_run,
        headful=ns.headful,
        debug_html=ns.debug_html,
        debug_frames=ns.debug_frames,
    )


def build_config(args: CliArgs) -> ExtractorConfig:
    """Environment defaults with CLI flags layered on top; raises ValueError when invalid."""

    if args.limit is not None and args.limit < 1:
        raise ValueError(f"limit must be >= 1 (got {args.limit})")
    return ExtractorConfig.from_env(
        mode=args.mode,
        batch_width=args.concurrency,
        max_attempts=args.max_retries,
        max_runtime_s=args.max_runtime_minutes * 60 if args.max_runtime_minutes is not None else None,
        nav_timeout_ms=args.nav_timeout_ms,
        video_wait_ms=args.video_wait_ms,
    )


def summarize_pending(items: Sequence[WorkItem]) -> dict[str, int]:
    return {
        "pending": len(items),
        "needs_metadata": sum(1 for i in items if i.needs_metadata),
        "needs_video_id": sum(1 for i in items if i.needs_video_id),
        "video_opportunistic": sum(1 for i in items if i.video_allowed),
    }


def build_batcher(
    browser: Any,
    config: ExtractorConfig,
    reconciler: WorklistReconciler,
    governor: SessionGovernor,
    *,
    rng: random.Random,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    debug_html: bool = False,
    debug_frames: bool = False,
) -> ConcurrencyBatcher:
    orchestrator = ExtractionOrchestrator(
        browser,
        config,
        rng=rng,
        sleep=sleep,
        debug_html=debug_html,
        debug_frames=debug_frames,
    )
    retry = RetryController(orchestrator.run, config, rng=rng, sleep=sleep)
    return ConcurrencyBatcher(
        retry.run_with_retry,
        config,
        writer=reconciler.reconcile_write,
        governor=governor,
        rng=rng,
        sleep=sleep,
    )


async def extract_with_browser(
    items: Sequence[WorkItem],
    config: ExtractorConfig,
    reconciler: WorklistReconciler,
    governor: SessionGovernor,
    *,
    rng: random.Random,
    headful: bool = False,
    debug_html: bool = False,
    debug_frames: bool = False,
) -> RunSummary:
    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=not headful, args=CHROMIUM_LAUNCH_ARGS)
        try:
            batcher = build_batcher(
                browser,
                config,
                reconciler,
                governor,
                rng=rng,
                debug_html=debug_html,
                debug_frames=debug_frames,
            )
            return await batcher.run_all(items)
        finally:
            await close_quietly(browser)


async def run(
    args: CliArgs,
    *,
    store: TabularStore | None = None,
    channel: ContinuationChannel | None = None,
    extract: Callable[..., Awaitable[RunSummary]] = extract_with_browser,
) -> int:
    """Execute one session for the supplied CLI arguments and return the exit code."""

    config = build_config(args)
    rng = random.Random(args.seed)
    store = store or GoogleSheetsStore.from_service_account(
        args.credentials,
        args.spreadsheet_id,
        sheet_name=args.sheet_name,
        dry_run=args.dry_run,
    )
    reconciler = WorklistReconciler(store, config)
    governor = SessionGovernor(config.max_runtime_s, channel or channel_from_env())
    set_global_context(session_id=governor.session_id, mode=config.mode, dry_run=args.dry_run or None)

    items = await reconciler.read_pending()
    if args.limit is not None:
        items = items[: args.limit]
    jlog("info", event="run_summary", batch_width=config.batch_width, **summarize_pending(items))
    if not items:
        jlog("info", event="nothing_pending")
        return EXIT_OK

    summary = await extract(
        items,
        config,
        reconciler,
        governor,
        rng=rng,
        headful=args.headful,
        debug_html=args.debug_html,
        debug_frames=args.debug_frames,
    )
    jlog(
        "info",
        event="run_finished",
        results=len(summary.results),
        batches_done=summary.batches_done,
        batches_total=summary.batches_total,
        aborted=summary.abort_reason,
        elapsed_s=round(governor.elapsed_s, 1),
    )
    if summary.aborted:
        governor.hand_off(summary.abort_reason)  # type: ignore[arg-type]
        return EXIT_OK

    # A limited or dry run leaves rows pending on purpose.
    if args.limit is None and not args.dry_run:
        remaining = await reconciler.read_pending()
        if remaining:
            jlog("info", event="more_rows", pending=len(remaining))
            governor.hand_off(REASON_MORE_ROWS)
    return EXIT_OK


__all__ = [
    "CliArgs",
    "EXIT_CONFIG_ERROR",
    "EXIT_OK",
    "build_batcher",
    "build_config",
    "extract_with_browser",
    "parse_args",
    "run",
    "summarize_pending",
]
