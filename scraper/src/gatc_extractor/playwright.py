"""Playwright helpers shared by the extractor: isolated pages, masking, block detection."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page

from .config import ExtractorConfig, Viewport, choose_user_agent, choose_viewport
from .logging import jlog

CHROMIUM_LAUNCH_ARGS = [
    "--autoplay-policy=no-user-gesture-required",
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]

# Runs before any page script in every frame of the context.
STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
window.chrome = window.chrome || { runtime: {} };
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
"""

BLOCK_PHRASES: tuple[tuple[str, str], ...] = (
    ("Our systems have detected unusual traffic", "unusual_traffic"),
    ("Too Many Requests", "too_many_requests"),
)
CAPTCHA_MARKER = "captcha"

_SCROLL_JS = """
async (opts) => {
  window.scrollBy(0, opts.distance);
  await new Promise(r => setTimeout(r, opts.pauseMs));
  window.scrollBy(0, -opts.distance / 2);
}
"""


@dataclass
class IsolatedPage:
    context: BrowserContext
    page: Page
    user_agent: str
    viewport: Viewport


def detect_block(status: int | None, content: str | None) -> str | None:
    """Return a block reason for a 429 status, a rate-limit phrase or a CAPTCHA marker."""

    if status == 429:
        return "rate_limited_429"
    text = content or ""
    for phrase, reason in BLOCK_PHRASES:
        if phrase in text:
            return reason
    if CAPTCHA_MARKER in text.lower():
        return "captcha"
    return None


async def open_isolated_page(browser: Browser, config: ExtractorConfig, rng: random.Random) -> IsolatedPage:
    """Open a fresh context with a randomized fingerprint and automation masking."""

    user_agent = choose_user_agent(config, rng)
    viewport = choose_viewport(config, rng)
    context = await browser.new_context(
        user_agent=user_agent,
        viewport=viewport.as_dict(),
        locale="en-US",
        extra_http_headers={"accept-language": config.accept_language},
    )
    try:
        context.set_default_timeout(config.nav_timeout_ms)
        await context.add_init_script(STEALTH_INIT_SCRIPT)
        page = await context.new_page()
    except Exception:
        await close_quietly(context)
        raise
    return IsolatedPage(context=context, page=page, user_agent=user_agent, viewport=viewport)


async def human_scroll(
    page: Page,
    rng: random.Random,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Scroll down a random amount and half-way back to wake lazy renderers."""

    try:
        await page.evaluate(_SCROLL_JS, {"distance": 600 + rng.random() * 400, "pauseMs": 300 + rng.random() * 400})
    except Exception as exc:
        jlog("debug", event="scroll_error", error=str(exc))
    await sleep(rng.uniform(0.3, 0.7))


async def close_quietly(*resources: Any) -> None:
    """Close pages/contexts/browsers, ignoring errors from already-closed targets."""

    for resource in resources:
        if resource is None:
            continue
        try:
            await resource.close()
        except Exception:
            pass


__all__ = [
    "BLOCK_PHRASES",
    "CHROMIUM_LAUNCH_ARGS",
    "IsolatedPage",
    "STEALTH_INIT_SCRIPT",
    "close_quietly",
    "detect_block",
    "human_scroll",
    "open_isolated_page",
]
