"""Debug artifact helpers for the extractor."""

from __future__ import annotations

import hashlib
import os
from typing import Any

from playwright.async_api import Page

from .logging import jlog

DEBUG_DIR = os.getenv("EXTRACTOR_DEBUG_DIR", "media/debug")


def ensure_debug_dir() -> str:
    """Create the debug directory if it does not exist and return the path."""

    os.makedirs(DEBUG_DIR, exist_ok=True)
    return DEBUG_DIR


def debug_key(url: str) -> str:
    """Short stable file-name key for a worklist URL."""

    return hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]


async def ensure_debug_html(page: Page, url: str) -> str | None:
    """Persist the current page HTML for later debugging (best effort)."""

    path = None
    try:
        ensure_debug_dir()
        html = await page.content()
        path = os.path.join(DEBUG_DIR, f"page_{debug_key(url)}.html")
        with open(path, "w", encoding="utf-8") as f:
            f.write(html)
        jlog("info", event="debug_html_saved", url=url, path=path)
    except Exception as exc:  # pragma: no cover - logging only
        jlog("error", event="debug_save_html_error", url=url, error=str(exc))
        return None
    return path


async def dump_frame_inventory(page: Page) -> list[dict[str, Any]]:
    """Return every frame of the page with its URL and the size of its body."""

    inventory: list[dict[str, Any]] = []
    for frame in page.frames:
        entry: dict[str, Any] = {"url": frame.url, "name": frame.name}
        try:
            entry["box"] = await frame.evaluate(
                """
                () => {
                  const b = document.body;
                  if (!b) return null;
                  const r = b.getBoundingClientRect();
                  return { width: r.width, height: r.height };
                }
                """
            )
        except Exception as exc:
            entry["error"] = str(exc)
        inventory.append(entry)
    return inventory


__all__ = [
    "DEBUG_DIR",
    "debug_key",
    "dump_frame_inventory",
    "ensure_debug_dir",
    "ensure_debug_html",
]
