"""Frame-scoped discovery of the app name and install link.

Each frame is searched in the browser by a single script that collects raw
candidates in strategy order (structural path, marker attributes, shadow roots,
install buttons). Cleaning, validation and the "first success per field" choice
happen here in Python so they stay deterministic and testable.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from .cleaning import clean_app_name, is_blacklisted
from .logging import jlog
from .urls import extract_store_link

CONTAINER_ID = "portrait-landscape-phone"
STRUCTURAL_XPATH = f'//*[@id="{CONTAINER_ID}"]/div[1]/div[5]/a[2]'

NAME_SELECTORS: tuple[str, ...] = (
    'a[data-asoch-targets*="ochAppName"]',
    'a[data-asoch-targets*="appname" i]',
    'a[class*="short-app-name"]',
    ".short-app-name a",
)

INSTALL_SELECTORS: tuple[str, ...] = (
    'a[data-asoch-targets*="ochButton"]',
    'a[data-asoch-targets*="Install" i]',
    'a[aria-label*="Install" i]',
    "a.install-button-anchor",
)

MAX_SHADOW_SCOPES = 200
MAX_CANDIDATES = 60

STRATEGY_STRUCTURAL = "structural"
STRATEGY_ATTRIBUTE = "attribute"
STRATEGY_SHADOW = "shadow"
STRATEGY_INSTALL = "install"

_COLLECT_JS = """
(opts) => {
  const empty = { hidden: true, candidates: [], install: [] };
  const body = document.body;
  if (!body) return empty;
  const box = body.getBoundingClientRect();
  if (box.width < opts.minSize || box.height < opts.minSize) return empty;

  const root = document.getElementById(opts.containerId) || body;
  const candidates = [];
  const textOf = (el) => (el.innerText || el.textContent || '');
  const hrefOf = (el) => (el.href || (el.getAttribute && el.getAttribute('href')) || '');
  const push = (entry) => { if (candidates.length < opts.maxCandidates) candidates.push(entry); };

  try {
    const node = document.evaluate(
      opts.xpath, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null
    ).singleNodeValue;
    if (node) push({ strategy: 'structural', name: '', href: hrefOf(node) });
  } catch (e) {}

  for (const sel of opts.nameSelectors) {
    let found = [];
    try { found = root.querySelectorAll(sel); } catch (e) { continue; }
    for (const el of found) {
      push({ strategy: 'attribute', selector: sel, name: textOf(el), href: hrefOf(el) });
    }
  }

  // Shadow roots are walked with an explicit stack so depth stays bounded.
  const shadowRoots = [];
  const stack = [root];
  let visited = 0;
  while (stack.length && visited < opts.maxScopes) {
    const scope = stack.pop();
    visited += 1;
    let all = [];
    try { all = scope.querySelectorAll('*'); } catch (e) { continue; }
    for (const el of all) {
      if (el.shadowRoot) {
        shadowRoots.push(el.shadowRoot);
        stack.push(el.shadowRoot);
      }
    }
  }
  for (const sr of shadowRoots) {
    for (const sel of opts.nameSelectors) {
      let found = [];
      try { found = sr.querySelectorAll(sel); } catch (e) { continue; }
      for (const el of found) {
        push({ strategy: 'shadow', selector: sel, name: textOf(el), href: hrefOf(el) });
      }
    }
  }

  const install = [];
  for (const scope of [root, ...shadowRoots]) {
    for (const sel of opts.installSelectors) {
      let el = null;
      try { el = scope.querySelector(sel); } catch (e) { continue; }
      if (el) install.push(hrefOf(el));
    }
  }
  return { hidden: false, candidates, install };
}
"""

_ADVERTISER_JS = """
() => {
  const el = document.querySelector('h1, .advertiser-name');
  return el ? (el.innerText || el.textContent || '').trim() : '';
}
"""


class FrameLike(Protocol):
    url: str

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...


@dataclass(frozen=True, slots=True)
class FrameResult:
    name: str | None = None
    link: str | None = None
    hidden: bool = False
    name_strategy: str | None = None
    link_strategy: str | None = None

    @property
    def complete(self) -> bool:
        return bool(self.name and self.link)

    @property
    def empty(self) -> bool:
        return not (self.name or self.link)


def resolve_candidates(payload: dict[str, Any] | None, blacklist_name: str | None) -> FrameResult:
    """Pick the first valid name and first valid link from a collected payload."""

    if not payload:
        return FrameResult()
    if payload.get("hidden"):
        return FrameResult(hidden=True)

    name: str | None = None
    link: str | None = None
    name_strategy: str | None = None
    link_strategy: str | None = None
    for cand in payload.get("candidates") or []:
        strategy = cand.get("strategy")
        cand_name = clean_app_name(cand.get("name"))
        if cand_name and is_blacklisted(cand_name, blacklist_name):
            continue
        cand_link = extract_store_link(cand.get("href"))
        if cand_name and name is None:
            name, name_strategy = cand_name, strategy
        if cand_link and link is None:
            link, link_strategy = cand_link, strategy
        if name and link:
            break

    if name and not link:
        for href in payload.get("install") or []:
            backup = extract_store_link(href)
            if backup:
                link, link_strategy = backup, STRATEGY_INSTALL
                break

    return FrameResult(name=name, link=link, name_strategy=name_strategy, link_strategy=link_strategy)


async def extract(frame: FrameLike, blacklist_name: str | None, *, min_size: int = 50) -> FrameResult:
    """Run the discovery chain inside one frame.

    Any evaluation failure (detached frame, cross-origin denial) means the frame
    contributed nothing; it never propagates.
    """

    opts = {
        "minSize": min_size,
        "containerId": CONTAINER_ID,
        "xpath": STRUCTURAL_XPATH,
        "nameSelectors": list(NAME_SELECTORS),
        "installSelectors": list(INSTALL_SELECTORS),
        "maxScopes": MAX_SHADOW_SCOPES,
        "maxCandidates": MAX_CANDIDATES,
    }
    try:
        payload = await frame.evaluate(_COLLECT_JS, opts)
    except Exception as exc:
        jlog("debug", event="frame_eval_error", frame_url=_frame_url(frame), error=str(exc))
        return FrameResult()
    return resolve_candidates(payload, blacklist_name)


async def scan_frames(
    frames: Iterable[FrameLike],
    blacklist_name: str | None,
    *,
    min_size: int = 50,
) -> FrameResult:
    """Search every frame until one yields both fields; otherwise keep the best partial.

    Partials merge first-found-wins per field, in frame order.
    """

    name: str | None = None
    link: str | None = None
    name_strategy: str | None = None
    link_strategy: str | None = None
    for frame in frames:
        found = await extract(frame, blacklist_name, min_size=min_size)
        if found.hidden or found.empty:
            continue
        if found.complete and link is None:
            jlog("info", event="frame_complete", frame_url=_frame_url(frame), name=found.name, link=found.link)
            return found
        if found.name and name is None:
            name, name_strategy = found.name, found.name_strategy
        if found.link and link is None:
            link, link_strategy = found.link, found.link_strategy
    return FrameResult(name=name, link=link, name_strategy=name_strategy, link_strategy=link_strategy)


async def read_advertiser_name(page: FrameLike) -> str:
    """Page-level advertiser label; app names equal to it are ignored."""

    try:
        value = await page.evaluate(_ADVERTISER_JS)
    except Exception as exc:
        jlog("debug", event="advertiser_name_error", error=str(exc))
        return ""
    return (value or "").strip()


def _frame_url(frame: FrameLike) -> str:
    try:
        return frame.url or ""
    except Exception:
        return ""


__all__ = [
    "CONTAINER_ID",
    "FrameResult",
    "INSTALL_SELECTORS",
    "NAME_SELECTORS",
    "STRUCTURAL_XPATH",
    "extract",
    "read_advertiser_name",
    "resolve_candidates",
    "scan_frames",
]
