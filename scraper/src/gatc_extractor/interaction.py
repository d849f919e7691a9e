"""Locate the play affordance and replay a human-looking click on it.

The creative player ignores synthetic clicks that land instantly on the exact
centre with no pointer history, so every click is preceded by a short curved
approach with randomized pauses and jitter.
"""

from __future__ import annotations

import asyncio
import math
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from .logging import jlog

PLAY_CLASS_SELECTOR = ".play-button"
MIN_MEDIA_SIZE = 100
MAX_SHADOW_SCOPES = 200

STRATEGY_VIEWPORT_CENTER = "viewport_center"

_LOCATE_JS = """
(opts) => {
  const visibleRect = (el) => {
    if (!el || !el.getBoundingClientRect) return null;
    const r = el.getBoundingClientRect();
    return (r.width > 0 && r.height > 0) ? r : null;
  };
  const centre = (r, dx, dy) => ({ x: dx + r.left + r.width / 2, y: dy + r.top + r.height / 2 });

  const scopesOf = (doc) => {
    const scopes = [doc];
    const stack = [doc];
    while (stack.length && scopes.length < opts.maxScopes) {
      const scope = stack.pop();
      let all = [];
      try { all = scope.querySelectorAll('*'); } catch (e) { continue; }
      for (const el of all) {
        if (el.shadowRoot) { scopes.push(el.shadowRoot); stack.push(el.shadowRoot); }
      }
    }
    return scopes;
  };

  const byClass = (scope) => {
    let el = null;
    try { el = scope.querySelector(opts.playClass); } catch (e) { return null; }
    return visibleRect(el);
  };
  const byHint = (scope) => {
    let all = [];
    try { all = scope.querySelectorAll('[class], [aria-label]'); } catch (e) { return null; }
    for (const el of all) {
      const cls = typeof el.className === 'string' ? el.className : (el.getAttribute('class') || '');
      const aria = el.getAttribute('aria-label') || '';
      if (/play/i.test(cls) || /play/i.test(aria)) {
        const r = visibleRect(el);
        if (r) return r;
      }
    }
    return null;
  };

  const search = (doc, dx, dy, prefix) => {
    const scopes = scopesOf(doc);
    for (const [finder, name] of [[byClass, 'play_class'], [byHint, 'play_hint']]) {
      for (const scope of scopes) {
        const r = finder(scope);
        if (r) return { found: true, ...centre(r, dx, dy), strategy: prefix + name };
      }
    }
    return null;
  };

  let hit = search(document, 0, 0, '');
  if (hit) return hit;

  for (const iframe of document.querySelectorAll('iframe')) {
    let doc = null;
    try { doc = iframe.contentDocument || (iframe.contentWindow && iframe.contentWindow.document); } catch (e) { doc = null; }
    if (!doc) continue;
    const fr = iframe.getBoundingClientRect();
    hit = search(doc, fr.left, fr.top, 'iframe_');
    if (hit) return hit;
  }

  for (const el of document.querySelectorAll('video, iframe, [id*="video" i]')) {
    const r = el.getBoundingClientRect();
    if (r.width > opts.minMediaSize && r.height > opts.minMediaSize) {
      return { found: true, ...centre(r, 0, 0), strategy: 'media_center' };
    }
  }

  return { found: true, x: window.innerWidth / 2, y: window.innerHeight / 2, strategy: 'viewport_center' };
}
"""


class MouseLike(Protocol):
    async def move(self, x: float, y: float, *, steps: int = 1) -> None: ...

    async def down(self, **kwargs: Any) -> None: ...

    async def up(self, **kwargs: Any) -> None: ...


@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class TriggerPoint:
    x: float
    y: float
    strategy: str

    @property
    def point(self) -> Point:
        return Point(self.x, self.y)


@dataclass(frozen=True)
class ClickPlan:
    path: list[Point]
    move_pauses_s: list[float]
    press_at: Point
    pre_press_s: float
    hold_s: float
    meta: dict[str, Any] = field(default_factory=dict)


async def locate_trigger(page: Any) -> TriggerPoint | None:
    """Walk the location ladder in the page; ``None`` only if the page cannot be evaluated."""

    try:
        info = await page.evaluate(
            _LOCATE_JS,
            {"playClass": PLAY_CLASS_SELECTOR, "minMediaSize": MIN_MEDIA_SIZE, "maxScopes": MAX_SHADOW_SCOPES},
        )
    except Exception as exc:
        jlog("warning", event="trigger_locate_error", error=str(exc))
        return None
    if not info or not info.get("found"):
        return None
    return TriggerPoint(x=float(info["x"]), y=float(info["y"]), strategy=str(info.get("strategy") or ""))


def viewport_center(width: int, height: int) -> TriggerPoint:
    return TriggerPoint(x=width / 2, y=height / 2, strategy=STRATEGY_VIEWPORT_CENTER)


def _clamp(p: Point, bounds: tuple[int, int] | None) -> Point:
    if not bounds:
        return Point(max(0.0, p.x), max(0.0, p.y))
    w, h = bounds
    return Point(min(max(0.0, p.x), w - 1), min(max(0.0, p.y), h - 1))


def plan_click(
    target: Point,
    rng: random.Random,
    *,
    start: Point | None = None,
    bounds: tuple[int, int] | None = None,
    jitter_px: int = 5,
    max_offset_px: float = 10.0,
) -> ClickPlan:
    """Build a 3-5 point approach to ``target`` whose sideways wobble shrinks to zero."""

    if start is None:
        angle = rng.uniform(0, 2 * math.pi)
        distance = rng.uniform(40, 120)
        start = Point(target.x + math.cos(angle) * distance, target.y + math.sin(angle) * distance)

    dx, dy = target.x - start.x, target.y - start.y
    length = math.hypot(dx, dy) or 1.0
    # unit normal to the approach direction
    nx, ny = -dy / length, dx / length

    steps = rng.randint(3, 5)
    path: list[Point] = []
    for i in range(1, steps + 1):
        progress = i / (steps + 1)
        wobble = rng.uniform(-1.0, 1.0) * max_offset_px * (1 - progress)
        p = Point(start.x + dx * progress + nx * wobble, start.y + dy * progress + ny * wobble)
        path.append(_clamp(p, bounds))

    press_at = _clamp(
        Point(target.x + rng.randint(-jitter_px, jitter_px), target.y + rng.randint(-jitter_px, jitter_px)),
        bounds,
    )
    return ClickPlan(
        path=path,
        move_pauses_s=[rng.uniform(0.05, 0.15) for _ in path],
        press_at=press_at,
        pre_press_s=rng.uniform(0.1, 0.3),
        hold_s=rng.uniform(0.05, 0.15),
        meta={"steps": steps},
    )


async def perform_click(
    mouse: MouseLike,
    plan: ClickPlan,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Replay a click plan: approach, pause, press, hold, release."""

    for point, pause in zip(plan.path, plan.move_pauses_s):
        await mouse.move(round(point.x), round(point.y))
        await sleep(pause)
    await mouse.move(round(plan.press_at.x), round(plan.press_at.y))
    await sleep(plan.pre_press_s)
    await mouse.down(button="left", click_count=1)
    await sleep(plan.hold_s)
    await mouse.up(button="left", click_count=1)


async def click_trigger(
    page: Any,
    rng: random.Random,
    *,
    viewport: tuple[int, int],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str | None = None,
) -> TriggerPoint:
    """Locate the trigger (falling back to the viewport centre) and click it like a person."""

    trigger = await locate_trigger(page) or viewport_center(*viewport)
    plan = plan_click(trigger.point, rng, bounds=viewport)
    await perform_click(page.mouse, plan, sleep=sleep)
    jlog(
        "info",
        event="trigger_clicked",
        url=label,
        strategy=trigger.strategy,
        x=round(plan.press_at.x),
        y=round(plan.press_at.y),
        steps=plan.meta.get("steps"),
    )
    return trigger


__all__ = [
    "ClickPlan",
    "PLAY_CLASS_SELECTOR",
    "Point",
    "TriggerPoint",
    "click_trigger",
    "locate_trigger",
    "perform_click",
    "plan_click",
    "viewport_center",
]
