"""Network observer that recovers the media identifier from live page traffic."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from playwright.async_api import Page, Request, Response, Route

from .logging import jlog
from .urls import video_id_from_html, video_id_from_url

BLOCKED_RESOURCE_TYPES = frozenset({"image", "font"})


@dataclass(frozen=True, slots=True)
class Sighting:
    source: str
    video_id: str


class NetworkObserver:
    """Classifies traffic for one page and keeps the first identifier it sees.

    Attach before navigation: the navigation itself can emit the defining request.
    """

    def __init__(self, *, block_resources: bool = True, label: str | None = None) -> None:
        self.block_resources = block_resources
        self.label = label
        self._video_id: str | None = None
        self.sightings: list[Sighting] = []
        self.aborted = 0

    @property
    def video_id(self) -> str | None:
        return self._video_id

    @property
    def has_video_id(self) -> bool:
        return self._video_id is not None

    def _record(self, source: str, found: str | None) -> str | None:
        if not found:
            return None
        self.sightings.append(Sighting(source, found))
        if self._video_id is None:
            self._video_id = found
            jlog("info", event="video_id_captured", url=self.label, source=source, video_id=found)
        return found

    def observe(self, event_url: str | None, *, source: str = "request") -> str | None:
        """Classify one traffic event; returns the identifier it carries, if any.

        The retained identifier follows a first-seen policy and is never replaced.
        """

        return self._record(source, video_id_from_url(event_url))

    def observe_html(self, html: str | None, *, source: str = "page_source") -> str | None:
        return self._record(source, video_id_from_html(html))

    def should_abort(self, resource_type: str, url: str) -> bool:
        if not self.block_resources or resource_type not in BLOCKED_RESOURCE_TYPES:
            return False
        return video_id_from_url(url) is None

    async def attach(self, page: Page) -> None:
        page.on("request", self._on_request)
        page.on("response", self._on_response)
        if self.block_resources:
            await page.route("**/*", self._on_route)

    def _on_request(self, request: Request) -> None:
        self.observe(request.url, source="request")

    def _on_response(self, response: Response) -> None:
        self.observe(response.url, source="response")

    async def _on_route(self, route: Route) -> None:
        request = route.request
        try:
            if self.should_abort(request.resource_type, request.url):
                self.aborted += 1
                await route.abort()
            else:
                await route.continue_()
        except Exception as exc:  # page closed while the route was pending
            jlog("debug", event="route_handler_error", url=self.label, error=str(exc))

    async def wait_for_video_id(
        self,
        timeout_s: float,
        interval_s: float,
        *,
        probe: Callable[[], Awaitable[None]] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> str | None:
        """Poll until an identifier is seen or ``timeout_s`` elapses.

        ``probe`` runs after every tick (used for the page-source fallback).
        """

        if self.has_video_id:
            return self._video_id
        checks = max(1, int(-(-timeout_s // interval_s)))
        for _ in range(checks):
            await sleep(interval_s)
            if self.has_video_id:
                break
            if probe is not None:
                await probe()
                if self.has_video_id:
                    break
        return self._video_id


__all__ = ["BLOCKED_RESOURCE_TYPES", "NetworkObserver", "Sighting"]
