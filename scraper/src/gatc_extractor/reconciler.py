"""Pending-set computation and row-resolved write-back against the worklist store."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .config import ExtractorConfig
from .logging import itemlog, jlog
from .records import BLOCKED, ERROR, FIELDS, LINK, NAME, NOT_FOUND, SKIP, VIDEO_ID, ItemResult, WorkItem
from .sheets import CellWrite, TabularStore
from .urls import is_valid_store_link

# Values that never reach the store: SKIP was not requested, ERROR stays empty
# so the next pass retries it, BLOCKED rows are left for the restarted session.
_UNWRITTEN = frozenset({SKIP, ERROR, BLOCKED})


@dataclass(frozen=True, slots=True)
class ColumnLayout:
    advertiser: int = 0
    url: int = 1
    link: int = 2
    name: int = 3
    video_id: int = 4
    header_rows: int = 1

    def column_for(self, field_name: str) -> int:
        return {LINK: self.link, NAME: self.name, VIDEO_ID: self.video_id}[field_name]


def cell(row: Sequence[str | None], index: int) -> str | None:
    """Trimmed cell value, or None when the row has no cell at ``index``."""

    if index >= len(row) or row[index] is None:
        return None
    return str(row[index]).strip()


def _empty(value: str | None) -> bool:
    return not value


class WorklistReconciler:
    def __init__(
        self,
        store: TabularStore,
        config: ExtractorConfig,
        *,
        layout: ColumnLayout | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.layout = layout or ColumnLayout()

    def required_fields(self, link: str | None, name: str | None, video_id: str | None) -> tuple[frozenset[str], bool]:
        """Fields a row still needs, plus whether a video id may be tried opportunistically."""

        required: set[str] = set()
        video_allowed = False
        if self.config.extract_metadata:
            if _empty(link):
                required.add(LINK)
            if _empty(name):
                required.add(NAME)
        if self.config.extract_video and _empty(video_id):
            if is_valid_store_link(link):
                required.add(VIDEO_ID)
            elif _empty(link) and self.config.extract_metadata:
                video_allowed = True
        return frozenset(required), video_allowed

    def pending(self, snapshot: Sequence[Sequence[str | None]]) -> list[WorkItem]:
        layout = self.layout
        items: list[WorkItem] = []
        seen: set[str] = set()
        for offset, row in enumerate(snapshot[layout.header_rows :]):
            url = cell(row, layout.url)
            if not url or url in seen:
                continue
            # Write-back resolves a URL to its first row, so later duplicates are never pending.
            seen.add(url)
            link = cell(row, layout.link)
            name = cell(row, layout.name)
            video_id = cell(row, layout.video_id)
            required, video_allowed = self.required_fields(link, name, video_id)
            if not required:
                continue
            items.append(
                WorkItem(
                    source_url=url,
                    required_fields=required,
                    existing={LINK: link or "", NAME: name or "", VIDEO_ID: video_id or ""},
                    advertiser_name=cell(row, layout.advertiser) or "",
                    row_index=layout.header_rows + offset + 1,
                    video_allowed=video_allowed,
                )
            )
        return items

    async def read_pending(self) -> list[WorkItem]:
        return self.pending(await self.store.read_rows())

    def _row_index(self, current_urls: Sequence[str | None]) -> dict[str, int]:
        index: dict[str, int] = {}
        for pos, raw in enumerate(current_urls):
            if pos < self.layout.header_rows or raw is None:
                continue
            url = str(raw).strip()
            if url and url not in index:
                index[url] = pos + 1
        return index

    def plan_writes(self, results: Sequence[ItemResult], current_urls: Sequence[str | None]) -> list[CellWrite]:
        """Cell writes for ``results`` at each URL's current row; vanished URLs produce none."""

        rows = self._row_index(current_urls)
        writes: list[CellWrite] = []
        for result in results:
            if result.record.is_blocked:
                continue
            row = rows.get(result.source_url)
            if row is None:
                itemlog("row_not_found", url=result.source_url, level="warning", previous_row=result.item.row_index)
                continue
            for name in FIELDS:
                value = result.record.get(name)
                if value in _UNWRITTEN:
                    continue
                writes.append(CellWrite(column=self.layout.column_for(name), row=row, value=value))
        return writes

    async def reconcile_write(self, results: Sequence[ItemResult]) -> list[CellWrite]:
        if not results:
            return []
        # Rows may have been sorted or edited since the pending pass.
        try:
            current_urls = await self.store.read_column(self.layout.url)
        except Exception as exc:
            jlog("error", event="sheet_read_error", results=len(results), error=repr(exc))
            raise
        writes = self.plan_writes(results, current_urls)
        updated = await self.store.batch_write(writes)
        jlog(
            "info",
            event="batch_written",
            results=len(results),
            cells=len(writes),
            updated=updated,
            not_found=sum(1 for w in writes if w.value == NOT_FOUND),
        )
        return writes


__all__ = ["ColumnLayout", "WorklistReconciler", "cell"]
