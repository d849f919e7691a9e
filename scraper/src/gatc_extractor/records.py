"""Work items, extraction records and the sentinel values written to the worklist."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Mapping

# Sentinel cell values. They are written to the store verbatim.
NOT_FOUND = "NOT_FOUND"
SKIP = "SKIP"
BLOCKED = "BLOCKED"
ERROR = "ERROR"
SENTINELS = frozenset({NOT_FOUND, SKIP, BLOCKED, ERROR})

LINK = "link"
NAME = "name"
VIDEO_ID = "video_id"
FIELDS: tuple[str, ...] = (LINK, NAME, VIDEO_ID)
METADATA_FIELDS = frozenset({LINK, NAME})


def is_resolved(value: str | None) -> bool:
    """True for a real extracted value (anything that is not empty or a sentinel)."""

    return bool(value) and value not in SENTINELS


@dataclass(frozen=True, slots=True)
class WorkItem:
    """One pending worklist row, rebuilt from the store on every pass."""

    source_url: str
    required_fields: frozenset[str]
    existing: Mapping[str, str] = field(default_factory=dict)
    advertiser_name: str = ""
    row_index: int | None = None
    video_allowed: bool = False

    @property
    def row_key(self) -> str:
        # Row positions shift when the sheet is sorted; the URL does not.
        return self.source_url

    @property
    def needs_metadata(self) -> bool:
        return bool(self.required_fields & METADATA_FIELDS)

    @property
    def needs_video_id(self) -> bool:
        return VIDEO_ID in self.required_fields

    @property
    def existing_link(self) -> str:
        return self.existing.get(LINK, "")


@dataclass(frozen=True, slots=True)
class ExtractionRecord:
    link: str = SKIP
    name: str = SKIP
    video_id: str = SKIP

    @classmethod
    def for_item(cls, item: WorkItem) -> "ExtractionRecord":
        """Requested fields start at NOT_FOUND, everything else is SKIP."""

        values = {f: (NOT_FOUND if f in item.required_fields else SKIP) for f in FIELDS}
        return cls(**values)

    @classmethod
    def filled(cls, value: str) -> "ExtractionRecord":
        return cls(link=value, name=value, video_id=value)

    @classmethod
    def error_for(cls, item: WorkItem) -> "ExtractionRecord":
        values = {f: (ERROR if f in item.required_fields else SKIP) for f in FIELDS}
        return cls(**values)

    @property
    def is_blocked(self) -> bool:
        return BLOCKED in (self.link, self.name, self.video_id)

    def get(self, name: str) -> str:
        if name not in FIELDS:
            raise KeyError(name)
        return getattr(self, name)

    def set(self, name: str, value: str) -> "ExtractionRecord":
        if name not in FIELDS:
            raise KeyError(name)
        return replace(self, **{name: value})

    def fill(self, name: str, value: str | None) -> "ExtractionRecord":
        """Set ``name`` only while it is still unresolved; never overwrite a found value."""

        if not is_resolved(value):
            return self
        if self.get(name) not in (NOT_FOUND, ERROR):
            return self
        return self.set(name, value)  # type: ignore[arg-type]

    def merge(self, other: "ExtractionRecord") -> "ExtractionRecord":
        """Fold resolved values from a later attempt into unresolved fields of this one."""

        merged = self
        for name in FIELDS:
            current = merged.get(name)
            incoming = other.get(name)
            if current == SKIP and incoming != SKIP:
                merged = merged.set(name, incoming)
            else:
                merged = merged.fill(name, incoming)
        return merged

    def settle_errors(self) -> "ExtractionRecord":
        """Degrade transient ERROR values to NOT_FOUND once retries are exhausted."""

        out = self
        for name in FIELDS:
            if out.get(name) == ERROR:
                out = out.set(name, NOT_FOUND)
        return out

    def resolved_fields(self) -> frozenset[str]:
        return frozenset(f for f in FIELDS if is_resolved(self.get(f)))

    def as_dict(self) -> dict[str, str]:
        return {f: self.get(f) for f in FIELDS}


@dataclass(frozen=True, slots=True)
class ItemResult:
    """An extraction record paired with the row key it must be written back to."""

    item: WorkItem
    record: ExtractionRecord
    attempts: int = 1

    @property
    def source_url(self) -> str:
        return self.item.source_url


__all__ = [
    "BLOCKED",
    "ERROR",
    "ExtractionRecord",
    "FIELDS",
    "ItemResult",
    "LINK",
    "METADATA_FIELDS",
    "NAME",
    "NOT_FOUND",
    "SENTINELS",
    "SKIP",
    "VIDEO_ID",
    "WorkItem",
    "is_resolved",
]
