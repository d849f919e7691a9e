"""Google Sheets adapter for the worklist store."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .logging import jlog

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
VALUE_INPUT_OPTION = "RAW"
DEFAULT_SHEET_NAME = "Sheet1"
DEFAULT_LAST_COLUMN = "E"


def column_letter(index: int) -> str:
    """0-based column index to its A1 letter(s): 0 -> A, 25 -> Z, 26 -> AA."""

    if index < 0:
        raise ValueError("column index must be >= 0")
    letters = ""
    n = index + 1
    while n:
        n, rem = divmod(n - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


@dataclass(frozen=True, slots=True)
class CellWrite:
    column: int  # 0-based
    row: int  # 1-based, as displayed by the sheet
    value: str

    def a1(self, sheet_name: str) -> str:
        return f"{sheet_name}!{column_letter(self.column)}{self.row}"


class TabularStore(Protocol):
    async def read_rows(self) -> list[list[str]]: ...

    async def read_column(self, column: int) -> list[str]: ...

    async def batch_write(self, writes: Sequence[CellWrite]) -> int: ...


class GoogleSheetsStore:
    """Row reads and batched cell writes against one sheet tab.

    Reads propagate errors; a failed batch write is logged and reported as zero
    updated cells so the run can continue.
    """

    def __init__(
        self,
        service: Any,
        spreadsheet_id: str,
        *,
        sheet_name: str = DEFAULT_SHEET_NAME,
        last_column: str = DEFAULT_LAST_COLUMN,
        dry_run: bool = False,
    ) -> None:
        self.service = service
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self.last_column = last_column
        self.dry_run = dry_run

    @classmethod
    def from_service_account(
        cls,
        credentials_path: str,
        spreadsheet_id: str,
        *,
        sheet_name: str = DEFAULT_SHEET_NAME,
        dry_run: bool = False,
    ) -> "GoogleSheetsStore":
        credentials = service_account.Credentials.from_service_account_file(credentials_path, scopes=SCOPES)
        service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        jlog("info", event="sheets_connected", spreadsheet_id=spreadsheet_id, sheet=sheet_name)
        return cls(service, spreadsheet_id, sheet_name=sheet_name, dry_run=dry_run)

    def _values(self) -> Any:
        return self.service.spreadsheets().values()

    async def _execute(self, request: Any) -> dict[str, Any]:
        # googleapiclient is blocking; keep the browser pages responsive.
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, request.execute) or {}

    async def read_rows(self) -> list[list[str]]:
        """All rows of the tab including the header; missing trailing cells stay missing."""

        request = self._values().get(
            spreadsheetId=self.spreadsheet_id,
            range=f"{self.sheet_name}!A:{self.last_column}",
        )
        response = await self._execute(request)
        rows = response.get("values", [])
        jlog("info", event="sheet_read", rows=len(rows), sheet=self.sheet_name)
        return rows

    async def read_column(self, column: int) -> list[str]:
        letter = column_letter(column)
        request = self._values().get(
            spreadsheetId=self.spreadsheet_id,
            range=f"{self.sheet_name}!{letter}:{letter}",
        )
        response = await self._execute(request)
        return [row[0] if row else "" for row in response.get("values", [])]

    def build_body(self, writes: Sequence[CellWrite]) -> dict[str, Any]:
        return {
            "valueInputOption": VALUE_INPUT_OPTION,
            "data": [{"range": w.a1(self.sheet_name), "values": [[w.value]]} for w in writes],
        }

    async def batch_write(self, writes: Sequence[CellWrite]) -> int:
        if not writes:
            return 0
        body = self.build_body(writes)
        if self.dry_run:
            for entry in body["data"]:
                jlog("info", event="sheet_write_planned", range=entry["range"], value=entry["values"][0][0])
            return 0
        request = self._values().batchUpdate(spreadsheetId=self.spreadsheet_id, body=body)
        try:
            response = await self._execute(request)
        except HttpError as exc:
            status = getattr(getattr(exc, "resp", None), "status", None)
            jlog("error", event="sheet_write_error", status=status, cells=len(writes), error=str(exc))
            return 0
        except Exception as exc:
            jlog("error", event="sheet_write_error", cells=len(writes), error=repr(exc))
            return 0
        updated = int(response.get("totalUpdatedCells", len(writes)))
        jlog("info", event="sheet_written", cells=updated, ranges=len(writes))
        return updated


__all__ = [
    "CellWrite",
    "DEFAULT_SHEET_NAME",
    "GoogleSheetsStore",
    "SCOPES",
    "TabularStore",
    "column_letter",
]
