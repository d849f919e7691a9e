"""Extraction of install links, app names and video ids from ad-transparency pages."""

from .batcher import ConcurrencyBatcher, RunSummary
from .config import ExtractorConfig
from .logging import itemlog, jlog
from .network import NetworkObserver
from .orchestrator import ExtractionOrchestrator
from .pipeline import CliArgs, parse_args, run
from .reconciler import ColumnLayout, WorklistReconciler
from .records import BLOCKED, ERROR, NOT_FOUND, SKIP, ExtractionRecord, ItemResult, WorkItem
from .retry import RetryController
from .session import SessionAborted, SessionGovernor
from .sheets import CellWrite, GoogleSheetsStore
from .versioning import get_extractor_version

__all__ = [
    "BLOCKED",
    "CellWrite",
    "CliArgs",
    "ColumnLayout",
    "ConcurrencyBatcher",
    "ERROR",
    "ExtractionOrchestrator",
    "ExtractionRecord",
    "ExtractorConfig",
    "GoogleSheetsStore",
    "ItemResult",
    "NOT_FOUND",
    "NetworkObserver",
    "RetryController",
    "RunSummary",
    "SKIP",
    "SessionAborted",
    "SessionGovernor",
    "WorkItem",
    "WorklistReconciler",
    "get_extractor_version",
    "itemlog",
    "jlog",
    "parse_args",
    "run",
]
