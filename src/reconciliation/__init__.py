"""
Reconciliation Module for MongoDB Sync Audits

This module re-verifies documents named in a sync tool's failure log
against the source and destination MongoDB deployments.

Main components:
- extractor: (namespace, ObjectId) extraction from log messages
- comparer: Tiered document comparison
- reconciler: Per-document classification across both stores
- aggregator: Per-namespace stats and discrepancy list
- pipeline: Log-driven run with optional bounded concurrency
- report: Console and JSON reports

Usage:
    from src.reconciliation import (
        LogReconciliationPipeline, MongoDocumentStore, read_log_lines
    )

    with MongoDocumentStore(src_uri, "source") as source, \\
            MongoDocumentStore(dest_uri, "dest") as dest:
        pipeline = LogReconciliationPipeline(source, dest)
        context = pipeline.run(read_log_lines("dsync_errors.csv"))
"""

from src.reconciliation.extractor import (
    ExtractedFact,
    ExtractionOutcome,
    LogLine,
    RecordExtractor,
)
from src.reconciliation.comparer import DocumentComparer
from src.reconciliation.stores import (
    DocumentStore,
    MongoDocumentStore,
    StoreConnectionError,
    StoreLookupError,
)
from src.reconciliation.reconciler import CheckResult, CheckStatus, DocumentReconciler
from src.reconciliation.aggregator import Aggregator, ReconciliationContext, Stats
from src.reconciliation.pipeline import (
    LogReconciliationPipeline,
    LogSourceError,
    read_log_lines,
)
from src.reconciliation.report import build_report, render_text_report

__all__ = [
    "ExtractedFact",
    "ExtractionOutcome",
    "LogLine",
    "RecordExtractor",
    "DocumentComparer",
    "DocumentStore",
    "MongoDocumentStore",
    "StoreConnectionError",
    "StoreLookupError",
    "CheckResult",
    "CheckStatus",
    "DocumentReconciler",
    "Aggregator",
    "ReconciliationContext",
    "Stats",
    "LogReconciliationPipeline",
    "LogSourceError",
    "read_log_lines",
    "build_report",
    "render_text_report",
]

__version__ = "1.0.0"
