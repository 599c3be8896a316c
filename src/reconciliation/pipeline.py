"""
Log Reconciliation Pipeline

Drives a run: reads the sync failure log, extracts facts, reconciles each
document against both stores and folds the results.

Processing is sequential by default. With max_workers > 1 the facts are
reconciled in batches on a bounded thread pool; results are still folded
by the calling thread in original log order.
"""

import csv
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Iterator, List, Optional, Tuple

from src.reconciliation.aggregator import Aggregator, ReconciliationContext
from src.reconciliation.extractor import (
    ExtractedFact,
    ExtractionOutcome,
    LogLine,
    RecordExtractor,
)
from src.reconciliation.reconciler import CheckResult, CheckStatus, DocumentReconciler
from src.reconciliation.stores import DocumentStore
from src.utils.run_context import get_or_create_run_id

logger = logging.getLogger(__name__)

NumberedLine = Tuple[int, LogLine]


class LogSourceError(Exception):
    """Raised when the log file cannot be opened or has no header."""


def read_log_lines(path: str) -> Iterator[NumberedLine]:
    """
    Read the sync failure log CSV export.

    The first row is a header and is skipped. Rows that do not have the
    four expected fields are logged and skipped. Bytes that are not valid
    UTF-8 are decoded as U+FFFD.

    Args:
        path: Path to the CSV file

    Yields:
        Tuples of (line number, LogLine)

    Raises:
        LogSourceError: If the file cannot be opened or is empty
    """
    try:
        f = open(path, newline="", encoding="utf-8", errors="replace")
    except OSError as e:
        raise LogSourceError(f"Cannot open log file {path}: {e}") from e

    with f:
        reader = csv.reader(f)

        try:
            next(reader)
        except StopIteration:
            raise LogSourceError(f"Log file {path} has no header row") from None
        except csv.Error as e:
            raise LogSourceError(f"Failed to read header of {path}: {e}") from e

        while True:
            try:
                row = next(reader)
            except StopIteration:
                break
            except csv.Error as e:
                logger.warning(f"Error reading CSV line {reader.line_num}: {e}")
                continue

            try:
                line = LogLine.from_row(row)
            except ValueError as e:
                logger.warning(f"Skipping CSV line {reader.line_num}: {e}")
                continue

            yield reader.line_num, line


class LogReconciliationPipeline:
    """
    Runs extraction, reconciliation and aggregation over log lines.

    The two stores are shared read-only by every lookup.
    """

    def __init__(
        self,
        source_store: DocumentStore,
        dest_store: DocumentStore,
        extractor: Optional[RecordExtractor] = None,
        reconciler: Optional[DocumentReconciler] = None,
        aggregator: Optional[Aggregator] = None,
        max_workers: int = 1,
        batch_size: int = 100,
        metrics: Optional[Any] = None,
        stop_event: Optional[threading.Event] = None
    ):
        """
        Initialize the pipeline.

        Args:
            source_store: Store for the source deployment
            dest_store: Store for the destination deployment
            extractor: Record extractor
            reconciler: Document reconciler
            aggregator: Result aggregator
            max_workers: Upper bound on concurrent document checks
            batch_size: Facts reconciled per batch when max_workers > 1
            metrics: Optional ReconciliationMetrics
            stop_event: Set to stop the run between lines or batches

        Raises:
            ValueError: If max_workers or batch_size is not positive
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")

        self.source_store = source_store
        self.dest_store = dest_store
        self.extractor = extractor or RecordExtractor()
        self.reconciler = reconciler or DocumentReconciler()
        self.aggregator = aggregator or Aggregator()
        self.max_workers = max_workers
        self.batch_size = batch_size
        self.metrics = metrics
        self.stop_event = stop_event or threading.Event()

    def run(
        self,
        lines: Iterable[NumberedLine],
        context: Optional[ReconciliationContext] = None
    ) -> ReconciliationContext:
        """
        Reconcile every fact found in the log lines.

        Args:
            lines: (line number, LogLine) pairs, e.g. from read_log_lines()
            context: Run state to extend (a new one if omitted)

        Returns:
            The run state with stats, discrepancies and extraction coverage
        """
        if context is None:
            context = ReconciliationContext()

        run_id = get_or_create_run_id()
        mode = "sequential" if self.max_workers == 1 else f"{self.max_workers} workers"
        logger.info(f"Starting reconciliation run {run_id} ({mode})")
        start_time = time.monotonic()

        if self.max_workers == 1:
            self._run_sequential(lines, context)
        else:
            self._run_batched(lines, context)

        duration = time.monotonic() - start_time
        if self.metrics is not None:
            self.metrics.record_run(context, duration)

        logger.info(
            f"Reconciliation run {run_id} finished in {duration:.2f}s: "
            f"{context.lines_read} lines, {context.total_checks} checks, "
            f"{len(context.discrepancies)} discrepancies"
            + (" (cancelled)" if context.cancelled else "")
        )
        return context

    def scan(
        self,
        lines: Iterable[NumberedLine],
        context: Optional[ReconciliationContext] = None
    ) -> ReconciliationContext:
        """
        Run extraction only, without touching either store.

        Args:
            lines: (line number, LogLine) pairs

        Returns:
            Run state with only extraction_outcomes and lines_read filled
        """
        if context is None:
            context = ReconciliationContext()

        for _line_number, _fact in self._extract_facts(lines, context):
            pass

        return context

    def _run_sequential(
        self,
        lines: Iterable[NumberedLine],
        context: ReconciliationContext
    ) -> None:
        for line_number, fact in self._extract_facts(lines, context):
            self._record(context, line_number, self._check(fact))

    def _run_batched(
        self,
        lines: Iterable[NumberedLine],
        context: ReconciliationContext
    ) -> None:
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            batch: List[Tuple[int, ExtractedFact]] = []

            for item in self._extract_facts(lines, context):
                batch.append(item)
                if len(batch) >= self.batch_size:
                    self._run_batch(executor, batch, context)
                    batch = []

            if batch:
                self._run_batch(executor, batch, context)

    def _run_batch(
        self,
        executor: ThreadPoolExecutor,
        batch: List[Tuple[int, ExtractedFact]],
        context: ReconciliationContext
    ) -> None:
        logger.debug(f"Reconciling batch of {len(batch)} documents")
        results = executor.map(self._check, [fact for _, fact in batch])

        # executor.map yields in submission order
        for (line_number, _), result in zip(batch, results):
            self._record(context, line_number, result)

    def _extract_facts(
        self,
        lines: Iterable[NumberedLine],
        context: ReconciliationContext
    ) -> Iterator[Tuple[int, ExtractedFact]]:
        for line_number, line in lines:
            if self.stop_event.is_set():
                logger.warning(f"Run cancelled before line {line_number}")
                context.cancelled = True
                return

            context.lines_read += 1
            outcome, fact = self.extractor.inspect(line.message)
            context.extraction_outcomes[outcome] += 1
            if self.metrics is not None:
                self.metrics.record_extraction(outcome)

            if outcome in (
                ExtractionOutcome.MALFORMED_IDENTIFIER,
                ExtractionOutcome.INVALID_NAMESPACE
            ):
                logger.debug(f"Line {line_number}: dropped ({outcome.value})")

            if fact is not None:
                yield line_number, fact

    def _check(self, fact: ExtractedFact) -> CheckResult:
        start_time = time.monotonic()
        result = self.reconciler.reconcile(
            self.source_store,
            self.dest_store,
            fact.database,
            fact.collection,
            fact.identifier
        )
        if self.metrics is not None:
            self.metrics.record_check(result, time.monotonic() - start_time)
        return result

    def _record(
        self,
        context: ReconciliationContext,
        line_number: int,
        result: CheckResult
    ) -> None:
        if result.status is CheckStatus.ERROR:
            logger.warning(f"Line {line_number}: Error checking doc: {result.details}")

        self.aggregator.record(context, result)
