"""
Result Aggregator for Sync Reconciliation

Folds CheckResults into per-namespace counters and a discrepancy list.
Repeated identifiers are counted every time they are seen.
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from src.reconciliation.reconciler import CheckResult, CheckStatus

logger = logging.getLogger(__name__)


@dataclass
class Stats:
    """Counters for one namespace."""

    total_checks: int = 0
    matches: int = 0
    mismatches: int = 0
    missing_in_source: int = 0
    missing_in_dest: int = 0
    errors: int = 0

    def record(self, status: CheckStatus) -> None:
        if status is CheckStatus.MATCH:
            self.matches += 1
        elif status is CheckStatus.MISMATCH:
            self.mismatches += 1
        elif status is CheckStatus.MISSING_IN_SOURCE:
            self.missing_in_source += 1
        elif status is CheckStatus.MISSING_IN_DEST:
            self.missing_in_dest += 1
        elif status is CheckStatus.ERROR:
            self.errors += 1
        else:
            raise ValueError(f"Unknown check status: {status}")

        self.total_checks += 1

    @property
    def discrepancies(self) -> int:
        return self.total_checks - self.matches

    def as_dict(self) -> Dict[str, int]:
        return {
            "total_checks": self.total_checks,
            "matches": self.matches,
            "mismatches": self.mismatches,
            "missing_in_source": self.missing_in_source,
            "missing_in_dest": self.missing_in_dest,
            "errors": self.errors,
        }


@dataclass
class ReconciliationContext:
    """
    All accumulated state of one reconciliation run.

    Attributes:
        stats: Per-namespace counters, created on first result for a namespace
        discrepancies: Every non-Match result in the order it was recorded
        extraction_outcomes: How many log lines ended in each extraction outcome
        lines_read: Number of log lines consumed
        cancelled: Whether the run stopped before the end of the input
    """

    stats: Dict[str, Stats] = field(default_factory=dict)
    discrepancies: List[CheckResult] = field(default_factory=list)
    extraction_outcomes: Counter = field(default_factory=Counter)
    lines_read: int = 0
    cancelled: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def total_checks(self) -> int:
        return sum(s.total_checks for s in self.stats.values())


class Aggregator:
    """Folds check results into a ReconciliationContext."""

    def record(self, context: ReconciliationContext, result: CheckResult) -> None:
        """
        Add one result to the context.

        Safe to call from several threads; updates are serialized on the
        context lock.

        Args:
            context: Run state to update
            result: Result to record
        """
        with context.lock:
            stats = context.stats.get(result.namespace)
            if stats is None:
                stats = context.stats[result.namespace] = Stats()
            stats.record(result.status)

            if result.is_discrepancy:
                context.discrepancies.append(result)

    def fold(
        self,
        results: Iterable[CheckResult],
        context: Optional[ReconciliationContext] = None
    ) -> Tuple[Dict[str, Stats], List[CheckResult]]:
        """
        Fold a sequence of results.

        Args:
            results: Results in processing order
            context: Existing run state to extend (a new one if omitted)

        Returns:
            Tuple of (stats per namespace, discrepancy list)
        """
        if context is None:
            context = ReconciliationContext()

        count = 0
        for result in results:
            self.record(context, result)
            count += 1

        logger.debug(f"Folded {count} results into {len(context.stats)} namespaces")
        return context.stats, context.discrepancies
