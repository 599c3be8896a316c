"""
Prometheus Metrics for Sync Reconciliation

Counters and histograms describing a log-driven reconciliation run.
Metrics can be pushed to a Pushgateway at the end of a run.
"""

import logging
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, push_to_gateway

from src.reconciliation.aggregator import ReconciliationContext
from src.reconciliation.extractor import ExtractionOutcome
from src.reconciliation.reconciler import CheckResult

logger = logging.getLogger(__name__)


class ReconciliationMetrics:
    """Prometheus metrics for reconciliation runs."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize reconciliation metrics.

        Args:
            registry: Prometheus registry (a private one is created if omitted)
        """
        self.registry = registry or CollectorRegistry()

        # Per-document checks
        self.checks_total = Counter(
            'sync_audit_checks_total',
            'Total document checks by namespace and status',
            ['namespace', 'status'],
            registry=self.registry
        )

        # Extraction coverage
        self.log_lines_total = Counter(
            'sync_audit_log_lines_total',
            'Total log lines processed by extraction outcome',
            ['outcome'],
            registry=self.registry
        )

        # Duration of a single reconcile call (two lookups plus comparison)
        self.check_duration_seconds = Histogram(
            'sync_audit_check_duration_seconds',
            'Duration of a single document check in seconds',
            ['namespace'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10],
            registry=self.registry
        )

        self.run_duration_seconds = Gauge(
            'sync_audit_run_duration_seconds',
            'Duration of the last reconciliation run in seconds',
            registry=self.registry
        )

        self.open_discrepancies = Gauge(
            'sync_audit_discrepancies',
            'Discrepancies found in the last run',
            ['namespace'],
            registry=self.registry
        )

        logger.debug("ReconciliationMetrics initialized")

    def record_extraction(self, outcome: ExtractionOutcome) -> None:
        """Count one log line by its extraction outcome."""
        self.log_lines_total.labels(outcome=outcome.value).inc()

    def record_check(self, result: CheckResult, duration_seconds: float) -> None:
        """
        Record one reconciled document.

        Args:
            result: Check result
            duration_seconds: Time spent reconciling it
        """
        self.checks_total.labels(
            namespace=result.namespace,
            status=result.status.value
        ).inc()

        self.check_duration_seconds.labels(
            namespace=result.namespace
        ).observe(duration_seconds)

    def record_run(self, context: ReconciliationContext, duration_seconds: float) -> None:
        """
        Record the end of a run.

        Args:
            context: Final run state
            duration_seconds: Total run duration
        """
        self.run_duration_seconds.set(duration_seconds)

        for namespace, stats in context.stats.items():
            self.open_discrepancies.labels(namespace=namespace).set(stats.discrepancies)

        logger.debug(
            f"Recorded run metrics: duration={duration_seconds:.2f}s, "
            f"namespaces={len(context.stats)}"
        )

    def push(
        self,
        gateway_url: str,
        job_name: str = "sync_audit",
        grouping_key: Optional[Dict] = None
    ) -> None:
        """
        Push metrics to Prometheus Pushgateway.

        Args:
            gateway_url: Pushgateway URL
            job_name: Job name for metrics
            grouping_key: Optional grouping key labels

        Raises:
            Exception: If push fails
        """
        try:
            push_to_gateway(
                gateway_url,
                job=job_name,
                registry=self.registry,
                grouping_key=grouping_key or {}
            )
            logger.info(f"Pushed metrics to gateway: {gateway_url}")
        except Exception as e:
            logger.error(f"Failed to push metrics to gateway: {e}")
            raise
