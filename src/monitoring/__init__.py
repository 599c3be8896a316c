"""
Monitoring Module for Sync Reconciliation

Prometheus metrics for log-driven reconciliation runs.

Usage:
    from src.monitoring import ReconciliationMetrics

    metrics = ReconciliationMetrics()
    pipeline = LogReconciliationPipeline(source, dest, metrics=metrics)
    pipeline.run(lines)
    metrics.push("pushgateway:9091")
"""

from src.monitoring.metrics import ReconciliationMetrics

__all__ = [
    "ReconciliationMetrics",
]

__version__ = "1.0.0"
