"""
Reconciliation Report Rendering

Turns a finished ReconciliationContext into a console report or a
JSON-serialisable dictionary.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from src.reconciliation.aggregator import ReconciliationContext
from src.reconciliation.extractor import ExtractionOutcome


def render_text_report(context: ReconciliationContext) -> str:
    """
    Render the human-readable report.

    Namespaces are listed in sorted order; discrepancies in the order
    they were recorded.
    """
    lines: List[str] = ["", "=== Analysis Report ==="]

    for namespace in sorted(context.stats):
        s = context.stats[namespace]
        lines.extend([
            "",
            f"Namespace: {namespace}",
            f"  Total Checks: {s.total_checks}",
            f"  Matches: {s.matches}",
            f"  Mismatches: {s.mismatches}",
            f"  Missing in Source: {s.missing_in_source}",
            f"  Missing in Dest: {s.missing_in_dest}",
            f"  Errors: {s.errors}",
        ])

    if context.discrepancies:
        lines.extend(["", "=== Discrepancies ==="])
        for d in context.discrepancies:
            lines.append(
                f"[{d.namespace}] ID: {d.identifier} | "
                f"Status: {d.status.value} | Details: {d.details}"
            )

    if context.cancelled:
        lines.extend(["", "Run was cancelled before the end of the log; results are partial."])

    return "\n".join(lines)


def extraction_coverage(context: ReconciliationContext) -> Dict[str, int]:
    """Count log lines per extraction outcome, including zero counts."""
    return {
        outcome.value: context.extraction_outcomes.get(outcome, 0)
        for outcome in ExtractionOutcome
    }


def build_report(
    context: ReconciliationContext,
    log_file: Optional[str] = None,
    run_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Build a JSON-serialisable report.

    Args:
        context: Finished run state
        log_file: Log file the run was driven from
        run_id: ID of the run

    Returns:
        Report dictionary
    """
    total = context.total_checks
    errors = sum(s.errors for s in context.stats.values())
    issues = len(context.discrepancies) - errors
    decided = total - errors
    accuracy = ((decided - issues) / decided * 100) if decided > 0 else 100.0

    return {
        "run_id": run_id,
        "log_file": log_file,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "cancelled": context.cancelled,
        "lines_read": context.lines_read,
        "extraction": extraction_coverage(context),
        "total_checks": total,
        "namespaces": {
            namespace: context.stats[namespace].as_dict()
            for namespace in sorted(context.stats)
        },
        "discrepancies": [
            {
                "namespace": d.namespace,
                "id": str(d.identifier),
                "status": d.status.value,
                "details": d.details,
            }
            for d in context.discrepancies
        ],
        "accuracy_percentage": round(accuracy, 2),
        "recommendation": get_recommendation(decided, issues, errors),
    }


def get_recommendation(decided: int, issues: int, errors: int) -> str:
    """Get recommendation based on the share of confirmed discrepancies."""
    if errors:
        suffix = f" ({errors} checks failed and should be re-run)"
    else:
        suffix = ""

    if issues == 0:
        return "No action needed - all checked documents are consistent" + suffix

    issue_pct = (issues / decided * 100) if decided > 0 else 0

    if issue_pct < 1:
        return "Minor discrepancies detected - review the listed documents" + suffix
    elif issue_pct < 5:
        return "Moderate discrepancies detected - re-sync of affected namespaces recommended" + suffix
    else:
        return "Significant discrepancies detected - immediate re-sync required" + suffix
