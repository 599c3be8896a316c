#!/usr/bin/env python3
"""
Sync Audit Tool for MongoDB Migrations

Re-verifies every document named in a sync tool's failure log against the
source and destination MongoDB deployments, and reports per-namespace
consistency with support for:
- Bounded concurrent lookups
- Connection strings from arguments, environment or Vault
- Extraction-only dry runs
- Text or JSON reports and Pushgateway metrics

Usage:
    ./scripts/reconcile.py reconcile --logfile errors.csv --source mongodb://a --dest mongodb://b
    ./scripts/reconcile.py reconcile --logfile errors.csv --vault-secret sync-audit/prod --workers 8
    ./scripts/reconcile.py extract --logfile errors.csv
"""

import sys
import os
import argparse
import logging
import json
import signal
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Tuple

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from hvac.exceptions import VaultError

from src.monitoring import ReconciliationMetrics
from src.reconciliation import (
    LogReconciliationPipeline,
    LogSourceError,
    MongoDocumentStore,
    StoreConnectionError,
    build_report,
    read_log_lines,
    render_text_report,
)
from src.reconciliation.report import extraction_coverage
from src.reconciliation.stores import DEFAULT_TIMEOUT_MS
from src.utils.run_context import RunContext, run_id_filter
from src.utils.vault_client import VaultClient


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter with run ID support."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'run_id': getattr(record, 'run_id', None),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


logger = logging.getLogger("sync_audit")

# Run finished and reported, but metrics did not reach the Pushgateway
EXIT_PUSH_FAILED = 2


def configure_logging(verbose: bool = False) -> None:
    """Configure the root logger for console or JSON output."""
    handler = logging.StreamHandler()
    handler.addFilter(run_id_filter)

    if os.getenv('JSON_LOGGING', 'false').lower() == 'true':
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    # pymongo is chatty at DEBUG
    logging.getLogger("pymongo").setLevel(logging.WARNING)


def resolve_uris(args: argparse.Namespace) -> Tuple[str, str]:
    """
    Resolve source and destination connection strings.

    Vault wins when --vault-secret is given; otherwise arguments, then
    SOURCE_MONGO_URI / DEST_MONGO_URI.
    """
    if args.vault_secret:
        with VaultClient() as vault:
            return vault.get_mongo_uris(args.vault_secret)

    source_uri = args.source or os.getenv("SOURCE_MONGO_URI")
    dest_uri = args.dest or os.getenv("DEST_MONGO_URI")

    if not source_uri or not dest_uri:
        raise ValueError(
            "Source and destination URIs are required "
            "(--source/--dest, SOURCE_MONGO_URI/DEST_MONGO_URI or --vault-secret)"
        )

    return source_uri, dest_uri


def install_interrupt_handler(stop_event: threading.Event) -> None:
    """Stop the run between lines on the first SIGINT, abort on the second."""
    def handler(signum, frame):
        if stop_event.is_set():
            raise KeyboardInterrupt
        logger.warning("Interrupt received, finishing current work and stopping")
        stop_event.set()

    signal.signal(signal.SIGINT, handler)


def run_reconcile(args: argparse.Namespace, run_id: str) -> int:
    """Run the reconcile command."""
    source_uri, dest_uri = resolve_uris(args)

    # Fail on an unreadable log before connecting anywhere
    lines = read_log_lines(args.logfile)
    first = next(lines, None)

    metrics = ReconciliationMetrics()
    stop_event = threading.Event()
    install_interrupt_handler(stop_event)

    with MongoDocumentStore(source_uri, "source", args.timeout_ms) as source, \
            MongoDocumentStore(dest_uri, "dest", args.timeout_ms) as dest:
        pipeline = LogReconciliationPipeline(
            source,
            dest,
            max_workers=args.workers,
            batch_size=args.batch_size,
            metrics=metrics,
            stop_event=stop_event
        )
        context = pipeline.run(_prepend(first, lines))

    if args.output == "json":
        print(json.dumps(build_report(context, args.logfile, run_id), indent=2))
    else:
        print(render_text_report(context))

    if args.pushgateway:
        try:
            metrics.push(args.pushgateway, grouping_key={"run_id": run_id})
        except Exception as e:
            logger.error(f"Metrics push to {args.pushgateway} failed: {e}")
            return EXIT_PUSH_FAILED

    return 0


def run_extract(args: argparse.Namespace, run_id: str) -> int:
    """Run the extract command (no database access)."""
    pipeline = LogReconciliationPipeline(source_store=None, dest_store=None)
    context = pipeline.scan(read_log_lines(args.logfile))

    print(json.dumps({
        "run_id": run_id,
        "log_file": args.logfile,
        "lines_read": context.lines_read,
        "extraction": extraction_coverage(context),
    }, indent=2))
    return 0


def _prepend(first, rest):
    if first is not None:
        yield first
    yield from rest


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Sync Audit Tool for MongoDB Migrations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Reconcile command
    reconcile_parser = subparsers.add_parser("reconcile", help="Re-verify documents from a failure log")
    reconcile_parser.add_argument("--logfile", required=True, help="Path to the CSV log file")
    reconcile_parser.add_argument("--source", help="Source MongoDB connection string")
    reconcile_parser.add_argument("--dest", help="Destination MongoDB connection string")
    reconcile_parser.add_argument("--vault-secret", help="Vault KV path holding source_uri and dest_uri")
    reconcile_parser.add_argument("--workers", type=int, default=1, help="Concurrent document checks")
    reconcile_parser.add_argument("--batch-size", type=int, default=100, help="Documents per batch when workers > 1")
    reconcile_parser.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS, help="Per-lookup timeout")
    reconcile_parser.add_argument("--output", choices=["text", "json"], default="text")
    reconcile_parser.add_argument("--pushgateway", help="Prometheus Pushgateway address")

    # Extract command
    extract_parser = subparsers.add_parser("extract", help="Report extraction coverage only")
    extract_parser.add_argument("--logfile", required=True, help="Path to the CSV log file")

    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    configure_logging(args.verbose)

    with RunContext() as run_id:
        try:
            if args.command == "reconcile":
                return run_reconcile(args, run_id)
            return run_extract(args, run_id)

        except (LogSourceError, StoreConnectionError, VaultError, KeyError, ValueError) as e:
            logger.error(f"Error: {e}", exc_info=args.verbose)
            return 1


if __name__ == "__main__":
    sys.exit(main())
