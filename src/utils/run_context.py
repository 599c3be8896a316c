"""
Run ID Utility for Sync Reconciliation

Every reconciliation run gets an ID that is attached to its log records,
so lines from concurrent or repeated runs can be told apart.
"""

import contextvars
import logging
import uuid
from typing import Optional

logger = logging.getLogger(__name__)

_run_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'run_id',
    default=None
)


def generate_run_id() -> str:
    """
    Generate a new run ID using UUID4.

    Returns:
        String representation of a UUID4
    """
    return str(uuid.uuid4())


def get_run_id() -> Optional[str]:
    """Get the current run ID, or None if not set."""
    return _run_id.get()


def set_run_id(run_id: str) -> None:
    """
    Set the run ID in the current context.

    Args:
        run_id: Run ID to set

    Raises:
        ValueError: If run_id is empty or not a string
    """
    if not run_id or not isinstance(run_id, str):
        raise ValueError("Run ID must be a non-empty string")

    _run_id.set(run_id)
    logger.debug(f"Set run ID: {run_id}")


def get_or_create_run_id() -> str:
    """
    Get the current run ID or create one if not set.

    Returns:
        Current or newly created run ID
    """
    run_id = get_run_id()

    if not run_id:
        run_id = generate_run_id()
        set_run_id(run_id)

    return run_id


def clear_run_id() -> None:
    """Clear the run ID from context."""
    _run_id.set(None)


class RunContext:
    """
    Context manager scoping a run ID.

    The previous run ID (if any) is restored on exit.
    """

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id
        self.previous_id = None

    def __enter__(self) -> str:
        self.previous_id = get_run_id()

        if not self.run_id:
            self.run_id = generate_run_id()
        set_run_id(self.run_id)

        return self.run_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.previous_id:
            set_run_id(self.previous_id)
        else:
            clear_run_id()


def run_id_filter(record: logging.LogRecord) -> bool:
    """
    Logging filter adding the run ID to log records.

    Returns:
        True (always allow record)
    """
    record.run_id = get_run_id() or "N/A"
    return True
