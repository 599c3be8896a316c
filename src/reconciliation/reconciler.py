"""
Document Reconciler for Sync Reconciliation

Classifies the state of one document across the source and destination
deployments.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from bson import ObjectId

from src.reconciliation.comparer import DocumentComparer
from src.reconciliation.stores import DocumentStore

logger = logging.getLogger(__name__)

BOTH_MISSING_DETAILS = "Document missing from both databases"


class CheckStatus(Enum):
    """Outcome of reconciling one document."""

    MATCH = "Match"
    MISMATCH = "Mismatch"
    MISSING_IN_SOURCE = "MissingInSource"
    MISSING_IN_DEST = "MissingInDest"
    ERROR = "Error"


@dataclass(frozen=True)
class CheckResult:
    """Result of reconciling one document."""

    namespace: str
    identifier: ObjectId
    status: CheckStatus
    details: str = ""

    @property
    def is_discrepancy(self) -> bool:
        return self.status is not CheckStatus.MATCH


class DocumentReconciler:
    """
    Compares one document between two stores.

    Protocol:
    - Source lookup first; an error there short-circuits to ERROR and the
      destination is not queried
    - Destination lookup next, same error policy
    - Absent on both sides is a MATCH
    - Absent on one side is MISSING_IN_SOURCE or MISSING_IN_DEST
    - Present on both sides goes through the tiered document comparison

    Lookup errors are captured in the result and never raised, so one bad
    document cannot abort a run.
    """

    def __init__(self, comparer: Optional[DocumentComparer] = None):
        """
        Initialize the reconciler.

        Args:
            comparer: Document comparer (a default one is created if omitted)
        """
        self.comparer = comparer or DocumentComparer()
        logger.debug("Initialized DocumentReconciler")

    def reconcile(
        self,
        source_store: DocumentStore,
        dest_store: DocumentStore,
        database: str,
        collection: str,
        object_id: ObjectId
    ) -> CheckResult:
        """
        Reconcile one document.

        Args:
            source_store: Store for the source deployment
            dest_store: Store for the destination deployment
            database: Database name
            collection: Collection name
            object_id: Document _id

        Returns:
            CheckResult classifying the document
        """
        namespace = f"{database}.{collection}"

        try:
            source_doc = source_store.find_by_identifier(database, collection, object_id)
        except Exception as e:
            return CheckResult(namespace, object_id, CheckStatus.ERROR, f"Source error: {e}")

        try:
            dest_doc = dest_store.find_by_identifier(database, collection, object_id)
        except Exception as e:
            return CheckResult(namespace, object_id, CheckStatus.ERROR, f"Dest error: {e}")

        if source_doc is None and dest_doc is None:
            return CheckResult(namespace, object_id, CheckStatus.MATCH, BOTH_MISSING_DETAILS)

        if source_doc is None:
            return CheckResult(namespace, object_id, CheckStatus.MISSING_IN_SOURCE)
        if dest_doc is None:
            return CheckResult(namespace, object_id, CheckStatus.MISSING_IN_DEST)

        if self.comparer.compare(source_doc, dest_doc):
            return CheckResult(namespace, object_id, CheckStatus.MATCH)

        fields = self.comparer.differing_fields(source_doc, dest_doc)
        logger.debug(f"{namespace} {object_id} differs in fields: {fields}")

        return CheckResult(
            namespace,
            object_id,
            CheckStatus.MISMATCH,
            f"Differing fields: {', '.join(fields)}"
        )
