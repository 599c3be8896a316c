"""
Document Comparer for Sync Reconciliation

Compares the same document as read from the source and the destination
MongoDB deployments.

Comparison is tiered:
1. Raw BSON bytes are compared for exact equality.
2. If the bytes differ, both documents are decoded and compared
   structurally, so that field reordering by the storage engine is not
   reported as an inconsistency.
"""

import logging
import math
from collections.abc import Mapping
from typing import Any, Dict, List, Union

import bson
from bson.raw_bson import RawBSONDocument

logger = logging.getLogger(__name__)

Document = Union[RawBSONDocument, Mapping[str, Any]]


class DocumentComparer:
    """
    Compares source and destination documents.

    Structural equality rules:
    - Field maps (documents, sub-documents) are order-insensitive but must
      have the same set of keys
    - Arrays are order-sensitive
    - Booleans never equal numbers, and ints never equal floats
    - NaN equals NaN
    - Everything else uses plain equality
    """

    def __init__(self):
        """Initialize the document comparer."""
        logger.debug("Initialized DocumentComparer")

    def compare(self, source_doc: Document, dest_doc: Document) -> bool:
        """
        Compare two documents for equality.

        Args:
            source_doc: Document from the source deployment
            dest_doc: Document from the destination deployment

        Returns:
            True if the documents are equal, False otherwise
        """
        source_raw = self.raw_bytes(source_doc)
        dest_raw = self.raw_bytes(dest_doc)

        if source_raw == dest_raw:
            return True

        logger.debug("Raw encodings differ, falling back to structural comparison")
        return self._values_equal(self.decode(source_doc), self.decode(dest_doc))

    def differing_fields(self, source_doc: Document, dest_doc: Document) -> List[str]:
        """
        Get the top-level fields that differ between two documents.

        Fields present on only one side count as differing.

        Args:
            source_doc: Document from the source deployment
            dest_doc: Document from the destination deployment

        Returns:
            Sorted list of field names
        """
        source_map = self.decode(source_doc)
        dest_map = self.decode(dest_doc)

        differing = []
        for field in set(source_map.keys()) | set(dest_map.keys()):
            if field not in source_map or field not in dest_map:
                differing.append(field)
            elif not self._values_equal(source_map[field], dest_map[field]):
                differing.append(field)

        return sorted(differing)

    @staticmethod
    def raw_bytes(doc: Document) -> bytes:
        """Get the exact BSON encoding of a document."""
        if isinstance(doc, RawBSONDocument):
            return doc.raw
        return bson.encode(doc)

    @staticmethod
    def decode(doc: Document) -> Dict[str, Any]:
        """
        Decode a document into plain nested dicts and lists.

        Args:
            doc: Raw or already-decoded document

        Returns:
            Field-value mapping
        """
        if isinstance(doc, RawBSONDocument):
            return bson.decode(doc.raw)
        return dict(doc)

    def _values_equal(self, value1: Any, value2: Any) -> bool:
        """
        Compare two decoded values for deep equality.

        Args:
            value1: First value
            value2: Second value

        Returns:
            True if values are equal
        """
        # Handle None/null
        if value1 is None or value2 is None:
            return value1 is None and value2 is None

        # bool is an int subclass, keep them apart
        if isinstance(value1, bool) or isinstance(value2, bool):
            return type(value1) is type(value2) and value1 == value2

        # int32/int64 vs double
        if isinstance(value1, (int, float)) and isinstance(value2, (int, float)):
            if isinstance(value1, float) != isinstance(value2, float):
                return False
            if isinstance(value1, float) and math.isnan(value1) and math.isnan(value2):
                return True
            return value1 == value2

        # Handle list comparison (order matters)
        if isinstance(value1, list) and isinstance(value2, list):
            if len(value1) != len(value2):
                return False
            return all(self._values_equal(v1, v2) for v1, v2 in zip(value1, value2))

        # Handle sub-documents (order does not matter)
        if isinstance(value1, Mapping) and isinstance(value2, Mapping):
            if set(value1.keys()) != set(value2.keys()):
                return False
            return all(
                self._values_equal(value1[k], value2[k])
                for k in value1.keys()
            )

        if isinstance(value1, (list, Mapping)) or isinstance(value2, (list, Mapping)):
            return False

        # Default comparison
        return value1 == value2
