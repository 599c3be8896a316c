"""
Record Extractor for Sync Failure Logs

Turns the free-text message of one sync log line into a
(namespace, ObjectId) fact, or decides the line carries nothing to check.

The message format written by the sync tool looks like:

    ... ERR Isolated retry still failed retryErr="... collection: db.col ..."
    ... id="{\\"$oid\\":\\"693885e2f227ce8067db8d33\\"}" key=...

The identifier is an extended-JSON fragment whose quotes are still
backslash-escaped after CSV unescaping, so it needs one unescape pass
before it can be decoded.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Optional, Sequence, Tuple

from bson import ObjectId
from bson import json_util
from bson.errors import BSONError

logger = logging.getLogger(__name__)

RETRY_FAILURE_MARKER = "Isolated retry still failed"

NAMESPACE_PATTERN = re.compile(r"collection:\s*([a-zA-Z0-9_.]+)")
IDENTIFIER_FRAGMENT_PATTERN = re.compile(r'id="(\{.*?\})"')

ESCAPED_QUOTE = '\\"'


class MalformedIdentifierError(ValueError):
    """Raised when an identifier fragment is present but cannot be decoded."""


class InvalidNamespaceError(ValueError):
    """Raised when a namespace cannot be split into database and collection."""


class LogLine(NamedTuple):
    """One row of the sync failure log export."""

    timestamp: str
    label: str
    process_key: str
    message: str

    @classmethod
    def from_row(cls, row: Sequence[str]) -> "LogLine":
        """
        Build a LogLine from a parsed CSV row.

        Raises:
            ValueError: If the row does not have exactly four fields
        """
        if len(row) != 4:
            raise ValueError(f"Expected 4 fields, got {len(row)}")
        return cls(*row)


class ExtractionOutcome(Enum):
    """Why a message did or did not produce a fact."""

    EXTRACTED = "extracted"
    IRRELEVANT = "irrelevant"
    NO_NAMESPACE = "no_namespace"
    NO_IDENTIFIER = "no_identifier"
    MALFORMED_IDENTIFIER = "malformed_identifier"
    INVALID_NAMESPACE = "invalid_namespace"


def split_namespace(namespace: str) -> Tuple[str, str]:
    """
    Split a namespace on its first dot into (database, collection).

    Raises:
        InvalidNamespaceError: If there is no dot or either side is empty
    """
    database, sep, collection = namespace.partition(".")
    if not sep or not database or not collection:
        raise InvalidNamespaceError(f"Invalid namespace {namespace!r}")
    return database, collection


@dataclass(frozen=True)
class ExtractedFact:
    """A document to re-verify: where it lives and its _id."""

    namespace: str
    identifier: ObjectId

    @property
    def database(self) -> str:
        return split_namespace(self.namespace)[0]

    @property
    def collection(self) -> str:
        return split_namespace(self.namespace)[1]


def match_namespace(message: str) -> Optional[str]:
    """Return the first `collection: <db>.<collection>` token, if any."""
    match = NAMESPACE_PATTERN.search(message)
    return match.group(1) if match else None


def match_identifier_fragment(message: str) -> Optional[str]:
    """Return the raw `{...}` fragment assigned to `id="..."`, if any."""
    match = IDENTIFIER_FRAGMENT_PATTERN.search(message)
    return match.group(1) if match else None


def unescape_fragment(fragment: str) -> str:
    """Undo the inner backslash escaping of quotes."""
    return fragment.replace(ESCAPED_QUOTE, '"')


def decode_identifier(fragment: str) -> ObjectId:
    """
    Decode an extended-JSON `{"$oid": "<24 hex>"}` fragment.

    Args:
        fragment: Cleaned (already unescaped) JSON text

    Returns:
        The decoded ObjectId

    Raises:
        MalformedIdentifierError: If the fragment is not a valid $oid object
    """
    try:
        value = json_util.loads(fragment)
    except (ValueError, TypeError, BSONError) as e:
        raise MalformedIdentifierError(f"Cannot decode {fragment!r}: {e}") from e

    if not isinstance(value, ObjectId):
        raise MalformedIdentifierError(
            f"Fragment {fragment!r} is not an ObjectId, got {type(value).__name__}"
        )

    return value


class RecordExtractor:
    """
    Extracts (namespace, ObjectId) facts from sync failure messages.

    Stateless: every call depends only on the message text, so one instance
    can be shared across threads.
    """

    def __init__(self, marker: str = RETRY_FAILURE_MARKER):
        self.marker = marker

    def extract(self, message: str) -> Optional[ExtractedFact]:
        """
        Extract a fact from a log message.

        Args:
            message: Message field of a log line

        Returns:
            ExtractedFact, or None if the message yields no fact
        """
        _, fact = self.inspect(message)
        return fact

    def inspect(self, message: str) -> Tuple[ExtractionOutcome, Optional[ExtractedFact]]:
        """
        Extract a fact and report the outcome of the attempt.

        Malformed identifier fragments and invalid namespaces are logged
        as warnings; lines that are simply irrelevant or carry no
        identifier are not.

        Returns:
            Tuple of (outcome, fact); fact is None unless outcome is EXTRACTED
        """
        if self.marker not in message:
            return ExtractionOutcome.IRRELEVANT, None

        namespace = match_namespace(message)
        if namespace is None:
            return ExtractionOutcome.NO_NAMESPACE, None

        fragment = match_identifier_fragment(message)
        if fragment is None:
            return ExtractionOutcome.NO_IDENTIFIER, None

        logger.debug(f"Matched identifier fragment {fragment!r} for {namespace}")

        cleaned = unescape_fragment(fragment)
        try:
            identifier = decode_identifier(cleaned)
        except MalformedIdentifierError as e:
            logger.warning(
                f"Malformed identifier fragment {fragment!r} "
                f"(cleaned: {cleaned!r}): {e}"
            )
            return ExtractionOutcome.MALFORMED_IDENTIFIER, None

        try:
            split_namespace(namespace)
        except InvalidNamespaceError as e:
            logger.warning(f"Skipping identifier {identifier}: {e}")
            return ExtractionOutcome.INVALID_NAMESPACE, None

        return ExtractionOutcome.EXTRACTED, ExtractedFact(namespace, identifier)
