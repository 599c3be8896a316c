"""
Unit tests for the record extractor.

Tests namespace and identifier extraction from sync failure messages.
"""

import csv
import io
import logging

import pytest
from bson import ObjectId

from src.reconciliation.extractor import (
    ExtractedFact,
    ExtractionOutcome,
    InvalidNamespaceError,
    LogLine,
    MalformedIdentifierError,
    RecordExtractor,
    decode_identifier,
    match_identifier_fragment,
    match_namespace,
    split_namespace,
    unescape_fragment,
)
from tests.conftest import SAMPLE_OID, retry_failure_message


class TestMatchers:
    """Test the individual matchers."""

    def test_match_namespace(self):
        """Test namespace token is found after the marker label."""
        assert match_namespace("error collection: testshard.col2 index: _id_") == "testshard.col2"

    def test_match_namespace_allows_underscores_and_digits(self):
        """Test namespace characters beyond letters."""
        assert match_namespace("collection:my_db2.orders_v1 x") == "my_db2.orders_v1"

    def test_match_namespace_absent(self):
        """Test message without the collection marker."""
        assert match_namespace("Isolated retry still failed id=\"{}\"") is None

    def test_match_identifier_fragment_is_non_greedy(self):
        """Test the fragment stops at the first closing brace and quote."""
        message = 'id="{\\"$oid\\":\\"abc\\"}" other="{\\"x\\":1}"'
        assert match_identifier_fragment(message) == '{\\"$oid\\":\\"abc\\"}'

    def test_match_identifier_fragment_absent(self):
        """Test message without an id fragment."""
        assert match_identifier_fragment("collection: a.b key=1") is None

    def test_unescape_fragment(self):
        """Test every escaped quote is unescaped."""
        assert unescape_fragment('{\\"$oid\\":\\"abc\\"}') == '{"$oid":"abc"}'

    def test_unescape_fragment_without_escapes(self):
        """Test already clean fragments are unchanged."""
        assert unescape_fragment('{"$oid":"abc"}') == '{"$oid":"abc"}'


class TestDecodeIdentifier:
    """Test extended-JSON identifier decoding."""

    def test_decode_valid_oid(self):
        """Test a valid $oid decodes to its ObjectId."""
        oid = decode_identifier('{"$oid":"%s"}' % SAMPLE_OID)

        assert isinstance(oid, ObjectId)
        assert str(oid) == SAMPLE_OID
        assert len(oid.binary) == 12

    def test_decode_invalid_hex(self):
        """Test non-hex content is rejected."""
        with pytest.raises(MalformedIdentifierError):
            decode_identifier('{"$oid":"zz3885e2f227ce8067db8d33"}')

    def test_decode_wrong_length(self):
        """Test a short hex string is rejected."""
        with pytest.raises(MalformedIdentifierError):
            decode_identifier('{"$oid":"693885e2"}')

    def test_decode_invalid_json(self):
        """Test broken JSON is rejected."""
        with pytest.raises(MalformedIdentifierError):
            decode_identifier('{"$oid":')

    def test_decode_non_oid_object(self):
        """Test a JSON object that is not an $oid is rejected."""
        with pytest.raises(MalformedIdentifierError, match="not an ObjectId"):
            decode_identifier('{"name":"x"}')

    def test_decode_still_escaped_fragment(self):
        """Test a fragment that was not unescaped is rejected."""
        with pytest.raises(MalformedIdentifierError):
            decode_identifier('{\\"$oid\\":\\"%s\\"}' % SAMPLE_OID)


class TestSplitNamespace:
    """Test namespace splitting."""

    def test_split_on_first_dot(self):
        """Test collection names may contain dots."""
        assert split_namespace("db.system.views") == ("db", "system.views")

    @pytest.mark.parametrize("namespace", ["nodot", "db.", ".col"])
    def test_invalid_namespaces(self, namespace):
        """Test namespaces without both parts are rejected."""
        with pytest.raises(InvalidNamespaceError):
            split_namespace(namespace)


class TestRecordExtractor:
    """Test end-to-end extraction from messages."""

    @pytest.fixture
    def extractor(self):
        return RecordExtractor()

    def test_extract_sample_message(self, extractor):
        """Test the documented sample message."""
        fact = extractor.extract(retry_failure_message())

        assert fact == ExtractedFact("testshard.col2", ObjectId(SAMPLE_OID))
        assert fact.database == "testshard"
        assert fact.collection == "col2"

    def test_extract_from_csv_row(self, extractor):
        """Test extraction from a message as parsed out of the raw CSV row."""
        raw = (
            'date,pod,process,message\n'
            '2025-10-15,pod,proc,"Isolated retry still failed ... collection: testshard.col2 '
            '... id=""{\\""$oid\\"":\\""693885e2f227ce8067db8d33\\""}"" ..."\n'
        )
        rows = list(csv.reader(io.StringIO(raw)))
        line = LogLine.from_row(rows[1])

        fact = extractor.extract(line.message)

        assert fact.namespace == "testshard.col2"
        assert str(fact.identifier) == SAMPLE_OID

    def test_extract_is_idempotent(self, extractor):
        """Test repeated extraction gives the same result."""
        message = retry_failure_message()
        assert extractor.extract(message) == extractor.extract(message)

    def test_irrelevant_line(self, extractor):
        """Test lines without the retry failure marker are skipped."""
        message = retry_failure_message().replace("Isolated retry still failed", "Write ok")

        assert extractor.inspect(message) == (ExtractionOutcome.IRRELEVANT, None)

    def test_missing_namespace(self, extractor):
        """Test a message lacking the collection marker yields no fact."""
        message = 'ERR Isolated retry still failed id="{\\"$oid\\":\\"%s\\"}"' % SAMPLE_OID

        assert extractor.inspect(message) == (ExtractionOutcome.NO_NAMESPACE, None)

    def test_missing_identifier(self, extractor, caplog):
        """Test a message without an id fragment yields no fact and no warning."""
        message = "ERR Isolated retry still failed collection: a.b key=1"

        with caplog.at_level(logging.WARNING):
            outcome, fact = extractor.inspect(message)

        assert outcome is ExtractionOutcome.NO_IDENTIFIER
        assert fact is None
        assert caplog.records == []

    def test_malformed_identifier_is_logged(self, extractor, caplog):
        """Test invalid hex is logged and yields no fact."""
        message = retry_failure_message(oid="not-a-valid-object-id-xx")

        with caplog.at_level(logging.WARNING):
            outcome, fact = extractor.inspect(message)

        assert outcome is ExtractionOutcome.MALFORMED_IDENTIFIER
        assert fact is None
        assert "Malformed identifier fragment" in caplog.text

    def test_invalid_namespace_is_logged(self, extractor, caplog):
        """Test a namespace without a dot is logged and yields no fact."""
        message = retry_failure_message(namespace="nodot")

        with caplog.at_level(logging.WARNING):
            outcome, fact = extractor.inspect(message)

        assert outcome is ExtractionOutcome.INVALID_NAMESPACE
        assert fact is None
        assert "Invalid namespace" in caplog.text

    def test_custom_marker(self):
        """Test the pre-filter marker can be changed."""
        extractor = RecordExtractor(marker="retry failed")
        message = retry_failure_message().replace("Isolated retry still failed", "retry failed")

        assert extractor.extract(message) is not None


class TestLogLine:
    """Test LogLine construction."""

    def test_from_row(self):
        """Test four-field rows."""
        line = LogLine.from_row(["t", "pod", "key", "msg"])

        assert line.timestamp == "t"
        assert line.label == "pod"
        assert line.process_key == "key"
        assert line.message == "msg"

    def test_from_row_wrong_field_count(self):
        """Test rows with the wrong shape are rejected."""
        with pytest.raises(ValueError, match="Expected 4 fields"):
            LogLine.from_row(["t", "pod", "msg"])
