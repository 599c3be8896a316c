"""
Pytest configuration and shared fixtures.

Provides in-memory document stores and helpers for building sync log
messages the way the sync tool writes them.
"""

import csv
import os

import bson
import pytest
from bson import ObjectId
from bson.raw_bson import RawBSONDocument
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from src.reconciliation.extractor import LogLine

MONGO_TEST_URI = os.getenv("MONGO_TEST_URI", "mongodb://localhost:27017")

SAMPLE_OID = "693885e2f227ce8067db8d33"


def raw_doc(doc):
    """Encode a dict as a RawBSONDocument, keeping field order."""
    return RawBSONDocument(bson.encode(doc))


def retry_failure_message(namespace="testshard.col2", oid=SAMPLE_OID):
    """
    Build a message as it reads after CSV unescaping.

    The id fragment keeps its inner backslash-escaped quotes.
    """
    return (
        'Dec  9 12:26:13.446 ERR Isolated retry still failed '
        'retryErr="bulk write exception: write errors: [E11000 duplicate key '
        f'error collection: {namespace} index: _id_ dup key]" err="..." '
        f'index=0 id="{{\\"$oid\\":\\"{oid}\\"}}" key=1765311970851576000'
    )


def log_line(message, timestamp="2025-10-15T17:32:48.521Z"):
    return LogLine(timestamp, "dsync", "col2", message)


def write_log(path, messages, header=("date", "pod", "process", "message")):
    """Write a CSV export with one row per message."""
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        if header:
            writer.writerow(header)
        for message in messages:
            writer.writerow(["2025-10-15T17:32:48.521Z", "dsync", "col2", message])


class FakeStore:
    """
    In-memory DocumentStore.

    Documents are keyed by (database, collection, _id). Any identifier in
    `failures` raises the mapped exception on lookup.
    """

    def __init__(self, documents=None, failures=None):
        self.documents = documents or {}
        self.failures = failures or {}
        self.lookups = []

    def add(self, database, collection, doc):
        self.documents[(database, collection, doc["_id"])] = raw_doc(doc)

    def find_by_identifier(self, database, collection, object_id):
        self.lookups.append((database, collection, object_id))
        if object_id in self.failures:
            raise self.failures[object_id]
        return self.documents.get((database, collection, object_id))


@pytest.fixture
def sample_oid():
    return ObjectId(SAMPLE_OID)


@pytest.fixture
def source_store():
    return FakeStore()


@pytest.fixture
def dest_store():
    return FakeStore()


@pytest.fixture(scope="session")
def mongo_client():
    """
    Live MongoDB client for integration tests.

    Skips the requesting tests when no server answers at MONGO_TEST_URI.
    """
    client = MongoClient(MONGO_TEST_URI, serverSelectionTimeoutMS=2000)
    try:
        client.admin.command("ping")
    except PyMongoError as e:
        client.close()
        pytest.skip(f"MongoDB not available at {MONGO_TEST_URI}: {e}")

    yield client
    client.close()
