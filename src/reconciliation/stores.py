"""
Document Stores for Sync Reconciliation

Read-only lookup of single documents by _id in a MongoDB deployment.
"""

import logging
from typing import Optional, Protocol

from bson import ObjectId
from bson.codec_options import CodecOptions
from bson.raw_bson import RawBSONDocument
from pymongo import MongoClient
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10000


class StoreConnectionError(Exception):
    """Raised when a store cannot be reached at startup."""


class StoreLookupError(Exception):
    """Raised when a single document lookup fails."""


class DocumentStore(Protocol):
    """Anything that can look up one document by _id."""

    def find_by_identifier(
        self,
        database: str,
        collection: str,
        object_id: ObjectId
    ) -> Optional[RawBSONDocument]:
        """Return the document, None if it does not exist, or raise on error."""
        ...


class MongoDocumentStore:
    """
    Document store backed by a MongoDB deployment.

    Documents are returned as RawBSONDocument so that both the exact byte
    encoding and the decoded field map are available to the comparer.
    """

    def __init__(
        self,
        uri: str,
        name: str = "mongodb",
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        client: Optional[MongoClient] = None
    ):
        """
        Initialize the store.

        Args:
            uri: MongoDB connection string
            name: Label used in logs ("source" or "dest")
            timeout_ms: Server selection, connect and socket timeout
            client: Pre-built client (mainly for tests)
        """
        self.uri = uri
        self.name = name
        self.timeout_ms = timeout_ms
        self.client = client
        self.codec_options = CodecOptions(document_class=RawBSONDocument)

    def connect(self) -> "MongoDocumentStore":
        """
        Connect and verify the deployment answers a ping.

        Raises:
            StoreConnectionError: If the deployment cannot be reached
        """
        logger.info(f"Connecting to {self.name} MongoDB")

        try:
            if self.client is None:
                self.client = MongoClient(
                    self.uri,
                    serverSelectionTimeoutMS=self.timeout_ms,
                    connectTimeoutMS=self.timeout_ms,
                    socketTimeoutMS=self.timeout_ms,
                    document_class=RawBSONDocument
                )
            self.client.admin.command("ping")
        except PyMongoError as e:
            logger.error(f"Failed to connect to {self.name}: {e}")
            self.close()
            raise StoreConnectionError(f"Failed to connect to {self.name}: {e}") from e

        logger.info(f"Connected to {self.name} MongoDB")
        return self

    def find_by_identifier(
        self,
        database: str,
        collection: str,
        object_id: ObjectId
    ) -> Optional[RawBSONDocument]:
        """
        Look up one document by _id.

        Args:
            database: Database name
            collection: Collection name
            object_id: Document _id

        Returns:
            The document, or None if it does not exist

        Raises:
            StoreLookupError: On connectivity, timeout or server errors
        """
        if self.client is None:
            raise StoreLookupError(f"{self.name} store is not connected")

        coll = self.client[database].get_collection(
            collection,
            codec_options=self.codec_options
        )

        try:
            return coll.find_one({"_id": object_id})
        except PyMongoError as e:
            raise StoreLookupError(str(e)) from e

    def close(self) -> None:
        """Close the underlying client."""
        if self.client is not None:
            self.client.close()
            self.client = None
            logger.info(f"Closed {self.name} MongoDB connection")

    def __enter__(self):
        """Context manager entry."""
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
