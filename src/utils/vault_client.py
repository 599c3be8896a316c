"""
Vault Client Utility for Sync Reconciliation

Retrieves the source and destination MongoDB connection strings from
HashiCorp Vault so they do not have to be passed on the command line.
"""

import os
from typing import Any, Dict, Optional, Tuple
import hvac
from hvac.exceptions import VaultError, InvalidPath
import logging

logger = logging.getLogger(__name__)

SOURCE_URI_KEY = "source_uri"
DEST_URI_KEY = "dest_uri"


class VaultClient:
    """
    Client for reading reconciliation secrets from a KV v2 engine.
    """

    def __init__(
        self,
        vault_url: Optional[str] = None,
        vault_token: Optional[str] = None,
        verify_ssl: bool = True,
        mount_point: str = "secret"
    ):
        """
        Initialize Vault client.

        Args:
            vault_url: Vault server URL (defaults to VAULT_ADDR env var)
            vault_token: Vault authentication token (defaults to VAULT_TOKEN env var)
            verify_ssl: Whether to verify SSL certificates
            mount_point: KV secrets engine mount point

        Raises:
            ValueError: If required parameters are missing
            VaultError: If connection to Vault fails
        """
        self.vault_url = vault_url or os.getenv("VAULT_ADDR")
        self.vault_token = vault_token or os.getenv("VAULT_TOKEN")
        self.mount_point = mount_point

        if not self.vault_url:
            raise ValueError("Vault URL must be provided via parameter or VAULT_ADDR environment variable")

        if not self.vault_token:
            raise ValueError("Vault token must be provided via parameter or VAULT_TOKEN environment variable")

        try:
            self.client = hvac.Client(
                url=self.vault_url,
                token=self.vault_token,
                verify=verify_ssl
            )
            authenticated = self.client.is_authenticated()
        except Exception as e:
            logger.error(f"Failed to initialize Vault client: {e}")
            raise VaultError(f"Vault initialization failed: {e}") from e

        if not authenticated:
            raise VaultError("Failed to authenticate with Vault")

        logger.info(f"Connected to Vault at {self.vault_url}")

    def get_secret(self, path: str) -> Dict[str, Any]:
        """
        Retrieve a secret from Vault.

        Args:
            path: Secret path (e.g., "sync-audit/prod")

        Returns:
            Dictionary containing secret data

        Raises:
            InvalidPath: If secret path does not exist
            VaultError: If retrieval fails
        """
        try:
            logger.debug(f"Retrieving secret from {self.mount_point}/data/{path}")
            response = self.client.secrets.kv.v2.read_secret_version(
                path=path,
                mount_point=self.mount_point
            )
        except InvalidPath:
            logger.error(f"Secret not found at path: {path}")
            raise
        except Exception as e:
            logger.error(f"Failed to retrieve secret from {path}: {e}")
            raise VaultError(f"Secret retrieval failed: {e}") from e

        if not response or "data" not in response:
            raise InvalidPath(f"No data found at path: {path}")

        return response["data"].get("data", {})

    def get_mongo_uris(self, path: str) -> Tuple[str, str]:
        """
        Retrieve the source and destination connection strings.

        The secret must hold `source_uri` and `dest_uri` keys.

        Args:
            path: Secret path

        Returns:
            Tuple of (source URI, destination URI)

        Raises:
            KeyError: If either key is missing from the secret
        """
        secret = self.get_secret(path)

        missing = [k for k in (SOURCE_URI_KEY, DEST_URI_KEY) if not secret.get(k)]
        if missing:
            raise KeyError(f"Secret {path} is missing keys: {', '.join(missing)}")

        logger.info(f"Retrieved MongoDB connection strings from {path}")
        return secret[SOURCE_URI_KEY], secret[DEST_URI_KEY]

    def close(self):
        """Close the Vault client connection."""
        self.client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
