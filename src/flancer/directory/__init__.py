"""Counterparty resolution and the service catalog."""

from flancer.directory.listings import ServiceCatalog
from flancer.directory.service import DirectoryService, SQLiteDirectory

__all__ = [
    "DirectoryService",
    "SQLiteDirectory",
    "ServiceCatalog",
]
