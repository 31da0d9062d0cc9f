"""Remote store access: HTTP client, async bridge and repository."""

from .client import AsyncStoreClient, StoreClient
from .remote import ContentRepository, RemoteStore

__all__ = [
    "AsyncStoreClient",
    "ContentRepository",
    "RemoteStore",
    "StoreClient",
]
