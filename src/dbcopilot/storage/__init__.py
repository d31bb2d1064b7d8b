"""Persistence for saved connections: encryption, catalog and cache."""

from dbcopilot.storage.cache import MemoryCache, RedisCache, SchemaCache, create_cache
from dbcopilot.storage.catalog import ConnectionCatalog
from dbcopilot.storage.crypto import CredentialCipher

__all__ = [
    "ConnectionCatalog",
    "CredentialCipher",
    "MemoryCache",
    "RedisCache",
    "SchemaCache",
    "create_cache",
]
