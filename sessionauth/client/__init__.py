"""
Async client for the auth API with a local session cache.

Does not read server settings, so it can be used from any process that
can reach the API.
"""

from sessionauth.client.api import AuthApiClient
from sessionauth.client.cache import (
    CacheSource,
    FileSessionCache,
    MemorySessionCache,
    SessionCacheEntry,
    SessionCacheStore,
    reconcile,
)
from sessionauth.client.results import AuthResult, Err, ErrorKind, Ok, UserSnapshot
from sessionauth.client.sync import SessionSync, SyncState

__all__ = [
    "AuthApiClient",
    "AuthResult",
    "CacheSource",
    "Err",
    "ErrorKind",
    "FileSessionCache",
    "MemorySessionCache",
    "Ok",
    "SessionCacheEntry",
    "SessionCacheStore",
    "SessionSync",
    "SyncState",
    "UserSnapshot",
    "reconcile",
]
