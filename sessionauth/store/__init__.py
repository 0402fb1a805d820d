"""
Credential store implementations.

``CredentialStore`` is the interface the session service depends on.
``SQLCredentialStore`` backs it with the async SQLAlchemy session used by
the API; ``InMemoryCredentialStore`` keeps everything in process memory for
tests and local experiments.
"""

from sessionauth.store.base import CredentialStore
from sessionauth.store.memory import InMemoryCredentialStore
from sessionauth.store.sql import SQLCredentialStore

__all__ = [
    "CredentialStore",
    "InMemoryCredentialStore",
    "SQLCredentialStore",
]
