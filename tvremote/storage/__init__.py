"""Credential persistence backends."""

from tvremote.storage.credentials import CredentialRecord, CredentialStore, MemoryCredentialStore
from tvremote.storage.sqlite_credentials import SQLiteCredentialStore

__all__ = [
    "CredentialRecord",
    "CredentialStore",
    "MemoryCredentialStore",
    "SQLiteCredentialStore",
]
