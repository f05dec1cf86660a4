"""Vault — Password records encrypted under a master passphrase.

Security Note (Threat Model):
    The passphrase and derived keys are never written to storage. While a
    session is unlocked, the passphrase lives in process memory encrypted
    under a random session token; a memory dump exposes both. This is an
    accepted limitation.
"""

from .models import (
    Record,
    EncryptedRecord,
    RecordMetadata,
    RecordUpdate,
    RecordListing,
    SkippedRecord,
    VaultState,
)
from .storage import Storage, MemoryStorage, FileStorage, RedisStorage
from .config import VaultConfig, build_storage
from .store import VaultStore
from .session import SessionManager, VaultSession
from .key_rotation import rotate_passphrase

__all__ = [
    "Record",
    "EncryptedRecord",
    "RecordMetadata",
    "RecordUpdate",
    "RecordListing",
    "SkippedRecord",
    "VaultState",
    "Storage",
    "MemoryStorage",
    "FileStorage",
    "RedisStorage",
    "VaultConfig",
    "build_storage",
    "VaultStore",
    "SessionManager",
    "VaultSession",
    "rotate_passphrase",
]
