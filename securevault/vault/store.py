"""
VaultStore — Persisted collection of encrypted password records.

Provides the public API of the vault:
- ``initialize(passphrase)`` — create an empty vault and its commitment
- ``verify(passphrase)`` — check a passphrase against the commitment
- ``add_record`` / ``update_record`` / ``delete_record`` — mutate records
- ``list_decrypted(passphrase)`` — decrypt every record that can be
- ``export_all()`` / ``import_all(snapshot)`` — move the encrypted collection
- ``reset()`` — destroy the vault

Security Note:
    The passphrase is an argument to each call and is never stored.
    Never log plaintext, passphrases or ciphertext values. Only log record
    ids, counts and operations.
"""
import uuid
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Optional, Union
from collections.abc import Mapping

from ..exceptions import FormatError, IntegrityError, NotFoundError, VaultStateError
from .codec import dumps_collection, loads_collection
from .config import VaultConfig
from .crypto import (
    COMMITMENT_SHA256,
    check_commitment,
    decrypt_secret,
    encrypt_secret,
    make_commitment,
)
from .models import (
    EncryptedRecord,
    Record,
    RecordListing,
    RecordMetadata,
    RecordUpdate,
    SkippedRecord,
    VaultState,
    utcnow,
)
from .storage import Storage

logger = logging.getLogger("securevault.vault")

COMMITMENT_KEY = "securevault_master_hash"
COLLECTION_KEY = "securevault_data"

_EMPTY_COLLECTION = b"[]"


class VaultStore:
    """Encrypted record collection plus passphrase commitment.

    Every mutation is a load → modify → persist cycle on the whole
    collection and runs under one lock per store instance.
    """

    def __init__(self, storage: Storage, config: Optional[VaultConfig] = None):
        self._storage = storage
        self._config = config or VaultConfig()
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<VaultStore storage={self._storage!r}>"

    @property
    def config(self) -> VaultConfig:
        return self._config

    # ------------------------------------------------------------------
    # Collection helpers
    # ------------------------------------------------------------------

    async def _load(self) -> list[EncryptedRecord]:
        raw = await self._storage.get(COLLECTION_KEY)
        if raw is None:
            raise VaultStateError("Vault is not initialized")
        return loads_collection(raw, check_blobs=False)

    async def _save(self, records: list[EncryptedRecord]) -> None:
        await self._storage.set(COLLECTION_KEY, dumps_collection(records))

    async def _require_passphrase(self, passphrase: str) -> None:
        if not await self.verify(passphrase):
            raise VaultStateError("Unable to unlock vault")

    @staticmethod
    def _find(records: list[EncryptedRecord], record_id: str) -> int:
        for index, record in enumerate(records):
            if record.id == record_id:
                return index
        raise NotFoundError(f"Record not found: {record_id}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def exists(self) -> bool:
        """True if either vault key is present."""
        return (
            await self._storage.get(COMMITMENT_KEY) is not None
            or await self._storage.get(COLLECTION_KEY) is not None
        )

    async def state(self) -> VaultState:
        """Persisted lifecycle state; UNLOCKED is only held by sessions."""
        if await self.exists():
            return VaultState.LOCKED
        return VaultState.UNINITIALIZED

    async def initialize(self, passphrase: str) -> None:
        """Create an empty vault protected by ``passphrase``.

        Raises:
            VaultStateError: If a vault already exists.
        """
        async with self._lock:
            if await self.exists():
                raise VaultStateError("Vault already exists")
            scheme = self._config.commitment_scheme
            if scheme == COMMITMENT_SHA256:
                logger.warning(
                    "Vault commitment uses a single SHA-256 hash; it is weaker "
                    "against offline guessing than record encryption. "
                    "Set VAULT_COMMITMENT_SCHEME=pbkdf2-sha256 to harden it."
                )
            commitment = await asyncio.to_thread(make_commitment, passphrase, scheme)
            await self._storage.set_many({
                COMMITMENT_KEY: commitment,
                COLLECTION_KEY: _EMPTY_COLLECTION,
            })
        logger.info("Vault initialized (commitment=%s)", scheme)

    async def verify(self, passphrase: str) -> bool:
        """Check ``passphrase`` against the stored commitment.

        Returns False for a wrong passphrase, a missing vault or a corrupted
        commitment alike. Never raises.
        """
        try:
            commitment = await self._storage.get(COMMITMENT_KEY)
            if commitment is None:
                return False
            return await asyncio.to_thread(check_commitment, passphrase, commitment)
        except Exception as err:
            logger.debug("Passphrase verification error: %s", type(err).__name__)
            return False

    async def reset(self) -> None:
        """Destroy the commitment and every record."""
        async with self._lock:
            await self._storage.delete_many([COMMITMENT_KEY, COLLECTION_KEY])
        logger.info("Vault reset")

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def count(self) -> int:
        """Number of stored records, decryptable or not."""
        return len(await self._load())

    async def add_record(
        self,
        metadata: Union[RecordMetadata, Mapping[str, Any]],
        password: str,
        passphrase: str,
    ) -> str:
        """Encrypt ``password`` and append a new record.

        Raises:
            VaultStateError: If ``passphrase`` does not match the vault.

        Returns:
            The new record id.
        """
        if not isinstance(metadata, RecordMetadata):
            metadata = RecordMetadata.model_validate(dict(metadata))
        blob = await asyncio.to_thread(encrypt_secret, password, passphrase)
        now = utcnow()
        record = EncryptedRecord(
            id=str(uuid.uuid4()),
            encrypted_password=blob,
            created_at=now,
            last_modified=now,
            **metadata.model_dump(),
        )
        async with self._lock:
            await self._require_passphrase(passphrase)
            records = await self._load()
            records.append(record)
            await self._save(records)
        logger.debug("Vault add: id=%s", record.id)
        return record.id

    async def _decrypt_one(
        self, stored: EncryptedRecord, passphrase: str
    ) -> Union[Record, SkippedRecord]:
        try:
            password = await asyncio.to_thread(
                decrypt_secret, stored.encrypted_password, passphrase
            )
        except (FormatError, IntegrityError) as err:
            logger.warning(
                "Skipping record id=%s: %s", stored.id, type(err).__name__
            )
            return SkippedRecord(id=stored.id, reason=type(err).__name__)
        return Record.from_encrypted(stored, password)

    async def list_decrypted(self, passphrase: str) -> RecordListing:
        """Decrypt every stored record with ``passphrase``.

        Records that fail to decrypt are skipped and reported in
        ``RecordListing.skipped``; the listing itself never fails for them.

        Raises:
            asyncio.TimeoutError: If the whole listing exceeds
                ``config.bulk_timeout``.
        """
        stored = await self._load()
        results = await asyncio.wait_for(
            asyncio.gather(*(self._decrypt_one(r, passphrase) for r in stored)),
            timeout=self._config.bulk_timeout,
        )
        records = [r for r in results if isinstance(r, Record)]
        skipped = [r for r in results if isinstance(r, SkippedRecord)]
        if skipped:
            logger.warning(
                "Vault listing incomplete: %d of %d record(s) skipped",
                len(skipped), len(stored),
            )
        return RecordListing(records, stored_count=len(stored), skipped=skipped)

    async def update_record(
        self,
        record_id: str,
        fields: Union[RecordUpdate, Mapping[str, Any]],
        passphrase: str,
    ) -> EncryptedRecord:
        """Apply a partial update to one record.

        A new password is encrypted with fresh salt and iv.
        ``last_modified`` is always moved forward.

        Raises:
            NotFoundError: If ``record_id`` is not stored.
            VaultStateError: If ``passphrase`` does not match the vault.
        """
        if not isinstance(fields, RecordUpdate):
            fields = RecordUpdate.model_validate(dict(fields))
        changes = {
            name: getattr(fields, name)
            for name in fields.model_fields_set
            if name in ("website", "username", "category", "url", "notes")
        }
        for name in ("website", "username", "category"):
            if changes.get(name, "") is None:
                raise FormatError(f"Field '{name}' cannot be cleared")
        async with self._lock:
            await self._require_passphrase(passphrase)
            records = await self._load()
            index = self._find(records, record_id)
            current = records[index]
            if fields.password is not None:
                changes["encrypted_password"] = await asyncio.to_thread(
                    encrypt_secret, fields.password, passphrase
                )
            updated = self._stamp(current, **changes)
            records[index] = updated
            await self._save(records)
        logger.debug(
            "Vault update: id=%s fields=%s", record_id, sorted(changes) + ["last_modified"]
        )
        return updated

    async def delete_record(self, record_id: str) -> None:
        """Remove a record. Deleting an unknown id is not an error."""
        async with self._lock:
            records = await self._load()
            remaining = [r for r in records if r.id != record_id]
            if len(remaining) == len(records):
                return
            await self._save(remaining)
        logger.debug("Vault delete: id=%s", record_id)

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    async def export_all(self) -> str:
        """Return the encrypted collection as indented JSON. Never decrypts."""
        records = await self._load()
        return dumps_collection(records, indent=True).decode("utf-8")

    async def import_all(self, snapshot: Union[str, bytes, list]) -> int:
        """Replace the whole collection with ``snapshot``.

        Raises:
            FormatError: If the snapshot is not a well-formed encrypted
                record collection. The stored collection is left untouched.
            VaultStateError: If the vault is not initialized.

        Returns:
            Number of records imported.
        """
        records = loads_collection(snapshot)
        async with self._lock:
            if await self._storage.get(COMMITMENT_KEY) is None:
                raise VaultStateError("Vault is not initialized")
            await self._save(records)
        logger.info("Vault import: %d record(s)", len(records))
        return len(records)

    # ------------------------------------------------------------------
    # Used by key rotation
    # ------------------------------------------------------------------

    async def _replace_all(
        self, records: list[EncryptedRecord], commitment: bytes
    ) -> None:
        await self._storage.set_many({
            COMMITMENT_KEY: commitment,
            COLLECTION_KEY: dumps_collection(records),
        })

    @staticmethod
    def _stamp(record: EncryptedRecord, **changes: Any) -> EncryptedRecord:
        now: datetime = utcnow()
        if now <= record.last_modified:
            now = record.last_modified + timedelta(microseconds=1)
        return record.model_copy(update={**changes, "last_modified": now})
