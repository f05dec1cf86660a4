"""
VaultSession — A verified passphrase held for one working session.

Provides:
- ``SessionManager.unlock(passphrase)`` — verify and open a session
- ``SessionManager.restore(token)`` — reopen a session from its token
- ``VaultSession`` — record operations that no longer take a passphrase

The passphrase is kept in process memory only, encrypted under a key
derived from a random session token (see ``encrypt_for_session``). The
cache is keyed by that token, never by anything derived from the
passphrase, and nothing here is written to storage.

Security Note:
    A memory dump of the process exposes token and ciphertext together,
    from which the passphrase can be recovered. This is an accepted
    limitation.
"""
import time
import secrets
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union
from collections.abc import Mapping

from ..exceptions import FormatError, IntegrityError, VaultStateError
from .crypto import decrypt_for_session, decrypt_secret, encrypt_for_session
from .models import (
    EncryptedRecord,
    RecordListing,
    RecordMetadata,
    RecordUpdate,
    VaultState,
)
from .store import VaultStore

logger = logging.getLogger("securevault.vault")

_LOCKED_MESSAGE = "Vault is locked"


@dataclass
class _CacheEntry:
    ciphertext_mem: bytes
    expires_at: float


class VaultSession:
    """Record operations bound to one unlocked session.

    Obtained from :meth:`SessionManager.unlock` or
    :meth:`SessionManager.restore`. Every call re-checks the session and
    slides its expiry forward.
    """

    def __init__(self, manager: "SessionManager", token: str):
        self._manager = manager
        self._token = token

    def __repr__(self) -> str:
        return f"<VaultSession state={self.state.value}>"

    @property
    def token(self) -> str:
        return self._token

    @property
    def expires_in(self) -> Optional[float]:
        """Seconds left before the session times out, None once closed."""
        entry = self._manager._cache.get(self._token)
        if entry is None:
            return None
        return max(0.0, entry.expires_at - self._manager._clock())

    @property
    def state(self) -> VaultState:
        if self._manager._alive(self._token):
            return VaultState.UNLOCKED
        return VaultState.LOCKED

    async def _passphrase(self) -> str:
        return await self._manager._open(self._token)

    async def add_record(
        self,
        metadata: Union[RecordMetadata, Mapping[str, Any]],
        password: str,
    ) -> str:
        return await self._manager.store.add_record(
            metadata, password, await self._passphrase()
        )

    async def list_records(self) -> RecordListing:
        return await self._manager.store.list_decrypted(await self._passphrase())

    async def update_record(
        self,
        record_id: str,
        fields: Union[RecordUpdate, Mapping[str, Any]],
    ) -> EncryptedRecord:
        return await self._manager.store.update_record(
            record_id, fields, await self._passphrase()
        )

    async def delete_record(self, record_id: str) -> None:
        await self._passphrase()
        await self._manager.store.delete_record(record_id)

    def logout(self) -> None:
        self._manager.logout(self._token)


class SessionManager:
    """Time-boxed in-memory cache of unlocked sessions for one vault.

    Args:
        store: The vault the sessions unlock.
        ttl: Idle lifetime of a session in seconds. Defaults to
            ``store.config.session_ttl``.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        store: VaultStore,
        ttl: Optional[int] = None,
        clock=time.monotonic,
    ):
        self.store = store
        self._ttl = ttl if ttl is not None else store.config.session_ttl
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._cache)

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    def _alive(self, token: str) -> bool:
        entry = self._cache.get(token)
        return entry is not None and entry.expires_at > self._clock()

    def _discard(self, token: str, reason: str) -> None:
        if self._cache.pop(token, None) is not None:
            logger.info("Vault session closed: %s", reason)

    def _touch(self, token: str) -> None:
        self._cache[token].expires_at = self._clock() + self._ttl

    async def _open(self, token: str) -> str:
        """Return the cached passphrase for a live session.

        Raises:
            VaultStateError: If the session is unknown, expired, its
                cache entry cannot be decrypted or the passphrase no longer
                verifies (after a rotation or reset).
        """
        entry = self._cache.get(token)
        if entry is None:
            raise VaultStateError(_LOCKED_MESSAGE)
        if entry.expires_at <= self._clock():
            self._discard(token, "timeout")
            raise VaultStateError(_LOCKED_MESSAGE)
        try:
            passphrase = decrypt_for_session(entry.ciphertext_mem, token).decode("utf-8")
        except (FormatError, IntegrityError, UnicodeDecodeError) as err:
            self._discard(token, "corrupted")
            raise VaultStateError(_LOCKED_MESSAGE) from err
        if not await self.store.verify(passphrase):
            self._discard(token, "passphrase no longer matches the vault")
            raise VaultStateError(_LOCKED_MESSAGE)
        self._touch(token)
        return passphrase

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def unlock(self, passphrase: str) -> VaultSession:
        """Verify ``passphrase`` and open a new session.

        Raises:
            VaultStateError: On any failure. The message never says whether
                the passphrase was wrong or the vault is missing.
        """
        if not await self.store.verify(passphrase):
            logger.info("Vault unlock rejected")
            raise VaultStateError("Unable to unlock vault")
        token = secrets.token_urlsafe(32)
        ciphertext_mem = await asyncio.to_thread(
            encrypt_for_session, passphrase.encode("utf-8"), token
        )
        self._cache[token] = _CacheEntry(
            ciphertext_mem=ciphertext_mem,
            expires_at=self._clock() + self._ttl,
        )
        logger.info("Vault session opened (%d active)", len(self._cache))
        return VaultSession(self, token)

    async def restore(self, token: str) -> VaultSession:
        """Reopen a session from its token.

        The cached passphrase must still verify and must decrypt the first
        stored record. Any failure discards the session.

        Raises:
            VaultStateError: If the session cannot be restored.
        """
        passphrase = await self._open(token)
        try:
            records = await self.store._load()
            if records:
                await asyncio.to_thread(
                    decrypt_secret, records[0].encrypted_password, passphrase
                )
        except (FormatError, IntegrityError, VaultStateError) as err:
            self._discard(token, "decrypt failed during restore")
            raise VaultStateError(_LOCKED_MESSAGE) from err
        return VaultSession(self, token)

    def logout(self, token: str) -> None:
        """Close a session. Unknown tokens are ignored."""
        self._discard(token, "logout")

    def invalidate_all(self) -> None:
        """Close every session, e.g. after the vault is reset."""
        count = len(self._cache)
        self._cache.clear()
        if count:
            logger.info("Vault sessions invalidated: %d", count)

    def purge_expired(self) -> int:
        """Drop expired sessions and return how many were removed."""
        now = self._clock()
        expired = [t for t, e in self._cache.items() if e.expires_at <= now]
        for token in expired:
            self._discard(token, "timeout")
        return len(expired)
