"""
Vault Key Rotation — Re-encryption of every record under a new passphrase.

Records are re-encrypted in batches (each batch's key derivations run
concurrently) and the new collection is written together with the new
commitment in a single atomic write, so the vault is never left half
rotated. Records that cannot be decrypted with the old passphrase are
kept as they are and counted as errors.

Security Note:
    Plaintext exists in memory only during re-encryption of each record.
    Never log plaintext, passphrases or ciphertext values.
"""
import asyncio
import logging

from ..exceptions import FormatError, IntegrityError, VaultStateError
from .crypto import decrypt_secret, encrypt_secret, make_commitment
from .models import EncryptedRecord
from .store import VaultStore

logger = logging.getLogger("securevault.vault")


def _reencrypt(blob: str, old_passphrase: str, new_passphrase: str) -> str:
    return encrypt_secret(decrypt_secret(blob, old_passphrase), new_passphrase)


async def rotate_passphrase(
    store: VaultStore,
    old_passphrase: str,
    new_passphrase: str,
    batch_size: int = 100,
) -> dict:
    """Re-encrypt all records from ``old_passphrase`` to ``new_passphrase``.

    Args:
        store: Vault to rotate.
        old_passphrase: Current passphrase; must verify.
        new_passphrase: Replacement passphrase.
        batch_size: Number of records re-encrypted concurrently.

    Returns:
        Stats dict with keys: total, rotated, errors.

    Raises:
        VaultStateError: If ``old_passphrase`` does not verify.
        ValueError: If ``batch_size`` is not positive.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    if not await store.verify(old_passphrase):
        raise VaultStateError("Unable to unlock vault")

    stats = {"total": 0, "rotated": 0, "errors": 0}
    logger.info("Starting passphrase rotation (batch_size=%d)", batch_size)

    async with store._lock:
        records = await store._load()
        rotated: list[EncryptedRecord] = []
        for offset in range(0, len(records), batch_size):
            batch = records[offset:offset + batch_size]
            logger.info(
                "Processing batch %d (%d records)",
                (offset // batch_size) + 1, len(batch),
            )
            results = await asyncio.gather(
                *(
                    asyncio.to_thread(
                        _reencrypt, r.encrypted_password,
                        old_passphrase, new_passphrase,
                    )
                    for r in batch
                ),
                return_exceptions=True,
            )
            for record, result in zip(batch, results):
                stats["total"] += 1
                if isinstance(result, (FormatError, IntegrityError)):
                    logger.error(
                        "Error rotating record id=%s: %s",
                        record.id, type(result).__name__,
                    )
                    stats["errors"] += 1
                    rotated.append(record)
                elif isinstance(result, BaseException):
                    raise result
                else:
                    rotated.append(
                        store._stamp(record, encrypted_password=result)
                    )
                    stats["rotated"] += 1

        commitment = await asyncio.to_thread(
            make_commitment, new_passphrase, store.config.commitment_scheme
        )
        await store._replace_all(rotated, commitment)

    logger.info("Passphrase rotation complete: %s", stats)
    return stats
