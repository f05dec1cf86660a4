"""
Vault Crypto Core — Key derivation, authenticated encryption and commitments.

Record layer:
    PBKDF2-HMAC-SHA256(passphrase, salt 16B, 100k) → AES-256-GCM(iv 12B)
    Every call mints a fresh salt and iv, so no two blobs share a key.

Session layer:
    HKDF(session_token, "vault-session") → AES-GCM → [nonce|payload]
    Used only to keep a cached passphrase encrypted in process memory.

Security Note:
    Never log plaintext, passphrases, keys or ciphertext values.
"""
import os
import hmac
import base64
import hashlib
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import FormatError, IntegrityError
from .codec import encode_blob, decode_blob, SALT_SIZE, IV_SIZE

logger = logging.getLogger("securevault.vault")

KEY_LENGTH = 32  # AES-256
TAG_SIZE = 16  # GCM tag
# Not recorded in the blob; changing it makes existing records unreadable.
PBKDF2_ITERATIONS = 100_000

COMMITMENT_SHA256 = "sha256"
COMMITMENT_PBKDF2 = "pbkdf2-sha256"
COMMITMENT_SCHEMES = (COMMITMENT_SHA256, COMMITMENT_PBKDF2)


# ---------------------------------------------------------------------------
# Randomness
# ---------------------------------------------------------------------------

def generate_salt() -> bytes:
    """Return a fresh 16-byte salt from the OS CSPRNG."""
    return os.urandom(SALT_SIZE)


def generate_iv() -> bytes:
    """Return a fresh 96-bit GCM nonce from the OS CSPRNG."""
    return os.urandom(IV_SIZE)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(passphrase: str, salt: bytes) -> bytes:
    """Derive a 32-byte record key using PBKDF2-HMAC-SHA256.

    Args:
        passphrase: Master passphrase as entered by the user.
        salt: 16 random bytes, unique to the blob being produced.

    Returns:
        32-byte derived key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def derive_session_key(seed: bytes, context: str) -> bytes:
    """Derive a 32-byte key using HKDF-SHA256.

    Args:
        seed: Input key material (random session token bytes).
        context: Context string for domain separation.

    Returns:
        32-byte derived key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,  # the token is already uniformly random
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


# ---------------------------------------------------------------------------
# Authenticated cipher
# ---------------------------------------------------------------------------

def encrypt(plaintext: bytes, key: bytes, iv: bytes) -> bytes:
    """Encrypt with AES-256-GCM.

    Returns:
        ciphertext with the 16-byte tag appended.
    """
    return AESGCM(key).encrypt(iv, plaintext, None)


def decrypt(ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
    """Decrypt and authenticate AES-256-GCM ciphertext.

    Raises:
        IntegrityError: If the tag does not match (tampering or wrong key).
    """
    try:
        return AESGCM(key).decrypt(iv, ciphertext, None)
    except InvalidTag as err:
        raise IntegrityError("Authentication tag mismatch") from err


def encrypt_secret(plaintext: str, passphrase: str) -> str:
    """Encrypt a secret under a passphrase and pack it for transport.

    Format: base64([salt 16B][iv 12B][ciphertext + tag 16B])

    Args:
        plaintext: Secret to protect.
        passphrase: Master passphrase.

    Returns:
        Transport string suitable for ``encryptedPassword``.
    """
    salt = generate_salt()
    iv = generate_iv()
    key = derive_key(passphrase, salt)
    ct = encrypt(plaintext.encode("utf-8"), key, iv)
    return encode_blob(salt, iv, ct)


def decrypt_secret(blob: str, passphrase: str) -> str:
    """Unpack a transport string and decrypt it with a passphrase.

    The key is derived from the salt embedded in *this* blob.

    Raises:
        FormatError: If the blob is malformed or not UTF-8 after decryption.
        IntegrityError: If authentication fails.
    """
    salt, iv, ct = decode_blob(blob)
    key = derive_key(passphrase, salt)
    plaintext = decrypt(ct, key, iv)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as err:
        raise FormatError("Decrypted secret is not valid UTF-8") from err


# ---------------------------------------------------------------------------
# Session-layer encryption (ephemeral, RAM only)
# ---------------------------------------------------------------------------

def encrypt_for_session(plaintext: bytes, session_token: str) -> bytes:
    """Encrypt plaintext for session-scoped storage.

    Format: [nonce 12B][encrypted_payload + GCM_tag 16B]
    """
    key = derive_session_key(session_token.encode("utf-8"), "vault-session")
    nonce = generate_iv()
    return nonce + encrypt(plaintext, key, nonce)


def decrypt_for_session(ciphertext_mem: bytes, session_token: str) -> bytes:
    """Decrypt session-scoped ciphertext.

    Raises:
        FormatError: If the ciphertext is too short.
        IntegrityError: If authentication fails.
    """
    _min = IV_SIZE + TAG_SIZE
    if len(ciphertext_mem) < _min:
        raise FormatError(
            f"ciphertext_mem too short: {len(ciphertext_mem)} bytes "
            f"(minimum {_min})"
        )
    key = derive_session_key(session_token.encode("utf-8"), "vault-session")
    return decrypt(ciphertext_mem[IV_SIZE:], key, ciphertext_mem[:IV_SIZE])


# ---------------------------------------------------------------------------
# Passphrase commitment
# ---------------------------------------------------------------------------

def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def make_commitment(passphrase: str, scheme: str = COMMITMENT_SHA256) -> bytes:
    """Compute the stored passphrase commitment.

    ``sha256``: base64(SHA-256(passphrase)), the legacy single fast hash.
    ``pbkdf2-sha256``: ``pbkdf2-sha256$<iterations>$<salt>$<digest>``.

    Raises:
        ValueError: If the scheme is unknown.
    """
    data = passphrase.encode("utf-8")
    if scheme == COMMITMENT_SHA256:
        return _b64(hashlib.sha256(data).digest()).encode("ascii")
    if scheme == COMMITMENT_PBKDF2:
        salt = generate_salt()
        digest = derive_key(passphrase, salt)
        return (
            f"{COMMITMENT_PBKDF2}${PBKDF2_ITERATIONS}${_b64(salt)}${_b64(digest)}"
        ).encode("ascii")
    raise ValueError(f"Unsupported commitment scheme: {scheme}")


def check_commitment(passphrase: str, commitment: bytes) -> bool:
    """Recompute a commitment and compare it in constant time.

    The scheme is read from the stored value, so vaults created with either
    scheme verify regardless of current configuration.

    Raises:
        FormatError: If the stored commitment cannot be parsed.
    """
    data = passphrase.encode("utf-8")
    prefix = COMMITMENT_PBKDF2.encode("ascii") + b"$"
    if not commitment.startswith(prefix):
        expected = _b64(hashlib.sha256(data).digest()).encode("ascii")
        return hmac.compare_digest(expected, commitment)
    try:
        _, iterations, salt_b64, digest_b64 = commitment.decode("ascii").split("$")
        if int(iterations) != PBKDF2_ITERATIONS:
            raise ValueError(f"Unexpected iteration count: {iterations}")
        salt = base64.b64decode(salt_b64, validate=True)
        stored = base64.b64decode(digest_b64, validate=True)
        if len(stored) != KEY_LENGTH:
            raise ValueError("Unexpected digest length")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=len(stored),
            salt=salt,
            iterations=PBKDF2_ITERATIONS,
        )
    except ValueError as err:
        raise FormatError("Corrupted passphrase commitment") from err
    return hmac.compare_digest(kdf.derive(data), stored)
