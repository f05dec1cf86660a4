"""
Tests for key derivation, the authenticated cipher and commitments.
"""
import base64

import pytest

from securevault.exceptions import FormatError, IntegrityError
from securevault.vault import crypto
from securevault.vault.codec import decode_blob, encode_blob


PASSPHRASE = "correct horse battery staple"
# salt(16) + iv(12) + "pw"(2) + tag(16)
TAMPER_BLOB = crypto.encrypt_secret("pw", PASSPHRASE)


def _flip(blob: str, index: int) -> str:
    raw = bytearray(base64.b64decode(blob))
    raw[index] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


class TestKeyDerivation:
    """Tests for derive_key."""

    def test_key_length(self):
        key = crypto.derive_key(PASSPHRASE, crypto.generate_salt())
        assert len(key) == 32

    def test_deterministic_for_same_salt(self):
        salt = crypto.generate_salt()
        assert crypto.derive_key(PASSPHRASE, salt) == crypto.derive_key(PASSPHRASE, salt)

    def test_different_salts_give_different_keys(self):
        assert crypto.derive_key(PASSPHRASE, b"\x00" * 16) != crypto.derive_key(
            PASSPHRASE, b"\x01" * 16
        )

    def test_minimum_work_factor(self):
        assert crypto.PBKDF2_ITERATIONS >= 100_000

    def test_randomness_sizes(self):
        assert len(crypto.generate_salt()) == 16
        assert len(crypto.generate_iv()) == 12


class TestAuthenticatedCipher:
    """Tests for encrypt/decrypt on raw keys."""

    def test_roundtrip(self):
        key = crypto.derive_key(PASSPHRASE, crypto.generate_salt())
        iv = crypto.generate_iv()
        ct = crypto.encrypt(b"payload", key, iv)
        assert len(ct) == len(b"payload") + crypto.TAG_SIZE
        assert crypto.decrypt(ct, key, iv) == b"payload"

    def test_wrong_key_raises_integrity_error(self):
        iv = crypto.generate_iv()
        ct = crypto.encrypt(b"payload", b"k" * 32, iv)
        with pytest.raises(IntegrityError):
            crypto.decrypt(ct, b"x" * 32, iv)

    def test_wrong_iv_raises_integrity_error(self):
        ct = crypto.encrypt(b"payload", b"k" * 32, b"\x00" * 12)
        with pytest.raises(IntegrityError):
            crypto.decrypt(ct, b"k" * 32, b"\x01" * 12)


class TestSecretEncryption:
    """Tests for encrypt_secret/decrypt_secret."""

    def test_roundtrip(self):
        blob = crypto.encrypt_secret("s3cr3t!", PASSPHRASE)
        assert crypto.decrypt_secret(blob, PASSPHRASE) == "s3cr3t!"

    def test_roundtrip_unicode_and_empty(self):
        for text in ("", "pässwörd ✓", "x" * 1000):
            assert crypto.decrypt_secret(crypto.encrypt_secret(text, PASSPHRASE), PASSPHRASE) == text

    def test_blob_layout(self):
        blob = crypto.encrypt_secret("abc", PASSPHRASE)
        salt, iv, ct = decode_blob(blob)
        assert len(salt) == 16
        assert len(iv) == 12
        assert len(ct) == 3 + crypto.TAG_SIZE

    def test_ciphertext_is_not_deterministic(self):
        first = crypto.encrypt_secret("same", PASSPHRASE)
        second = crypto.encrypt_secret("same", PASSPHRASE)
        assert first != second
        assert decode_blob(first)[0] != decode_blob(second)[0]
        assert decode_blob(first)[1] != decode_blob(second)[1]

    def test_wrong_passphrase_fails(self):
        blob = crypto.encrypt_secret("s3cr3t!", PASSPHRASE)
        with pytest.raises(IntegrityError):
            crypto.decrypt_secret(blob, "WrongPass")

    @pytest.mark.parametrize("index", range(28 + 2 + crypto.TAG_SIZE))
    def test_tampering_any_byte_is_detected(self, index):
        with pytest.raises(IntegrityError):
            crypto.decrypt_secret(_flip(TAMPER_BLOB, index), PASSPHRASE)

    def test_malformed_blob_is_format_error(self):
        with pytest.raises(FormatError):
            crypto.decrypt_secret("not base64!", PASSPHRASE)
        with pytest.raises(FormatError):
            crypto.decrypt_secret(base64.b64encode(b"short").decode(), PASSPHRASE)

    def test_non_utf8_plaintext_is_format_error(self):
        salt, iv = crypto.generate_salt(), crypto.generate_iv()
        ct = crypto.encrypt(b"\xff\xfe", crypto.derive_key(PASSPHRASE, salt), iv)
        with pytest.raises(FormatError):
            crypto.decrypt_secret(encode_blob(salt, iv, ct), PASSPHRASE)


class TestSessionLayer:
    """Tests for the in-memory session encryption."""

    def test_roundtrip(self):
        ct = crypto.encrypt_for_session(b"passphrase", "token-a")
        assert crypto.decrypt_for_session(ct, "token-a") == b"passphrase"

    def test_other_token_fails(self):
        ct = crypto.encrypt_for_session(b"passphrase", "token-a")
        with pytest.raises(IntegrityError):
            crypto.decrypt_for_session(ct, "token-b")

    def test_too_short(self):
        with pytest.raises(FormatError):
            crypto.decrypt_for_session(b"\x00" * 27, "token-a")


class TestCommitment:
    """Tests for passphrase commitments."""

    def test_sha256_matches_legacy_format(self):
        commitment = crypto.make_commitment("abc")
        # base64(SHA-256("abc"))
        assert commitment == b"ungWv48Bz+pBQUDeXa4iI7ADYaOWF3qctBD/YfIAFa0="

    @pytest.mark.parametrize("scheme", crypto.COMMITMENT_SCHEMES)
    def test_check(self, scheme):
        commitment = crypto.make_commitment(PASSPHRASE, scheme)
        assert crypto.check_commitment(PASSPHRASE, commitment) is True
        assert crypto.check_commitment("other", commitment) is False

    def test_pbkdf2_commitment_is_salted(self):
        first = crypto.make_commitment(PASSPHRASE, crypto.COMMITMENT_PBKDF2)
        second = crypto.make_commitment(PASSPHRASE, crypto.COMMITMENT_PBKDF2)
        assert first != second
        assert first.startswith(b"pbkdf2-sha256$100000$")

    def test_unknown_scheme(self):
        with pytest.raises(ValueError):
            crypto.make_commitment(PASSPHRASE, "md5")

    def test_corrupted_pbkdf2_commitment(self):
        with pytest.raises(FormatError):
            crypto.check_commitment(PASSPHRASE, b"pbkdf2-sha256$oops")

    @pytest.mark.parametrize("iterations", ["999999999999", "1", "0"])
    def test_unexpected_iteration_count(self, iterations):
        commitment = crypto.make_commitment(PASSPHRASE, crypto.COMMITMENT_PBKDF2)
        _, _, salt, digest = commitment.split(b"$")
        tampered = b"$".join([b"pbkdf2-sha256", iterations.encode(), salt, digest])
        with pytest.raises(FormatError):
            crypto.check_commitment(PASSPHRASE, tampered)

    def test_empty_digest(self):
        with pytest.raises(FormatError):
            crypto.check_commitment(PASSPHRASE, b"pbkdf2-sha256$100000$AAAAAAAAAAAAAAAAAAAAAA==$")

    def test_garbage_commitment_does_not_match(self):
        assert crypto.check_commitment(PASSPHRASE, b"\x00garbage") is False
