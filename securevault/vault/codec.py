"""
Record Codec — Byte packing for blobs and the JSON collection wire format.

Blob:        base64([salt 16B][iv 12B][ciphertext + tag])
Collection:  JSON list of encrypted record objects (camelCase keys).

Nothing in here knows about keys or ciphers.
"""
import base64
import binascii
from typing import Any, Union
from collections.abc import Iterable

import orjson
from pydantic import TypeAdapter, ValidationError

from ..exceptions import FormatError
from .models import EncryptedRecord

SALT_SIZE = 16
IV_SIZE = 12  # 96-bit nonce
HEADER_SIZE = SALT_SIZE + IV_SIZE

_collection_adapter = TypeAdapter(list[EncryptedRecord])


# ---------------------------------------------------------------------------
# Blob packing
# ---------------------------------------------------------------------------

def encode_blob(salt: bytes, iv: bytes, ciphertext: bytes) -> str:
    """Pack salt, iv and ciphertext into one transport string."""
    if len(salt) != SALT_SIZE or len(iv) != IV_SIZE:
        raise ValueError(
            f"salt must be {SALT_SIZE} bytes and iv {IV_SIZE} bytes"
        )
    return base64.b64encode(salt + iv + ciphertext).decode("ascii")


def decode_blob(blob: str) -> tuple[bytes, bytes, bytes]:
    """Unpack a transport string into (salt, iv, ciphertext).

    Raises:
        FormatError: If the encoding is invalid or the payload is shorter
            than the 28-byte header.
    """
    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError, TypeError) as err:
        raise FormatError("Blob is not valid base64") from err
    if len(raw) < HEADER_SIZE:
        raise FormatError(
            f"Blob too short: {len(raw)} bytes (minimum {HEADER_SIZE})"
        )
    return raw[:SALT_SIZE], raw[SALT_SIZE:HEADER_SIZE], raw[HEADER_SIZE:]


# ---------------------------------------------------------------------------
# Collection wire format
# ---------------------------------------------------------------------------

def dumps_collection(records: Iterable[EncryptedRecord], indent: bool = False) -> bytes:
    """Serialize encrypted records to JSON bytes."""
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps([r.to_wire() for r in records], option=option)


def loads_collection(
    data: Union[bytes, str, list[Any]], check_blobs: bool = True
) -> list[EncryptedRecord]:
    """Parse and validate an encrypted record collection.

    Accepts raw JSON (bytes or str) or an already-decoded list. Every
    record must validate and carry a unique id. With ``check_blobs`` each
    blob must also unpack; stored collections are read without it so one
    damaged blob only costs its own record.

    Raises:
        FormatError: On any malformed input. Nothing is returned partially.
    """
    if isinstance(data, (bytes, bytearray, str)):
        try:
            data = orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise FormatError("Collection is not valid JSON") from err
    if not isinstance(data, list):
        raise FormatError(
            f"Collection must be a list, got {type(data).__name__}"
        )
    try:
        records = _collection_adapter.validate_python(data)
    except ValidationError as err:
        raise FormatError(
            f"Invalid encrypted record collection: {err.error_count()} error(s)"
        ) from err
    seen: set[str] = set()
    for record in records:
        if record.id in seen:
            raise FormatError(f"Duplicate record id: {record.id}")
        seen.add(record.id)
        if check_blobs:
            decode_blob(record.encrypted_password)
    return records
